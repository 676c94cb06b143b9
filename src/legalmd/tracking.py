"""Field tracking overlay.

Each stage reports what it did with a token (resolved, missing, guard kept or
dropped) to a FieldTracker. The tracker never touches resolved text; it hands
an ordered record list to whoever renders the document.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import replace
from typing import Any

from legalmd.document_types import (
    STAGE_ORDER,
    FieldTrackingRecord,
    SourceSpan,
    TrackingStage,
    TrackingStatus,
)

log = logging.getLogger(__name__)


class FieldTracker:
    """Accumulates FieldTrackingRecords for one document run."""

    def __init__(self) -> None:
        self._records: list[FieldTrackingRecord] = []

    def __len__(self) -> int:
        return len(self._records)

    def record(
        self,
        *,
        name: str,
        status: TrackingStatus,
        stage: TrackingStage,
        block_index: int,
        start: int = 0,
        end: int = 0,
        value: Any = None,
        source_text: str = "",
        reason: str = "",
    ) -> FieldTrackingRecord:
        rec = FieldTrackingRecord(
            name=name,
            status=status,
            stage=stage,
            block_index=block_index,
            span=SourceSpan(start, max(start, end)),
            value=value,
            source_text=source_text,
            reason=reason,
        )
        self._records.append(rec)
        log.debug("Tracked %s %s %r (block %d)", stage, status, name, block_index)
        return rec

    def records(self) -> tuple[FieldTrackingRecord, ...]:
        """Records ordered by (block index, offset, stage); emission order breaks ties."""
        keyed = sorted(
            enumerate(self._records),
            key=lambda pair: (
                pair[1].block_index,
                pair[1].span.start,
                STAGE_ORDER[pair[1].stage],
                pair[0],
            ),
        )
        return tuple(rec for _, rec in keyed)

    def by_status(self, status: TrackingStatus) -> list[FieldTrackingRecord]:
        return [r for r in self.records() if r.status == status]

    def summary(self) -> dict[str, int]:
        """Count of records per status, plus ``total``."""
        counts = Counter(str(r.status) for r in self._records)
        out = {str(s): counts.get(str(s), 0) for s in TrackingStatus}
        out["total"] = len(self._records)
        return out

    def remap_blocks(self, mapping: dict[int, int]) -> None:
        """Rewrite block indexes after a stage renumbers the block sequence.

        Records of blocks absent from ``mapping`` (dropped blocks) keep their
        old index.
        """
        self._records = [
            replace(r, block_index=mapping[r.block_index]) if r.block_index in mapping else r
            for r in self._records
        ]
