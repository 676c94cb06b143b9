"""Cross-reference substitution.

Replaces ``|key|`` with the label the numbering pass stored for ``key``.
Keys missing from the table fall back to a metadata path lookup; keys
missing from both are left as the visible missing marker.

``{{...}}`` tags are left for the interpolation stage, so ``{{a||b||c}}``
is never mistaken for a ``|b|`` reference. Markdown tables (blocks with a
``|---|---|`` separator row) and raw blocks are not scanned.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import replace
from typing import Any

from legalmd.config import ResolverConfig
from legalmd.document_types import Block, CrossReferenceTable, TrackingStatus
from legalmd.errors import UnresolvedReferenceError
from legalmd.metadata import MISSING, lookup_path
from legalmd.template.helpers import to_display
from legalmd.tracking import FieldTracker

log = logging.getLogger(__name__)

REFERENCE_RE: re.Pattern[str] = re.compile(r"\|([A-Za-z_][\w.\-]*(?:\[\d+\])*)\|")

_TAG_RE = re.compile(r"\{\{.*?\}\}", re.DOTALL)
_TABLE_SEPARATOR_RE = re.compile(r"^\s*\|?\s*:?-{3,}:?\s*(?:\|\s*:?-{3,}:?\s*)*\|?\s*$")


def is_table(text: str) -> bool:
    """True when one of the lines is a Markdown table separator row."""
    return any(
        "|" in line and _TABLE_SEPARATOR_RE.match(line)
        for line in text.split("\n")
    )


def _resolve_segment(
    text: str,
    base: int,
    block: Block,
    table: CrossReferenceTable,
    metadata: Mapping[str, Any],
    tracker: FieldTracker,
    config: ResolverConfig,
    document: str | None,
) -> str:
    def substitute(m: re.Match[str]) -> str:
        key = m.group(1)
        start, end = base + m.start(), base + m.end()
        if key in table:
            value: Any = table[key]
            rendered = value
        else:
            value = lookup_path(metadata, key)
            if value is MISSING:
                if config.strict:
                    raise UnresolvedReferenceError(key, document=block.source or document)
                tracker.record(
                    name=key, status=TrackingStatus.MISSING, stage="reference",
                    block_index=block.index, start=start, end=end,
                    source_text=m.group(0), reason=UnresolvedReferenceError.reason,
                )
                log.debug("Unresolved reference |%s| in block %d", key, block.index)
                return config.missing(key)
            rendered = to_display(value, config.date_format)
        tracker.record(
            name=key, status=TrackingStatus.RESOLVED, stage="reference",
            block_index=block.index, start=start, end=end,
            value=rendered, source_text=m.group(0),
        )
        return rendered

    return REFERENCE_RE.sub(substitute, text)


def resolve_references(
    blocks: Sequence[Block],
    table: CrossReferenceTable,
    metadata: Mapping[str, Any],
    tracker: FieldTracker,
    config: ResolverConfig | None = None,
    *,
    document: str | None = None,
) -> list[Block]:
    """Substitute every ``|key|`` token outside template tags."""
    config = config or ResolverConfig()
    out: list[Block] = []
    for block in blocks:
        if block.kind == "raw" or "|" not in block.text or is_table(block.text):
            out.append(block)
            continue
        pieces: list[str] = []
        pos = 0
        for tag in _TAG_RE.finditer(block.text):
            pieces.append(_resolve_segment(
                block.text[pos:tag.start()], pos, block, table, metadata, tracker, config, document,
            ))
            pieces.append(tag.group(0))
            pos = tag.end()
        pieces.append(_resolve_segment(
            block.text[pos:], pos, block, table, metadata, tracker, config, document,
        ))
        text = "".join(pieces)
        out.append(replace(block, text=text) if text != block.text else block)
    return out
