"""Hierarchical header numbering.

The counter state is an explicit value owned by one numbering pass; nothing
is global, so independent documents can be numbered concurrently.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field, replace

from legalmd.config import ResolverConfig
from legalmd.document_types import Block, CrossReferenceTable
from legalmd.enumerator import FormatToken, render_format, tokenize_format
from legalmd.errors import HeaderLevelError

log = logging.getLogger(__name__)


@dataclass(slots=True)
class HeaderCounterState:
    """One counter per level 1..N plus the tokenized format per level."""

    formats: tuple[tuple[FormatToken, ...], ...]
    counters: list[int] = field(default_factory=list[int])

    def __post_init__(self) -> None:
        if not self.counters:
            self.counters = [0] * len(self.formats)

    @classmethod
    def from_templates(cls, templates: Sequence[str]) -> HeaderCounterState:
        return cls(formats=tuple(tokenize_format(t) for t in templates))

    @property
    def max_level(self) -> int:
        return len(self.formats)

    def advance(self, level: int) -> None:
        """Increment ``level`` and zero every deeper level."""
        self.counters[level - 1] += 1
        for k in range(level, len(self.counters)):
            self.counters[k] = 0

    def label(self, level: int) -> str:
        return render_format(self.formats[level - 1], level, self.counters)


def number_headers(
    blocks: Sequence[Block],
    templates: Sequence[str],
    config: ResolverConfig | None = None,
    *,
    document: str | None = None,
) -> tuple[list[Block], CrossReferenceTable]:
    """Assign labels to every header and build the cross-reference table.

    Runs strictly in document order over the blocks that survived the
    conditional stage. The table is complete when this returns, so the
    reference stage can resolve forward references.
    """
    config = config or ResolverConfig()
    state = HeaderCounterState.from_templates(templates[: config.max_levels])
    table: CrossReferenceTable = {}
    out: list[Block] = []

    for block in blocks:
        if not block.is_header or block.level is None:
            out.append(block)
            continue

        level = block.level
        if not 1 <= level <= state.max_level:
            raise HeaderLevelError(
                f"Header level {level} outside 1..{state.max_level}",
                level=level, line=block.line, document=block.source or document,
            )
        _fill_skipped_levels(state, level, block, config, document)

        state.advance(level)
        label = state.label(level)
        out.append(replace(block, label=label))

        if block.ref_key:
            if block.ref_key in table:
                log.warning(
                    "Duplicate reference key %r at line %d; keeping %r",
                    block.ref_key, block.line, table[block.ref_key],
                )
            else:
                table[block.ref_key] = label.strip()

    log.debug("Numbered %d header(s), %d reference key(s)", sum(b.is_header for b in out), len(table))
    return out, table


def _fill_skipped_levels(
    state: HeaderCounterState,
    level: int,
    block: Block,
    config: ResolverConfig,
    document: str | None,
) -> None:
    skipped = [k for k in range(1, level) if state.counters[k - 1] == 0]
    if not skipped:
        return
    if config.skipped_levels == "error":
        raise HeaderLevelError(
            f"Level {level} header skips level(s) {', '.join(map(str, skipped))}",
            level=level, line=block.line, document=block.source or document,
        )
    log.warning(
        "Level %d header at line %d skips level(s) %s (policy: %s)",
        level, block.line, skipped, config.skipped_levels,
    )
    if config.skipped_levels == "initialize":
        for k in skipped:
            state.counters[k - 1] = 1
