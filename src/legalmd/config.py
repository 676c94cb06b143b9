"""Resolver configuration and reserved metadata keys."""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Literal

from legalmd.document_types import Metadata

log = logging.getLogger(__name__)

type SkippedLevelPolicy = Literal["initialize", "zero", "error"]

_SKIPPED_LEVEL_POLICIES: frozenset[str] = frozenset({"initialize", "zero", "error"})

# ---------------------------------------------------------------------------
# Reserved keys
# ---------------------------------------------------------------------------

LEVEL_WORDS: tuple[str, ...] = (
    "one", "two", "three", "four", "five", "six", "seven", "eight", "nine",
)

LEVEL_FORMAT_KEYS: tuple[tuple[str, str], ...] = tuple(
    (f"level-{word}", f"level-{n}") for n, word in enumerate(LEVEL_WORDS, start=1)
)

FORCE_COMMAND_KEYS: tuple[str, ...] = (
    "force_commands", "force-commands", "forceCommands", "commands",
)

RESERVED_KEYS: frozenset[str] = frozenset({
    *(k for pair in LEVEL_FORMAT_KEYS for k in pair),
    "level-indent",
    "no-indent",
    "skipped-levels",
    "meta-yaml-output",
    "meta-json-output",
    "meta-output-path",
    "date-format",
    *FORCE_COMMAND_KEYS,
})

DEFAULT_LEVEL_FORMATS: tuple[str, ...] = (
    "Article %n.",
    "Section %n.",
    "(%n)",
    "(%n%c)",
    "(%n%c%r)",
    "Annex %r -",
    "%n.",
    "%n.",
    "%n.",
)


def is_reserved_key(key: str) -> bool:
    return key in RESERVED_KEYS


# ---------------------------------------------------------------------------
# ResolverConfig
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ResolverConfig:
    """Engine knobs. Immutable, so one instance can serve concurrent runs."""

    max_import_depth: int = 10
    max_levels: int = 9
    skipped_levels: SkippedLevelPolicy = "initialize"
    missing_marker: str = "[[{name}]]"
    date_format: str = "YYYY-MM-DD"
    level_indent: float = 1.5
    strict: bool = False

    def __post_init__(self) -> None:
        if self.max_import_depth < 1:
            raise ValueError(f"max_import_depth must be >= 1, got {self.max_import_depth}")
        if not 1 <= self.max_levels <= len(DEFAULT_LEVEL_FORMATS):
            raise ValueError(
                f"max_levels must be in 1..{len(DEFAULT_LEVEL_FORMATS)}, got {self.max_levels}"
            )
        if self.skipped_levels not in _SKIPPED_LEVEL_POLICIES:
            raise ValueError(f"Unknown skipped_levels policy: {self.skipped_levels!r}")

    def missing(self, name: str) -> str:
        """Render the visible placeholder for an unresolved token."""
        return self.missing_marker.format(name=name)

    def with_metadata(self, metadata: Metadata) -> ResolverConfig:
        """Overlay the reserved configuration keys found in merged metadata."""
        changes: dict[str, object] = {}

        date_format = metadata.get("date-format")
        if isinstance(date_format, str) and date_format.strip():
            changes["date_format"] = date_format.strip()

        indent = metadata.get("level-indent")
        if indent is not None and not isinstance(indent, bool):
            try:
                changes["level_indent"] = float(str(indent))
            except ValueError:
                log.warning("Ignoring non-numeric level-indent %r", indent)
        if metadata.get("no-indent") not in (None, False, ""):
            changes["level_indent"] = 0.0

        policy = metadata.get("skipped-levels")
        if isinstance(policy, str):
            if policy in _SKIPPED_LEVEL_POLICIES:
                changes["skipped_levels"] = policy
            else:
                log.warning("Ignoring unknown skipped-levels policy %r", policy)

        return replace(self, **changes) if changes else self


def level_formats(metadata: Metadata, max_levels: int = len(DEFAULT_LEVEL_FORMATS)) -> tuple[str, ...]:
    """Per-level format templates: ``level-1`` beats ``level-one`` beats the default."""
    formats: list[str] = []
    for n in range(max_levels):
        word_key, num_key = LEVEL_FORMAT_KEYS[n]
        chosen = DEFAULT_LEVEL_FORMATS[n]
        for key in (word_key, num_key):
            raw = metadata.get(key)
            if isinstance(raw, str):
                chosen = raw
            elif raw is not None:
                log.warning("Ignoring non-string header format %s=%r", key, raw)
        formats.append(chosen)
    return tuple(formats)
