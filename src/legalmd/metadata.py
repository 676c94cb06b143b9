"""Metadata merging and path lookup.

Precedence, highest wins::

    external metadata > main front matter > imported fragments > defaults

Maps merge key by key; lists and scalars from a higher-precedence source
replace the lower one outright. Imported fragments never contribute reserved
keys (``force_commands`` and friends), so a fragment cannot reconfigure the
document that imports it.
"""
from __future__ import annotations

import copy
import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any, Final

from legalmd.config import DEFAULT_LEVEL_FORMATS, LEVEL_FORMAT_KEYS, is_reserved_key
from legalmd.document_types import Metadata, Value

log = logging.getLogger(__name__)


class _Missing:
    """Sentinel for a path that does not exist (distinct from an explicit null)."""

    _instance: _Missing | None = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Final = _Missing()

_INDEX_SEGMENT_RE = re.compile(r"^([^\[\]]*)((?:\[\d+\])+)$")
_BRACKET_RE = re.compile(r"\[(\d+)\]")


# ---------------------------------------------------------------------------
# Merging
# ---------------------------------------------------------------------------

def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Return ``base`` overlaid with ``override``; neither input is mutated."""
    merged: dict[str, Any] = {k: copy.deepcopy(v) for k, v in base.items()}
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def strip_reserved(front_matter: Mapping[str, Any], *, source: str = "") -> dict[str, Any]:
    """Drop reserved top-level keys from an imported fragment's front matter."""
    kept: dict[str, Any] = {}
    for key, value in front_matter.items():
        if is_reserved_key(key):
            log.warning("Ignoring reserved key %r in imported front matter %s", key, source)
            continue
        kept[key] = value
    return kept


def default_metadata() -> Metadata:
    """Built-in defaults: the numbering format per level."""
    return {
        word_key: fmt
        for (word_key, _), fmt in zip(LEVEL_FORMAT_KEYS, DEFAULT_LEVEL_FORMATS, strict=True)
    }


def merge_metadata(
    main_front_matter: Mapping[str, Any],
    imported_front_matters: Iterable[Mapping[str, Any]] = (),
    external_metadata: Mapping[str, Any] | None = None,
    *,
    include_defaults: bool = True,
) -> Metadata:
    """Merge every metadata source of one document.

    ``imported_front_matters`` is in import order. They are applied in reverse
    so the first (nearest) import wins over later ones. Reserved keys are
    stripped from imported sources.
    """
    merged: dict[str, Any] = dict(default_metadata()) if include_defaults else {}
    imported = list(imported_front_matters)
    for fragment in reversed(imported):
        merged = deep_merge(merged, strip_reserved(fragment))
    merged = deep_merge(merged, main_front_matter)
    if external_metadata:
        merged = deep_merge(merged, external_metadata)
    log.debug(
        "Merged metadata: %d imported source(s), external=%s, %d top-level keys",
        len(imported), external_metadata is not None, len(merged),
    )
    return merged


# ---------------------------------------------------------------------------
# Path lookup
# ---------------------------------------------------------------------------

def split_path(path: str) -> list[str]:
    """``parties[0].name`` and ``parties.0.name`` both become ['parties', '0', 'name']."""
    parts: list[str] = []
    for segment in path.strip().split("."):
        m = _INDEX_SEGMENT_RE.match(segment)
        if m:
            if m.group(1):
                parts.append(m.group(1))
            parts.extend(_BRACKET_RE.findall(m.group(2)))
        else:
            parts.append(segment)
    return parts


def lookup_path(data: Any, path: str) -> Value | _Missing:
    """Resolve a dotted/indexed path; ``MISSING`` when any segment is absent."""
    if not path.strip():
        return MISSING
    current: Any = data
    for part in split_path(path):
        match current:
            case Mapping():
                if part not in current:
                    return MISSING
                current = current[part]
            case list() | tuple():
                if not part.lstrip("-").isdigit():
                    return MISSING
                idx = int(part)
                if not -len(current) <= idx < len(current):
                    return MISSING
                current = current[idx]
            case _:
                return MISSING
    return current


def flatten_metadata(data: Mapping[str, Any], prefix: str = "") -> dict[str, Value]:
    """Flatten nested maps to dotted keys; lists are kept as leaf values."""
    flat: dict[str, Value] = {}
    for key, value in data.items():
        full = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping) and value:
            flat.update(flatten_metadata(value, full))
        else:
            flat[full] = value
    return flat


def content_metadata(metadata: Mapping[str, Any]) -> dict[str, Any]:
    """Metadata without the reserved configuration keys."""
    return {k: v for k, v in metadata.items() if not is_reserved_key(k)}
