"""``force_commands``: CLI options a document asks for in its own front matter.

The directive string is interpolated against the merged metadata first
(``--title "{{client}} NDA"``) and only then split shell-style, so template
tags may contain spaces and quotes. The core only returns the parsed record;
applying it is the caller's job.
"""
from __future__ import annotations

import logging
import shlex
from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass
from typing import Any, Literal

from legalmd.config import FORCE_COMMAND_KEYS

log = logging.getLogger(__name__)

type PageFormat = Literal["A4", "letter", "legal"]

PROTECTED_OPTIONS: frozenset[str] = frozenset({
    "stdin", "stdout", "yaml", "headers", "no-headers",
    "no-clauses", "no-references", "no-imports", "no-mixins",
})

_PAGE_FORMATS: frozenset[str] = frozenset({"A4", "letter", "legal"})

# option -> (field, takes a value)
_OPTIONS: dict[str, tuple[str, bool]] = {
    "css": ("css", True),
    "output-name": ("output", True),
    "outputname": ("output", True),
    "output-path": ("output_path", True),
    "o": ("output_path", True),
    "pdf": ("pdf", False),
    "html": ("html", False),
    "highlight": ("highlight", False),
    "export-yaml": ("export_yaml", False),
    "export-json": ("export_json", False),
    "format": ("format", True),
    "landscape": ("landscape", False),
    "debug": ("debug", False),
    "d": ("debug", False),
    "title": ("title", True),
}


@dataclass(frozen=True, slots=True)
class ForceCommands:
    css: str | None = None
    output: str | None = None
    output_path: str | None = None
    pdf: bool = False
    html: bool = False
    highlight: bool = False
    export_yaml: bool = False
    export_json: bool = False
    format: PageFormat | None = None
    landscape: bool = False
    debug: bool = False
    title: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _unsafe_path(value: str) -> bool:
    return ".." in value or value.startswith("/")


def parse_force_commands(command_string: str) -> ForceCommands:
    """Map an already-interpolated option string onto a ForceCommands record.

    Protected options, unknown options, unsafe paths and invalid page
    formats are ignored with a warning.
    """
    try:
        args = shlex.split(command_string)
    except ValueError as exc:
        log.warning("Ignoring malformed force_commands %r: %s", command_string, exc)
        return ForceCommands()

    fields: dict[str, Any] = {}
    i = 0
    while i < len(args):
        arg = args[i]
        i += 1
        if not arg.startswith("-"):
            continue
        option = arg.lstrip("-")
        if option in PROTECTED_OPTIONS:
            log.warning("Protected option --%s ignored in force_commands", option)
            continue
        if option not in _OPTIONS:
            log.debug("Unknown force_commands option --%s", option)
            continue

        name, takes_value = _OPTIONS[option]
        if not takes_value:
            fields[name] = True
            continue
        if i >= len(args):
            log.warning("force_commands option --%s is missing its value", option)
            break
        value = args[i]
        i += 1
        if name in ("css", "output_path") and _unsafe_path(value):
            log.warning("Unsafe path %r for --%s ignored in force_commands", value, option)
        elif name == "format" and value not in _PAGE_FORMATS:
            log.warning("Unknown page format %r ignored in force_commands", value)
        else:
            fields[name] = value
    return ForceCommands(**fields)


def find_force_commands(metadata: Mapping[str, Any]) -> str | None:
    """The directive string under any accepted key, or None."""
    for key in FORCE_COMMAND_KEYS:
        value = metadata.get(key)
        if isinstance(value, str) and value.strip():
            return value
        if value is not None and not isinstance(value, str):
            log.warning("Ignoring non-string %s=%r", key, value)
    return None


def resolve_force_commands(
    metadata: Mapping[str, Any],
    render: Callable[[str], str],
) -> ForceCommands | None:
    """Interpolate then parse the document's force_commands, if it has any."""
    raw = find_force_commands(metadata)
    if raw is None:
        return None
    resolved = render(raw)
    log.debug("force_commands %r resolved to %r", raw, resolved)
    return parse_force_commands(resolved)
