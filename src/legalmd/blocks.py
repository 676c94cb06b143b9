"""Front matter splitting and line-oriented block parsing.

Body syntax recognized here:
  l. / ll. / lll.   header, level = number of ``l``
  l1. .. l9.        header with explicit level
  ... |key|         trailing reference-key declaration on a header line
  @import path      import directive on its own line
  ```               fenced raw passthrough (untouched by every stage)
  - * + 1.          list items, depth = indent // 2
  [ ... ]{expr}     whole-block guard when it wraps one or more entire blocks

Inline guards, references and ``{{...}}`` expressions stay in the block text;
later stages handle them.
"""
from __future__ import annotations

import itertools
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any

import yaml

from legalmd.document_types import Block, BlockGuard, BlockKind, Metadata
from legalmd.errors import FrontMatterError

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Regex constants
# ---------------------------------------------------------------------------

_FRONT_MATTER_OPEN_RE = re.compile(r"\A\ufeff?---[ \t]*\r?\n")
_FRONT_MATTER_CLOSE_RE = re.compile(r"^(?:---|\.\.\.)[ \t]*$", re.MULTILINE)

_HEADER_RE = re.compile(r"^\s*(l+)\.\s+(.*?)\s*$")
_ALT_HEADER_RE = re.compile(r"^\s*l(\d+)\.\s+(.*?)\s*$")
_REF_DECL_RE = re.compile(r"\s*\|([\w.-]+)\|\s*$")
_IMPORT_RE = re.compile(r"^\s*@import\s+(.+?)\s*$")
_FENCE_RE = re.compile(r"^\s*(```|~~~)")
_LIST_RE = re.compile(r"^(\s*)(?:[-*+]|\d+[.)])\s+(.*)$")
_LIST_ITEM_RE = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+(.*)$", re.DOTALL)
_GUARD_SUFFIX_RE = re.compile(r"\]\{([^{}]*)\}\s*$")


# ---------------------------------------------------------------------------
# Front matter
# ---------------------------------------------------------------------------

def split_front_matter(raw: str, *, document: str | None = None) -> tuple[Metadata, str]:
    """Split ``raw`` into (front matter mapping, body).

    A document without a leading ``---`` line has empty front matter.
    """
    m = _FRONT_MATTER_OPEN_RE.match(raw)
    if not m:
        return {}, raw
    close = _FRONT_MATTER_CLOSE_RE.search(raw, m.end())
    if close is None:
        raise FrontMatterError("Front matter opened with '---' is never closed", document=document)

    payload = raw[m.end():close.start()]
    try:
        data: Any = yaml.safe_load(payload) if payload.strip() else {}
    except yaml.YAMLError as exc:
        raise FrontMatterError(f"Invalid YAML front matter: {exc}", document=document) from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise FrontMatterError(
            f"Front matter must be a mapping, got {type(data).__name__}",
            document=document,
        )

    body = raw[close.end():]
    if body.startswith("\r\n"):
        body = body[2:]
    elif body.startswith("\n"):
        body = body[1:]
    return {str(k): v for k, v in data.items()}, body


# ---------------------------------------------------------------------------
# Chunking
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class _Chunk:
    """A run of lines that becomes one block."""
    hint: str                     # "single" | "list" | "para" | "raw"
    lines: list[str]
    line: int
    guards: list[BlockGuard] = field(default_factory=list[BlockGuard])
    text: str = ""


def _probe(line: str) -> str:
    """Classify a line ignoring any leading guard brackets."""
    probe = line.lstrip().lstrip("[")
    if _HEADER_RE.match(probe) or _ALT_HEADER_RE.match(probe) or _IMPORT_RE.match(probe):
        return "single"
    if _LIST_RE.match(line):
        return "list"
    return "para"


def _chunk_lines(body: str) -> list[_Chunk]:
    chunks: list[_Chunk] = []
    current: _Chunk | None = None
    fence: str | None = None

    def flush() -> None:
        nonlocal current
        if current is not None:
            chunks.append(current)
            current = None

    for lineno, line in enumerate(body.splitlines(), start=1):
        if fence is not None:
            assert current is not None
            current.lines.append(line)
            if line.strip().startswith(fence):
                fence = None
                flush()
            continue

        fm = _FENCE_RE.match(line)
        if fm:
            flush()
            fence = fm.group(1)
            current = _Chunk("raw", [line], lineno)
            continue

        if not line.strip():
            flush()
            continue

        kind = _probe(line)
        if kind == "single":
            flush()
            chunks.append(_Chunk("single", [line], lineno))
        elif kind == "list":
            flush()
            current = _Chunk("list", [line], lineno)
        elif current is None:
            current = _Chunk("para", [line], lineno)
        else:
            current.lines.append(line)

    if fence is not None:
        log.warning("Unterminated code fence opened with %s; kept as raw text", fence)
    flush()
    return chunks


# ---------------------------------------------------------------------------
# Whole-block guards
# ---------------------------------------------------------------------------

def matching_bracket(text: str, open_pos: int) -> int | None:
    """Index of the ``]`` matching the ``[`` at ``open_pos``, or None."""
    depth = 0
    for i in range(open_pos, len(text)):
        ch = text[i]
        if ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0:
                return i
    return None


def _is_unmatched_close(text: str, pos: int) -> bool:
    depth = 0
    for ch in text[:pos]:
        if ch == "[":
            depth += 1
        elif ch == "]" and depth > 0:
            depth -= 1
    return depth == 0


def _attach_guards(chunks: list[_Chunk], next_guard_id: Callable[[], int]) -> None:
    """Strip whole-block guard markup and attach BlockGuards, outermost first."""
    open_stack: list[tuple[int, int]] = []  # (chunk index, guard id)

    for idx, chunk in enumerate(chunks):
        chunk.text = "\n".join(chunk.lines)
        if chunk.hint == "raw":
            continue
        text = chunk.text.strip()

        # Openers: a leading '[' whose ']' is not in this chunk.
        while text.startswith("[") and matching_bracket(text, 0) is None:
            open_stack.append((idx, next_guard_id()))
            text = text[1:].lstrip()

        # Closers: trailing unmatched ']{expr}'.
        while open_stack:
            m = _GUARD_SUFFIX_RE.search(text)
            if m is None or not _is_unmatched_close(text, m.start()):
                break
            start_idx, guard_id = open_stack.pop()
            guard = BlockGuard(guard_id=guard_id, expression=m.group(1).strip())
            for k in range(start_idx, idx + 1):
                chunks[k].guards.insert(0, guard)
            text = text[:m.start()].rstrip()

        # Guards wrapping this chunk entirely.
        while text.startswith("["):
            close = matching_bracket(text, 0)
            m = _GUARD_SUFFIX_RE.search(text)
            if close is None or m is None or m.start() != close:
                break
            chunk.guards.append(BlockGuard(guard_id=next_guard_id(), expression=m.group(1).strip()))
            text = text[1:close].strip()

        chunk.text = text

    for start_idx, _ in open_stack:
        log.warning(
            "Block guard opened at line %d is never closed; kept as text",
            chunks[start_idx].line,
        )
        chunks[start_idx].text = "[" + chunks[start_idx].text


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def clean_import_path(raw: str) -> str:
    """``@import "a.md"``, ``@import [a.md]`` and ``@import a.md`` name the same path."""
    path = raw.strip()
    if len(path) >= 2 and path[0] == "[" and path[-1] == "]":
        path = path[1:-1].strip()
    return path.strip("'\"")


def _classify(chunk: _Chunk, source: str | None) -> Block:
    text = chunk.text
    kind: BlockKind = "paragraph"
    extra: dict[str, Any] = {}

    if chunk.hint == "raw":
        kind = "raw"
    elif chunk.hint == "single" and (m := _IMPORT_RE.match(text)):
        kind = "import"
        text = clean_import_path(m.group(1))
    elif chunk.hint == "single" and (
        (m := _ALT_HEADER_RE.match(text)) or (m := _HEADER_RE.match(text))
    ):
        marker, title = m.group(1), m.group(2)
        kind = "header"
        extra["level"] = int(marker) if marker.isdigit() else len(marker)
        ref = _REF_DECL_RE.search(title)
        if ref:
            extra["ref_key"] = ref.group(1)
            title = title[:ref.start()]
        text = title.strip()
    elif chunk.hint == "list" and (m := _LIST_ITEM_RE.match(text)):
        kind = "list_item"
        indent = _LIST_RE.match(chunk.lines[0])
        extra["depth"] = len(indent.group(1).expandtabs(4)) // 2 if indent else 0
        text = m.group(1)

    return Block(
        kind=kind,
        text=text,
        guards=tuple(chunk.guards),
        source=source,
        line=chunk.line,
        **extra,
    )


def parse_blocks(
    body: str,
    *,
    source: str | None = None,
    next_guard_id: Callable[[], int] | None = None,
) -> list[Block]:
    """Parse a document body into an ordered block sequence.

    ``next_guard_id`` lets the caller keep guard ids unique across the main
    document and every imported fragment of one run.
    """
    if next_guard_id is None:
        next_guard_id = itertools.count(1).__next__
    chunks = _chunk_lines(body)
    _attach_guards(chunks, next_guard_id)
    blocks = [_classify(c, source) for c in chunks]
    return reindex(blocks)


def reindex(blocks: list[Block]) -> list[Block]:
    """Assign sequence indexes 0..N-1 in order."""
    return [b if b.index == i else replace(b, index=i) for i, b in enumerate(blocks)]
