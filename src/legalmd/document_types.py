"""Core types shared by every resolution stage.

Every stage consumes and produces these types. Blocks are immutable; a stage
that changes a block returns a new one via ``dataclasses.replace``. All
dataclasses use slots=True.

Type hierarchy:
  Value              — Tagged metadata value (str | int | float | bool | date | list | dict | None)
  Ok[T] / Err[E]     — Strict algebraic Result type (batch processing)
  SourceSpan         — Offsets of a token inside the text a stage saw
  BlockGuard         — Whole-block condition attached to one or more blocks
  Block              — Ordered unit of document content
  FieldTrackingRecord — Provenance for one resolved / dropped / missing token
  LoadedFragment     — What a content loader returns for an import path
  ResolvedDocument   — Final output of one resolution run
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from legalmd.force_commands import ForceCommands

# ---------------------------------------------------------------------------
# Value: metadata values after YAML/JSON decoding
# ---------------------------------------------------------------------------

# Dates appear because YAML decodes ISO dates and helpers return them.
type Value = str | int | float | bool | date | list[Value] | dict[str, Value] | None

type Metadata = dict[str, Value]

type CrossReferenceTable = dict[str, str]


# ---------------------------------------------------------------------------
# Result ADT
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class Ok[T]:
    """Success case of Result[T, E].

    Usage::

        match result:
            case Ok(value=doc): print(doc.to_text())
            case Err(error=e): print(e)
    """
    value: T


@dataclass(frozen=True, slots=True)
class Err[E]:
    """Failure case of Result[T, E]. Keeps the typed failure, not just a None."""
    error: E


type Result[T, E] = Ok[T] | Err[E]


# ---------------------------------------------------------------------------
# SourceSpan
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class SourceSpan:
    """Char offsets of a token in the block text as seen by the emitting stage.

    Invariants (enforced in __post_init__):
        - start >= 0
        - end >= start
    """
    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0:
            raise ValueError(f"SourceSpan.start must be >= 0, got {self.start}")
        if self.end < self.start:
            raise ValueError(
                f"SourceSpan.end ({self.end}) must be >= start ({self.start})"
            )


# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------

type BlockKind = Literal["paragraph", "header", "list_item", "raw", "import"]


@dataclass(frozen=True, slots=True)
class BlockGuard:
    """A condition attached to a whole block (or a run of blocks).

    Blocks that share one ``[ ... ]{expr}`` span share the same guard_id, so
    the guard is evaluated and tracked once for the whole span.
    """
    guard_id: int
    expression: str


@dataclass(frozen=True, slots=True)
class Block:
    """An ordered unit of document content."""
    kind: BlockKind
    text: str                  # header title (marker and |key| removed) or body text
    index: int = 0             # sequence index, reassigned after import expansion
    depth: int = 0             # list nesting depth (indent // 2)
    level: int | None = None   # header level 1..N, None for non-headers
    ref_key: str | None = None  # |key| declared on a header line
    label: str | None = None   # rendered header label, set by numbering
    guards: tuple[BlockGuard, ...] = ()  # outermost first
    source: str | None = None  # fragment path, None for the main document
    line: int = 0              # 1-based line in its source body

    @property
    def is_header(self) -> bool:
        return self.kind == "header"


# ---------------------------------------------------------------------------
# Field tracking
# ---------------------------------------------------------------------------

class TrackingStatus(StrEnum):
    RESOLVED = "resolved"
    MISSING = "missing"
    CONDITIONAL_KEPT = "conditional-kept"
    CONDITIONAL_DROPPED = "conditional-dropped"


type TrackingStage = Literal["conditional", "reference", "interpolation"]

# Stage order breaks ties between records at the same position.
STAGE_ORDER: dict[str, int] = {"conditional": 0, "reference": 1, "interpolation": 2}


@dataclass(frozen=True, slots=True)
class FieldTrackingRecord:
    """Provenance for one token. Never mutates the resolved text."""
    name: str                  # variable path, reference key, guard expression or helper call
    status: TrackingStatus
    stage: TrackingStage
    block_index: int
    span: SourceSpan
    value: Any = None          # resolved value; None when missing or dropped
    source_text: str = ""      # the raw token, e.g. "{{client.name}}" or "|sec2|"
    reason: str = ""           # "helper_not_found" | "unresolved_reference" | "undefined_variable" | ...


# ---------------------------------------------------------------------------
# Loader contract payload
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class LoadedFragment:
    """An imported fragment as returned by a content loader.

    ``path`` is the loader's canonical identity for the fragment; cycle
    detection compares these values.
    """
    path: str
    body: str
    front_matter: Metadata = field(default_factory=dict[str, Value])


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ResolvedDocument:
    """Everything one resolution run returns."""
    blocks: tuple[Block, ...]
    metadata: Metadata
    cross_references: CrossReferenceTable
    tracking: tuple[FieldTrackingRecord, ...]
    force_commands: ForceCommands | None = None
    imported_paths: tuple[str, ...] = ()
    level_indent: float = 1.5

    def headers(self) -> list[Block]:
        return [b for b in self.blocks if b.is_header]

    def to_text(self, *, indent: bool = True) -> str:
        """Plain-text preview: headers as ``indent + label + ' ' + title``."""
        chunks: list[str] = []
        for block in self.blocks:
            if block.is_header:
                pad = ""
                if indent and block.level:
                    pad = " " * int((block.level - 1) * self.level_indent * 2)
                title = f"{block.label} {block.text}" if block.label else block.text
                chunks.append(f"{pad}{title}".rstrip())
            elif block.kind == "list_item":
                chunks.append(f"{'  ' * block.depth}- {block.text}")
            else:
                chunks.append(block.text)
        return "\n\n".join(chunks)

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible payload for exporters and the CLI script."""
        return {
            "blocks": [
                {
                    "kind": b.kind,
                    "index": b.index,
                    "text": b.text,
                    "depth": b.depth,
                    "level": b.level,
                    "label": b.label,
                    "ref_key": b.ref_key,
                    "source": b.source,
                }
                for b in self.blocks
            ],
            "metadata": self.metadata,
            "cross_references": dict(self.cross_references),
            "tracking": [
                {
                    "name": r.name,
                    "status": str(r.status),
                    "stage": r.stage,
                    "block_index": r.block_index,
                    "span": [r.span.start, r.span.end],
                    "value": r.value,
                    "source_text": r.source_text,
                    "reason": r.reason,
                }
                for r in self.tracking
            ],
            "force_commands": (
                self.force_commands.to_dict() if self.force_commands is not None else None
            ),
            "imported_paths": list(self.imported_paths),
        }
