"""Template interpolation over the block sequence.

A ``{{#each}}`` or ``{{#if}}`` section may span several blocks (an opening
tag in one paragraph, list items, the closing tag further down). Such a run
of blocks is rendered as one template with a marker in front of each block's
text; splitting the output on the markers gives every rendered piece back to
the block it came from, so kinds, levels and labels survive and a loop over
list items yields one list item per element.
"""
from __future__ import annotations

import bisect
import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

from legalmd.blocks import reindex
from legalmd.conditionals import compare_values
from legalmd.config import ResolverConfig
from legalmd.document_types import Block, TrackingStatus
from legalmd.errors import (
    ExpressionSyntaxError,
    HelperExecutionError,
    HelperNotFoundError,
    LegalMarkdownError,
    TemplateStructureError,
    TokenResolutionError,
    UndefinedVariableError,
)
from legalmd.metadata import MISSING, lookup_path
from legalmd.template.expressions import Binary, Call, Expr, Lit, Path, Ternary, Unary
from legalmd.template.helpers import HelperRegistry, default_registry, format_date, to_display
from legalmd.template.lexer import block_balance
from legalmd.template.parser import Node, OutputNode, SectionNode, TextNode, parse_template
from legalmd.tracking import FieldTracker

log = logging.getLogger(__name__)

TODAY = "@today"

_TODAY_RE = re.compile(r"(?<![\w.@])@today(?:\[([^\]\n]+)\])?(?![\w])")
_MARKER_RE = re.compile("\x1e(\\d+)\x1e")


def _marker(k: int) -> str:
    return f"\x1e{k}\x1e"


# ---------------------------------------------------------------------------
# Scope chain
# ---------------------------------------------------------------------------

class Scope:
    """Lookup context: loop element, loop locals, then enclosing scopes up to the root."""

    __slots__ = ("data", "parent", "locals")

    def __init__(self, data: Any, parent: Scope | None = None, locals_: dict[str, Any] | None = None) -> None:
        self.data = data
        self.parent = parent
        self.locals = locals_ or {}

    def lookup(self, path: str) -> Any:
        scope: Scope = self
        while path.startswith("../"):
            scope = scope.parent or scope
            path = path[3:]
        if path in ("this", "."):
            return scope.data
        if path.startswith("this."):
            return lookup_path(scope.data, path[5:])

        current: Scope | None = scope
        if path.startswith("@"):
            while current is not None:
                if path in current.locals:
                    return current.locals[path]
                current = current.parent
            return MISSING
        while current is not None:
            value = lookup_path(current.data, path)
            if value is not MISSING:
                return value
            current = current.parent
        return MISSING


def _truthy(value: Any) -> bool:
    return value is not MISSING and bool(value)


# ---------------------------------------------------------------------------
# Renderer
# ---------------------------------------------------------------------------

class _Renderer:
    """Renders parsed templates for one document run."""

    def __init__(
        self,
        registry: HelperRegistry,
        config: ResolverConfig,
        now: datetime,
        tracker: FieldTracker | None,
        document: str | None,
    ) -> None:
        self.registry = registry
        self.config = config
        self.now = now
        self.tracker = tracker
        self.document = document
        self._run: Sequence[Block] = ()
        self._starts: list[int] = [0]

    # ─── Positions and tracking ─────────────────────────────────────

    def _locate(self, pos: int) -> tuple[int, int]:
        """Map an offset in the joined run text to (block index, offset in block)."""
        if not self._run:
            return 0, pos
        k = max(bisect.bisect_right(self._starts, pos) - 1, 0)
        return self._run[k].index, max(pos - self._starts[k], 0)

    def _track(
        self, name: str, status: TrackingStatus, start: int, end: int,
        *, value: Any = None, source_text: str = "", reason: str = "",
    ) -> None:
        if self.tracker is None:
            return
        block_index, offset = self._locate(start)
        self.tracker.record(
            name=name, status=status, stage="interpolation", block_index=block_index,
            start=offset, end=offset + (end - start), value=value,
            source_text=source_text, reason=reason,
        )

    def _report(self, exc: TokenResolutionError, start: int, end: int, source_text: str) -> None:
        if self.config.strict:
            exc.document = exc.document or self.document
            raise exc
        log.debug("Unresolved %s: %s", exc.reason, exc.name)
        self._track(
            exc.name, TrackingStatus.MISSING, start, end,
            source_text=source_text, reason=exc.reason,
        )

    # ─── Evaluation ─────────────────────────────────────────────────

    def evaluate(self, expr: Expr, scope: Scope) -> Any:
        match expr:
            case Lit(value=value):
                return value
            case Path(path=path):
                return self._lookup(path, scope)
            case Call(name=name, args=args):
                return self._call(name, [self.evaluate(a, scope) for a in args])
            case Unary(operand=operand):
                return not _truthy(self.evaluate(operand, scope))
            case Binary(op="&&", left=left, right=right):
                value = self.evaluate(left, scope)
                return self.evaluate(right, scope) if _truthy(value) else value
            case Binary(op="||", left=left, right=right):
                value = self.evaluate(left, scope)
                return value if _truthy(value) else self.evaluate(right, scope)
            case Binary(op=op, left=left, right=right):
                lhs, rhs = self.evaluate(left, scope), self.evaluate(right, scope)
                return compare_values(
                    op, None if lhs is MISSING else lhs, None if rhs is MISSING else rhs,
                )
            case Ternary(condition=condition, then=then, otherwise=otherwise):
                branch = then if _truthy(self.evaluate(condition, scope)) else otherwise
                return self.evaluate(branch, scope)
        raise TypeError(f"Unknown expression node: {expr!r}")

    def _lookup(self, path: str, scope: Scope) -> Any:
        if path == TODAY:
            return self.now.date()
        value = scope.lookup(path)
        if value is MISSING and path in self.registry:
            return self._call(path, [])
        if isinstance(value, str) and value.strip() == TODAY:
            return self.now.date()
        return value

    def _call(self, name: str, args: list[Any]) -> Any:
        entry = self.registry.get(name)
        if entry is None:
            raise HelperNotFoundError(name, f"Unknown helper: {name}", document=self.document)
        values = [None if a is MISSING else a for a in args]
        try:
            if entry.needs_clock:
                return entry.func(self.now, *values)
            return entry.func(*values)
        except LegalMarkdownError:
            raise
        except Exception as exc:
            raise HelperExecutionError(
                name, f"Helper {name} failed: {exc}", document=self.document,
            ) from exc

    # ─── Rendering ──────────────────────────────────────────────────

    def render(self, nodes: list[Node], scope: Scope) -> str:
        parts: list[str] = []
        for node in nodes:
            match node:
                case TextNode():
                    parts.append(self._render_text(node))
                case OutputNode():
                    parts.append(self._render_output(node, scope))
                case SectionNode(helper="each"):
                    parts.append(self._render_each(node, scope))
                case SectionNode():
                    parts.append(self._render_if(node, scope))
        return "".join(parts)

    def _render_text(self, node: TextNode) -> str:
        if TODAY not in node.text:
            return node.text

        def substitute(m: re.Match[str]) -> str:
            fmt = m.group(1) or self.config.date_format
            rendered = format_date(self.now.date(), fmt)
            self._track(
                TODAY, TrackingStatus.RESOLVED, node.start + m.start(), node.start + m.end(),
                value=rendered, source_text=m.group(0),
            )
            return rendered

        return _TODAY_RE.sub(substitute, node.text)

    def _render_output(self, node: OutputNode, scope: Scope) -> str:
        source_text = "{{" + node.source + "}}"
        try:
            value = self.evaluate(node.expr, scope)
        except TokenResolutionError as exc:
            self._report(exc, node.start, node.end, source_text)
            return self.config.missing(exc.name)
        if value is MISSING:
            self._report(
                UndefinedVariableError(node.source, document=self.document),
                node.start, node.end, source_text,
            )
            return self.config.missing(node.source)
        rendered = to_display(value, self.config.date_format)
        self._track(
            node.source, TrackingStatus.RESOLVED, node.start, node.end,
            value=rendered, source_text=source_text,
        )
        return rendered

    def _section_value(self, node: SectionNode, scope: Scope) -> tuple[Any, bool]:
        """(value, failed); a failed helper call is reported once, here."""
        try:
            return self.evaluate(node.expr, scope), False
        except TokenResolutionError as exc:
            self._report(exc, node.start, node.end, "{{#" + node.helper + " " + node.source + "}}")
            return MISSING, True

    def _render_if(self, node: SectionNode, scope: Scope) -> str:
        value, _ = self._section_value(node, scope)
        ok = _truthy(value)
        if node.helper == "unless":
            ok = not ok
        self._track(
            node.source,
            TrackingStatus.CONDITIONAL_KEPT if ok else TrackingStatus.CONDITIONAL_DROPPED,
            node.start, node.end, value=ok,
            source_text="{{#" + node.helper + " " + node.source + "}}",
        )
        return self.render(node.body if ok else node.else_body, scope)

    def _render_each(self, node: SectionNode, scope: Scope) -> str:
        value, failed = self._section_value(node, scope)
        source_text = "{{#each " + node.source + "}}"
        items: list[tuple[Any, Any]] = []
        if value is MISSING:
            if not failed:
                self._report(
                    UndefinedVariableError(node.source, document=self.document),
                    node.start, node.end, source_text,
                )
        elif isinstance(value, Mapping):
            items = list(value.items())
        elif isinstance(value, list | tuple):
            items = [(None, item) for item in value]
        elif value is not None:
            log.warning("#each over non-list %s (%s); rendering nothing", node.source, type(value).__name__)
        if value is not MISSING:
            self._track(
                node.source, TrackingStatus.RESOLVED, node.start, node.end,
                value=len(items), source_text=source_text,
            )

        if not items:
            return self.render(node.else_body, scope)
        parts: list[str] = []
        last = len(items) - 1
        for i, (key, item) in enumerate(items):
            locals_: dict[str, Any] = {"@index": i, "@first": i == 0, "@last": i == last}
            if key is not None:
                locals_["@key"] = key
            parts.append(self.render(node.body, Scope(item, scope, locals_)))
        return "".join(parts)

    # ─── Entry points ───────────────────────────────────────────────

    def _parse(self, text: str) -> list[Node]:
        try:
            return parse_template(text)
        except (TemplateStructureError, ExpressionSyntaxError) as exc:
            exc.document = exc.document or self.document
            raise

    def render_string(self, text: str, metadata: Mapping[str, Any]) -> str:
        self._run, self._starts = (), [0]
        return self.render(self._parse(text), Scope(metadata))

    def render_run(self, run: Sequence[Block], metadata: Mapping[str, Any]) -> list[tuple[int, Block]]:
        """Render consecutive blocks as one template; return (run position, block) pieces."""
        parts: list[str] = []
        starts: list[int] = []
        pos = 0
        for k, block in enumerate(run):
            marker = _marker(k)
            parts += [marker, block.text]
            starts.append(pos + len(marker))
            pos += len(marker) + len(block.text)
        self._run, self._starts = run, starts

        rendered = self.render(self._parse("".join(parts)), Scope(metadata))
        pieces = _MARKER_RE.split(rendered)
        out: list[tuple[int, Block]] = []
        for k_text, text in zip(pieces[1::2], pieces[2::2], strict=True):
            k = int(k_text)
            block = run[k]
            text = text.strip()
            if not text and not block.is_header:
                continue
            out.append((k, block if text == block.text else replace(block, text=text)))
        return out


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def _needs_rendering(block: Block) -> bool:
    return block.kind != "raw" and ("{{" in block.text or TODAY in block.text)


def interpolate_blocks(
    blocks: Sequence[Block],
    metadata: Mapping[str, Any],
    tracker: FieldTracker | None = None,
    *,
    registry: HelperRegistry | None = None,
    config: ResolverConfig | None = None,
    now: datetime | None = None,
    document: str | None = None,
) -> list[Block]:
    """Resolve ``{{...}}`` tags, sections and ``@today`` in every non-raw block.

    Blocks left empty by a section (an opening tag on its own line, or a
    false ``#if`` covering the whole block) are removed; a loop over list
    items yields one list item per element.
    """
    renderer = _Renderer(
        registry if registry is not None else default_registry(),
        config or ResolverConfig(),
        now or datetime.now(UTC),
        tracker,
        document,
    )
    out: list[Block] = []
    mapping: dict[int, int] = {}
    i = 0
    while i < len(blocks):
        block = blocks[i]
        if not _needs_rendering(block):
            mapping[block.index] = len(out)
            out.append(block)
            i += 1
            continue

        run = [block]
        balance = block_balance(block.text)
        j = i + 1
        while balance > 0 and j < len(blocks):
            run.append(blocks[j])
            if blocks[j].kind != "raw":
                balance += block_balance(blocks[j].text)
            j += 1
        if balance > 0:
            raise TemplateStructureError(
                f"Template section opened in block {block.index} (line {block.line}) is never closed",
                document=block.source or document,
            )

        first_out: dict[int, int] = {}
        for k, piece in renderer.render_run(run, metadata):
            first_out.setdefault(k, len(out))
            out.append(piece)
        # A block that rendered to nothing maps to the next piece that survived.
        nxt = len(out)
        for k in range(len(run) - 1, -1, -1):
            nxt = first_out.get(k, nxt)
            mapping[run[k].index] = nxt
        if len(run) > 1:
            log.debug("Rendered template run of %d blocks starting at block %d", len(run), block.index)
        i = j

    if tracker is not None:
        tracker.remap_blocks(mapping)
    return reindex(out)


def render_template(
    text: str,
    metadata: Mapping[str, Any],
    *,
    registry: HelperRegistry | None = None,
    config: ResolverConfig | None = None,
    now: datetime | None = None,
    tracker: FieldTracker | None = None,
    document: str | None = None,
) -> str:
    """Render one standalone template string against ``metadata``."""
    renderer = _Renderer(
        registry if registry is not None else default_registry(),
        config or ResolverConfig(),
        now or datetime.now(UTC),
        tracker,
        document,
    )
    return renderer.render_string(text, metadata)
