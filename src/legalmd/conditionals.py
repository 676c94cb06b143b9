"""Guard expressions and the conditional stage.

Grammar::

    expr      := or_expr
    or_expr   := and_expr (('||' | OR) and_expr)*
    and_expr  := not_expr (('&&' | AND) not_expr)*
    not_expr  := ('!' | NOT) not_expr | cmp_expr
    cmp_expr  := atom (CMP_OP atom)?
    atom      := '(' expr ')' | STRING | NUMBER | true | false | null | PATH
    CMP_OP    := '==' | '=' | '!=' | '<' | '<=' | '>' | '>='

Keywords are case-insensitive. A path that is not defined in the metadata
evaluates to None, so ``[text]{undefined_flag}`` is dropped rather than
raising.

Public API:

* ``parse_condition(text)`` — parse a guard into a ConditionExpression tree.
* ``evaluate_condition(node, metadata)`` — evaluate a tree to a Python value.
* ``is_truthy(text, metadata)`` — parse + evaluate + truthiness in one call.
* ``apply_conditionals(blocks, metadata, tracker)`` — the pipeline stage.
"""
from __future__ import annotations

import functools
import logging
import operator
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from typing import Any, NoReturn

from legalmd.blocks import matching_bracket, reindex
from legalmd.document_types import Block, TrackingStatus
from legalmd.errors import ExpressionSyntaxError
from legalmd.metadata import MISSING, lookup_path
from legalmd.tracking import FieldTracker

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# AST node types
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class VarRef:
    path: str


@dataclass(frozen=True, slots=True)
class Literal:
    value: Any


@dataclass(frozen=True, slots=True)
class Not:
    operand: ConditionExpression


@dataclass(frozen=True, slots=True)
class And:
    left: ConditionExpression
    right: ConditionExpression


@dataclass(frozen=True, slots=True)
class Or:
    left: ConditionExpression
    right: ConditionExpression


@dataclass(frozen=True, slots=True)
class Compare:
    op: str
    left: ConditionExpression
    right: ConditionExpression


type ConditionExpression = VarRef | Literal | Not | And | Or | Compare


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class _Token:
    """A single lexical token."""

    kind: str  # see _TOKEN_PATTERNS keys + "EOF"
    value: str
    pos: int


# Order matters (first match wins): '!=' must lex before '!'.
_TOKEN_PATTERNS: list[tuple[str, str]] = [
    ("WHITESPACE", r"\s+"),
    ("AND", r"&&"),
    ("OR", r"\|\|"),
    ("CMP", r"==|!=|<=|>=|<|>|="),
    ("BANG", r"!"),
    ("LPAREN", r"\("),
    ("RPAREN", r"\)"),
    ("STRING", r"\"[^\"]*\"|'[^']*'"),
    ("NUMBER", r"-?\d+(?:\.\d+)?(?![\w.])"),
    ("PATH", r"[A-Za-z_@$][\w.\-@$]*(?:\[\d+\][\w.\-]*)*"),
]

_COMPILED_PATTERNS = [(name, re.compile(pat)) for name, pat in _TOKEN_PATTERNS]

_KEYWORDS: dict[str, str] = {"and": "AND", "or": "OR", "not": "BANG"}
_CONSTANTS: dict[str, Any] = {"true": True, "false": False, "null": None, "none": None}


def _tokenize(text: str) -> list[_Token]:
    tokens: list[_Token] = []
    pos = 0
    while pos < len(text):
        for name, pattern in _COMPILED_PATTERNS:
            m = pattern.match(text, pos)
            if m:
                if name == "PATH" and m.group().lower() in _KEYWORDS:
                    name = _KEYWORDS[m.group().lower()]
                if name != "WHITESPACE":
                    tokens.append(_Token(kind=name, value=m.group(), pos=pos))
                pos = m.end()
                break
        else:
            raise ExpressionSyntaxError(
                f"Unexpected character {text[pos]!r}", expression=text, position=pos,
            )
    tokens.append(_Token(kind="EOF", value="", pos=pos))
    return tokens


# ---------------------------------------------------------------------------
# Recursive descent parser
# ---------------------------------------------------------------------------

class _Parser:
    """Recursive descent parser for guard expressions."""

    def __init__(self, tokens: list[_Token], source_text: str) -> None:
        self._tokens = tokens
        self._source = source_text
        self._pos = 0

    def _peek(self) -> _Token:
        return self._tokens[self._pos]

    def _advance(self) -> _Token:
        tok = self._tokens[self._pos]
        if self._pos < len(self._tokens) - 1:
            self._pos += 1
        return tok

    def _expect(self, kind: str) -> _Token:
        tok = self._peek()
        if tok.kind != kind:
            self._fail(f"Expected {kind}, got {tok.kind} ({tok.value!r})", tok)
        return self._advance()

    def _fail(self, message: str, tok: _Token) -> NoReturn:
        raise ExpressionSyntaxError(message, expression=self._source, position=tok.pos)

    def parse(self) -> ConditionExpression:
        node = self._parse_or()
        tok = self._peek()
        if tok.kind != "EOF":
            self._fail(f"Unexpected {tok.value!r}", tok)
        return node

    def _parse_or(self) -> ConditionExpression:
        left = self._parse_and()
        while self._peek().kind == "OR":
            self._advance()
            left = Or(left, self._parse_and())
        return left

    def _parse_and(self) -> ConditionExpression:
        left = self._parse_not()
        while self._peek().kind == "AND":
            self._advance()
            left = And(left, self._parse_not())
        return left

    def _parse_not(self) -> ConditionExpression:
        if self._peek().kind == "BANG":
            self._advance()
            return Not(self._parse_not())
        return self._parse_compare()

    def _parse_compare(self) -> ConditionExpression:
        left = self._parse_atom()
        if self._peek().kind == "CMP":
            op = self._advance().value
            return Compare("==" if op == "=" else op, left, self._parse_atom())
        return left

    def _parse_atom(self) -> ConditionExpression:
        tok = self._peek()
        match tok.kind:
            case "LPAREN":
                self._advance()
                node = self._parse_or()
                self._expect("RPAREN")
                return node
            case "STRING":
                self._advance()
                return Literal(tok.value[1:-1])
            case "NUMBER":
                self._advance()
                return Literal(float(tok.value) if "." in tok.value else int(tok.value))
            case "PATH":
                self._advance()
                lowered = tok.value.lower()
                if lowered in _CONSTANTS:
                    return Literal(_CONSTANTS[lowered])
                return VarRef(tok.value)
            case "EOF":
                self._fail("Unexpected end of expression", tok)
            case _:
                self._fail(f"Unexpected {tok.value!r}", tok)


@functools.lru_cache(maxsize=1024)
def parse_condition(text: str) -> ConditionExpression:
    """Parse a guard expression. An empty guard parses to ``Literal(True)``."""
    if not text.strip():
        return Literal(True)
    return _Parser(_tokenize(text), text).parse()


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

_COMPARATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def compare_values(op: str, left: Any, right: Any) -> bool:
    """Compare two values; numeric strings compare as numbers against numbers."""
    if isinstance(left, int | float) or isinstance(right, int | float):
        lnum, rnum = _as_number(left), _as_number(right)
        if lnum is not None and rnum is not None:
            left, right = lnum, rnum
    try:
        return _COMPARATORS[op](left, right)
    except TypeError:
        return False


def evaluate_condition(node: ConditionExpression, metadata: Mapping[str, Any]) -> Any:
    """Evaluate a parsed guard against metadata; undefined paths are None."""
    match node:
        case Literal(value=value):
            return value
        case VarRef(path=path):
            found = lookup_path(metadata, path)
            return None if found is MISSING else found
        case Not(operand=operand):
            return not evaluate_condition(operand, metadata)
        case And(left=left, right=right):
            return bool(evaluate_condition(left, metadata)) and bool(
                evaluate_condition(right, metadata)
            )
        case Or(left=left, right=right):
            return bool(evaluate_condition(left, metadata)) or bool(
                evaluate_condition(right, metadata)
            )
        case Compare(op=op, left=left, right=right):
            return compare_values(op, evaluate_condition(left, metadata), evaluate_condition(right, metadata))
    raise TypeError(f"Unknown condition node: {node!r}")


def is_truthy(expression: str, metadata: Mapping[str, Any]) -> bool:
    """None, False, 0, "", [] and {} are false; everything else is true."""
    return bool(evaluate_condition(parse_condition(expression), metadata))


# ---------------------------------------------------------------------------
# Inline guards: [text]{expr}
# ---------------------------------------------------------------------------

def _guard_suffix(text: str, close: int) -> int | None:
    """Index of the ``}`` ending a ``{expr}`` right after ``text[close] == ']'``."""
    brace = close + 1
    if brace >= len(text) or text[brace] != "{" or text.startswith("{{", brace):
        return None
    end = text.find("}", brace + 1)
    if end == -1 or "{" in text[brace + 1:end]:
        return None
    return end


def _resolve_inline(
    text: str,
    base: int,
    metadata: Mapping[str, Any],
    tracker: FieldTracker,
    block_index: int,
) -> str:
    out: list[str] = []
    pos = 0
    while True:
        open_pos = text.find("[", pos)
        if open_pos == -1:
            out.append(text[pos:])
            break
        close = matching_bracket(text, open_pos)
        end = _guard_suffix(text, close) if close is not None else None
        if close is None or end is None:
            out.append(text[pos:open_pos + 1])
            pos = open_pos + 1
            continue

        out.append(text[pos:open_pos])
        expression = text[close + 2:end].strip()
        kept = is_truthy(expression, metadata)
        tracker.record(
            name=expression,
            status=TrackingStatus.CONDITIONAL_KEPT if kept else TrackingStatus.CONDITIONAL_DROPPED,
            stage="conditional",
            block_index=block_index,
            start=base + open_pos,
            end=base + end + 1,
            value=kept,
            source_text=text[open_pos:end + 1],
        )
        if kept:
            # Inner guards are only evaluated under a true outer guard.
            out.append(
                _resolve_inline(text[open_pos + 1:close], base + open_pos + 1, metadata, tracker, block_index)
            )
        pos = end + 1
    return "".join(out)


def resolve_inline_guards(
    text: str,
    metadata: Mapping[str, Any],
    tracker: FieldTracker,
    block_index: int = 0,
) -> str:
    """Strip or keep every ``[text]{expr}`` span in ``text``."""
    if "]{" not in text:
        return text
    return _resolve_inline(text, 0, metadata, tracker, block_index)


# ---------------------------------------------------------------------------
# Stage
# ---------------------------------------------------------------------------

def apply_conditionals(
    blocks: list[Block],
    metadata: Mapping[str, Any],
    tracker: FieldTracker,
    *,
    document: str | None = None,
) -> list[Block]:
    """Drop blocks whose guards are false and resolve inline guards.

    Each block guard is evaluated once per guard id, outermost first; a
    false guard short-circuits the guards nested inside it. Tracking records
    of dropped blocks point at the position the block would have held.
    """
    results: dict[int, bool] = {}
    survivors: list[Block] = []
    mapping: dict[int, int] = {}

    try:
        for block in blocks:
            mapping[block.index] = len(survivors)
            keep = True
            for guard in block.guards:
                if guard.guard_id not in results:
                    ok = is_truthy(guard.expression, metadata)
                    results[guard.guard_id] = ok
                    tracker.record(
                        name=guard.expression,
                        status=TrackingStatus.CONDITIONAL_KEPT if ok else TrackingStatus.CONDITIONAL_DROPPED,
                        stage="conditional",
                        block_index=block.index,
                        value=ok,
                        source_text=f"{{{guard.expression}}}",
                    )
                if not results[guard.guard_id]:
                    keep = False
                    break
            if not keep:
                log.debug("Dropped %s block %d (line %d)", block.kind, block.index, block.line)
                continue
            if block.kind == "raw":
                survivors.append(block)
                continue
            text = resolve_inline_guards(block.text, metadata, tracker, block.index)
            survivors.append(replace(block, text=text) if text != block.text else block)
    except ExpressionSyntaxError as exc:
        exc.document = exc.document or document
        raise

    tracker.remap_blocks(mapping)
    log.debug("Conditionals kept %d of %d blocks", len(survivors), len(blocks))
    return reindex(survivors)
