"""Expressions inside ``{{ ... }}``.

Grammar::

    expr      := or_expr ('?' expr ':' expr)?
    or_expr   := and_expr ('||' and_expr)*
    and_expr  := unary ('&&' unary)*
    unary     := '!' unary | cmp
    cmp       := call (CMP_OP call)?
    call      := PATH '(' [expr (',' expr)*] ')'   -- function style, no space before '('
               | PATH arg+                         -- Handlebars style
               | primary
    arg       := PATH '(' ... ')' | primary
    primary   := '(' expr ')' | STRING | NUMBER | true | false | null | PATH

``(helper x)`` is a parenthesized Handlebars call, so subexpressions
evaluate innermost first. A bare PATH that names a helper and is not
defined in the data calls the helper with no arguments (``{{today}}``).
"""
from __future__ import annotations

import functools
import re
from dataclasses import dataclass
from typing import Any, NoReturn

from legalmd.errors import ExpressionSyntaxError

# ---------------------------------------------------------------------------
# AST node types
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class Lit:
    value: Any


@dataclass(frozen=True, slots=True)
class Path:
    path: str   # "a.b[0]", "this", ".", "@index", "../name", "@today"


@dataclass(frozen=True, slots=True)
class Call:
    name: str
    args: tuple[Expr, ...]


@dataclass(frozen=True, slots=True)
class Unary:
    operand: Expr


@dataclass(frozen=True, slots=True)
class Binary:
    op: str     # "&&" | "||" | "==" | "!=" | "<" | "<=" | ">" | ">="
    left: Expr
    right: Expr


@dataclass(frozen=True, slots=True)
class Ternary:
    condition: Expr
    then: Expr
    otherwise: Expr


type Expr = Lit | Path | Call | Unary | Binary | Ternary


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class _Token:
    kind: str
    value: str
    pos: int


_TOKEN_PATTERNS: list[tuple[str, str]] = [
    ("WHITESPACE", r"\s+"),
    ("AND", r"&&"),
    ("OR", r"\|\|"),
    ("CMP", r"===?|!==?|<=|>=|<|>"),
    ("BANG", r"!"),
    ("QUESTION", r"\?"),
    ("COLON", r":"),
    ("COMMA", r","),
    ("LPAREN", r"\("),
    ("RPAREN", r"\)"),
    ("STRING", r"\"(?:[^\"\\]|\\.)*\"|'(?:[^'\\]|\\.)*'"),
    ("NUMBER", r"-?\d+(?:\.\d+)?(?![\w])"),
    ("PATH", r"(?:\.\./)*(?:@?[A-Za-z_$][\w$\-]*)(?:\[\d+\])*(?:\.[\w$\-]+(?:\[\d+\])*)*"),
    ("DOT", r"\.(?![\w.])"),
]

_COMPILED_PATTERNS = [(name, re.compile(pat)) for name, pat in _TOKEN_PATTERNS]

_CONSTANTS: dict[str, Any] = {"true": True, "false": False, "null": None, "undefined": None}
_ARG_START = frozenset({"STRING", "NUMBER", "PATH", "DOT", "LPAREN"})
_STRING_ESCAPE_RE = re.compile(r"\\(.)")


def _tokenize(text: str) -> list[_Token]:
    tokens: list[_Token] = []
    pos = 0
    while pos < len(text):
        for name, pattern in _COMPILED_PATTERNS:
            m = pattern.match(text, pos)
            if m:
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
# Parser
# ---------------------------------------------------------------------------

class _Parser:
    def __init__(self, tokens: list[_Token], source_text: str) -> None:
        self._tokens = tokens
        self._source = source_text
        self._pos = 0

    def _peek(self, offset: int = 0) -> _Token:
        return self._tokens[min(self._pos + offset, len(self._tokens) - 1)]

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

    def parse(self) -> Expr:
        node = self._parse_expr()
        tok = self._peek()
        if tok.kind != "EOF":
            self._fail(f"Unexpected {tok.value!r}", tok)
        return node

    def _parse_expr(self) -> Expr:
        cond = self._parse_or()
        if self._peek().kind != "QUESTION":
            return cond
        self._advance()
        then = self._parse_expr()
        self._expect("COLON")
        return Ternary(cond, then, self._parse_expr())

    def _parse_or(self) -> Expr:
        left = self._parse_and()
        while self._peek().kind == "OR":
            self._advance()
            left = Binary("||", left, self._parse_and())
        return left

    def _parse_and(self) -> Expr:
        left = self._parse_unary()
        while self._peek().kind == "AND":
            self._advance()
            left = Binary("&&", left, self._parse_unary())
        return left

    def _parse_unary(self) -> Expr:
        if self._peek().kind == "BANG":
            self._advance()
            return Unary(self._parse_unary())
        return self._parse_compare()

    def _parse_compare(self) -> Expr:
        left = self._parse_call()
        if self._peek().kind == "CMP":
            op = self._advance().value
            op = {"===": "==", "!==": "!="}.get(op, op)
            return Binary(op, left, self._parse_call())
        return left

    def _is_function_call(self) -> bool:
        tok, nxt = self._peek(), self._peek(1)
        return tok.kind == "PATH" and nxt.kind == "LPAREN" and nxt.pos == tok.pos + len(tok.value)

    def _parse_function_call(self) -> Call:
        name = self._advance().value
        self._expect("LPAREN")
        args: list[Expr] = []
        if self._peek().kind != "RPAREN":
            args.append(self._parse_expr())
            while self._peek().kind == "COMMA":
                self._advance()
                args.append(self._parse_expr())
        self._expect("RPAREN")
        return Call(name, tuple(args))

    def _parse_call(self) -> Expr:
        if self._is_function_call():
            return self._parse_function_call()
        tok = self._peek()
        if tok.kind == "PATH" and tok.value not in _CONSTANTS and self._peek(1).kind in _ARG_START:
            name = self._advance().value
            args: list[Expr] = []
            while self._peek().kind in _ARG_START:
                args.append(self._parse_function_call() if self._is_function_call() else self._parse_primary())
            return Call(name, tuple(args))
        return self._parse_primary()

    def _parse_primary(self) -> Expr:
        tok = self._peek()
        match tok.kind:
            case "LPAREN":
                self._advance()
                node = self._parse_expr()
                self._expect("RPAREN")
                return node
            case "STRING":
                self._advance()
                return Lit(_STRING_ESCAPE_RE.sub(r"\1", tok.value[1:-1]))
            case "NUMBER":
                self._advance()
                return Lit(float(tok.value) if "." in tok.value else int(tok.value))
            case "PATH":
                self._advance()
                if tok.value in _CONSTANTS:
                    return Lit(_CONSTANTS[tok.value])
                return Path(tok.value)
            case "DOT":
                self._advance()
                return Path(".")
            case "EOF":
                self._fail("Unexpected end of expression", tok)
            case _:
                self._fail(f"Unexpected {tok.value!r}", tok)


@functools.lru_cache(maxsize=2048)
def parse_expression(text: str) -> Expr:
    """Parse the inside of one ``{{ ... }}`` tag."""
    if not text.strip():
        raise ExpressionSyntaxError("Empty expression", expression=text, position=0)
    return _Parser(_tokenize(text), text).parse()
