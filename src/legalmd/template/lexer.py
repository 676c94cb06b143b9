"""Template lexer: splits text into literal runs and ``{{ ... }}`` tags."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

type TagKind = Literal["text", "expr", "open", "else", "close", "comment"]

_TAG_RE = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
_OPEN_RE = re.compile(r"^#\s*(\w+)\s*(.*)$", re.DOTALL)
_CLOSE_RE = re.compile(r"^/\s*(\w+)\s*$")

BLOCK_HELPERS: frozenset[str] = frozenset({"each", "if", "unless"})


@dataclass(frozen=True, slots=True)
class TemplateToken:
    """One lexical piece of a template.

    ``start``/``end`` are offsets of the whole piece (braces included) in
    the lexed text; ``body`` is the tag content without braces and block
    keyword, or the literal text for ``text`` tokens.
    """
    kind: TagKind
    body: str
    start: int
    end: int
    name: str = ""          # block helper name for open/close tags


def lex_template(text: str) -> list[TemplateToken]:
    tokens: list[TemplateToken] = []
    pos = 0
    for m in _TAG_RE.finditer(text):
        if m.start() > pos:
            tokens.append(TemplateToken("text", text[pos:m.start()], pos, m.start()))
        inner = m.group(1).strip()
        if inner.startswith("!--"):
            tokens.append(TemplateToken("comment", inner, m.start(), m.end()))
        elif (om := _OPEN_RE.match(inner)):
            tokens.append(TemplateToken("open", om.group(2).strip(), m.start(), m.end(), name=om.group(1)))
        elif (cm := _CLOSE_RE.match(inner)):
            tokens.append(TemplateToken("close", "", m.start(), m.end(), name=cm.group(1)))
        elif inner == "else":
            tokens.append(TemplateToken("else", "", m.start(), m.end()))
        else:
            tokens.append(TemplateToken("expr", inner, m.start(), m.end()))
        pos = m.end()
    if pos < len(text):
        tokens.append(TemplateToken("text", text[pos:], pos, len(text)))
    return tokens


def block_balance(text: str) -> int:
    """Open block tags minus close block tags in ``text``."""
    balance = 0
    for tok in lex_template(text):
        if tok.kind == "open":
            balance += 1
        elif tok.kind == "close":
            balance -= 1
    return balance
