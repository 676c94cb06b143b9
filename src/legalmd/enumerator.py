"""Numbering styles and level-format templates for header labels.

Numbering styles:
  arabic — 1, 2, 3, ...        (zero-padded with ``%02n``)
  alpha  — a, b, ..., z, aa, ab, ...
  caps   — A, B, ..., Z, AA, AB, ...
  roman  — i, ii, iii, iv, ...
  ROMAN  — I, II, III, IV, ...

A level format such as ``"Article %n."`` or ``"%n.%s.%t"`` is tokenized once
into literals and placeholders; each placeholder is then bound to a concrete
header level (see :func:`bind_placeholders`) and rendered from the counters.

Placeholders:
  %n        arabic          %0Nn   zero-padded arabic (N digits)
  %c, %a    alpha           %A     caps
  %r        roman           %R     ROMAN
  %s %t %f %i               ancestor placeholders (positional formats)
  %l1..%l9                  that level's counter, arabic
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

type NumberStyle = Literal["arabic", "alpha", "caps", "roman", "ROMAN"]

# ---------------------------------------------------------------------------
# Roman numeral utilities
# ---------------------------------------------------------------------------

_ROMAN_TABLE: tuple[tuple[int, str], ...] = (
    (1000, "m"), (900, "cm"), (500, "d"), (400, "cd"),
    (100, "c"), (90, "xc"), (50, "l"), (40, "xl"),
    (10, "x"), (9, "ix"), (5, "v"), (4, "iv"), (1, "i"),
)


def int_to_roman(n: int, *, upper: bool = False) -> str:
    """Convert a positive int to a roman numeral; '' for n <= 0."""
    if n <= 0:
        return ""
    out: list[str] = []
    for value, numeral in _ROMAN_TABLE:
        while n >= value:
            out.append(numeral)
            n -= value
    roman = "".join(out)
    return roman.upper() if upper else roman


# ---------------------------------------------------------------------------
# Alphabetic labels
# ---------------------------------------------------------------------------

def int_to_alpha(n: int, *, upper: bool = False) -> str:
    """Bijective base-26: 1=a, 26=z, 27=aa, 28=ab; '' for n <= 0."""
    if n <= 0:
        return ""
    chars: list[str] = []
    while n > 0:
        n, rem = divmod(n - 1, 26)
        chars.append(chr(ord("a") + rem))
    label = "".join(reversed(chars))
    return label.upper() if upper else label


def render_number(n: int, style: NumberStyle, width: int = 0) -> str:
    """Render a counter value in the given style."""
    if style == "arabic":
        return str(n).zfill(width) if width else str(n)
    if style == "alpha":
        return int_to_alpha(n)
    if style == "caps":
        return int_to_alpha(n, upper=True)
    if style == "roman":
        return int_to_roman(n)
    if style == "ROMAN":
        return int_to_roman(n, upper=True)
    raise ValueError(f"Unknown number style: {style!r}")


# ---------------------------------------------------------------------------
# Level-format tokenizer
# ---------------------------------------------------------------------------

_STYLE_CODES: dict[str, NumberStyle] = {
    "n": "arabic",
    "c": "alpha",
    "a": "alpha",
    "A": "caps",
    "r": "roman",
    "R": "ROMAN",
}

# Positional formats: %n=level 1, %s=level 2, %t=level 3, %f=level 4, %i=level 5
_POSITIONAL_LEVELS: dict[str, int] = {"n": 1, "s": 2, "t": 3, "f": 4, "i": 5}

_PLACEHOLDER_RE = re.compile(r"%(?:l([1-9])|0(\d+)([nstfi])|([ncaArRstfi]))")


@dataclass(frozen=True, slots=True)
class FormatToken:
    """One piece of a level format: a literal, or a placeholder."""
    literal: str = ""
    code: str = ""             # "n", "c", "s", ... ; "" for literals
    style: NumberStyle = "arabic"
    width: int = 0             # zero-padding width for %0Nn
    fixed_level: int = 0       # %lN binds to level N regardless of position

    @property
    def is_placeholder(self) -> bool:
        return bool(self.code)


def tokenize_format(template: str) -> tuple[FormatToken, ...]:
    """Split a level format into literal and placeholder tokens.

    An unrecognized ``%x`` sequence stays literal.
    """
    tokens: list[FormatToken] = []
    pos = 0
    for m in _PLACEHOLDER_RE.finditer(template):
        if m.start() > pos:
            tokens.append(FormatToken(literal=template[pos:m.start()]))
        fixed, width, padded_code, code = m.groups()
        if fixed:
            tokens.append(FormatToken(code="l", fixed_level=int(fixed)))
        elif padded_code:
            tokens.append(FormatToken(code=padded_code, width=int(width)))
        else:
            tokens.append(FormatToken(code=code, style=_STYLE_CODES.get(code, "arabic")))
        pos = m.end()
    if pos < len(template):
        tokens.append(FormatToken(literal=template[pos:]))
    return tuple(tokens)


def is_positional(tokens: tuple[FormatToken, ...]) -> bool:
    """True when the format uses ancestor placeholders (%s %t %f %i)."""
    return any(t.code in ("s", "t", "f", "i") for t in tokens)


def bind_placeholders(tokens: tuple[FormatToken, ...], level: int) -> list[int]:
    """Return the header level each token reads (0 for literals).

    Positional formats bind %n/%s/%t/%f/%i to levels 1..5. Otherwise the
    last style placeholder binds to ``level`` and each earlier one to the
    next shallower level, so ``(%n%c)`` at level 4 reads levels 3 and 4.
    """
    bound = [0] * len(tokens)
    if is_positional(tokens):
        for i, tok in enumerate(tokens):
            if tok.code == "l":
                bound[i] = tok.fixed_level
            elif tok.is_placeholder:
                bound[i] = _POSITIONAL_LEVELS.get(tok.code, level)
        return bound

    target = level
    for i in range(len(tokens) - 1, -1, -1):
        tok = tokens[i]
        if tok.code == "l":
            bound[i] = tok.fixed_level
        elif tok.is_placeholder:
            bound[i] = max(target, 1)
            target -= 1
    return bound


def render_format(tokens: tuple[FormatToken, ...], level: int, counters: list[int]) -> str:
    """Render a tokenized format for a header at ``level``.

    ``counters[k - 1]`` holds the counter of level k.
    """
    parts: list[str] = []
    for tok, bound_level in zip(tokens, bind_placeholders(tokens, level), strict=True):
        if not tok.is_placeholder:
            parts.append(tok.literal)
            continue
        value = counters[bound_level - 1] if 0 < bound_level <= len(counters) else 0
        parts.append(render_number(value, tok.style, tok.width))
    return "".join(parts)
