"""Tests for legalmd.enumerator — numbering styles and level formats."""
from __future__ import annotations

import pytest

from legalmd.enumerator import (
    bind_placeholders,
    int_to_alpha,
    int_to_roman,
    is_positional,
    render_format,
    render_number,
    tokenize_format,
)


# ── Roman numerals ───────────────────────────────────────────────────


class TestRoman:
    def test_int_to_roman(self) -> None:
        assert int_to_roman(4) == "iv"
        assert int_to_roman(14) == "xiv"
        assert int_to_roman(1994, upper=True) == "MCMXCIV"
        assert int_to_roman(0) == ""

    def test_subtractive_forms(self) -> None:
        assert [int_to_roman(n) for n in (9, 40, 90, 400, 900)] == ["ix", "xl", "xc", "cd", "cm"]
        assert int_to_roman(3999) == "mmmcmxcix"


# ── Alphabetic labels ────────────────────────────────────────────────


class TestAlpha:
    def test_single_letters(self) -> None:
        assert int_to_alpha(1) == "a"
        assert int_to_alpha(26) == "z"

    def test_bijective_rollover(self) -> None:
        assert int_to_alpha(27) == "aa"
        assert int_to_alpha(28, upper=True) == "AB"

    def test_zero_is_empty(self) -> None:
        assert int_to_alpha(0) == ""


class TestRenderNumber:
    @pytest.mark.parametrize(
        ("style", "expected"),
        [("arabic", "3"), ("alpha", "c"), ("caps", "C"), ("roman", "iii"), ("ROMAN", "III")],
    )
    def test_styles(self, style: str, expected: str) -> None:
        assert render_number(3, style) == expected  # type: ignore[arg-type]

    def test_zero_padding(self) -> None:
        assert render_number(5, "arabic", 2) == "05"

    def test_unknown_style(self) -> None:
        with pytest.raises(ValueError):
            render_number(1, "greek")  # type: ignore[arg-type]


# ── Level formats ────────────────────────────────────────────────────


class TestTokenizeFormat:
    def test_literals_and_placeholder(self) -> None:
        tokens = tokenize_format("Article %n.")
        assert [t.literal for t in tokens] == ["Article ", "", "."]
        assert [t.code for t in tokens] == ["", "n", ""]

    def test_padded_and_fixed_level(self) -> None:
        tokens = tokenize_format("%02n-%l1")
        assert tokens[0].width == 2
        assert tokens[2].code == "l"
        assert tokens[2].fixed_level == 1

    def test_unknown_code_stays_literal(self) -> None:
        tokens = tokenize_format("100%z")
        assert len(tokens) == 1
        assert tokens[0].literal == "100%z"

    def test_positional_detection(self) -> None:
        assert is_positional(tokenize_format("%n.%s"))
        assert not is_positional(tokenize_format("(%n%c)"))


class TestRenderFormat:
    def test_positional_levels(self) -> None:
        tokens = tokenize_format("%n.%s.%t")
        assert bind_placeholders(tokens, 3) == [1, 0, 2, 0, 3]
        assert render_format(tokens, 3, [1, 2, 1]) == "1.2.1"

    def test_trailing_placeholder_binds_to_own_level(self) -> None:
        tokens = tokenize_format("(%n%c)")
        assert render_format(tokens, 4, [1, 1, 3, 4]) == "(3d)"

    def test_single_placeholder(self) -> None:
        assert render_format(tokenize_format("Section %n."), 2, [1, 7]) == "Section 7."

    def test_roman_annex(self) -> None:
        assert render_format(tokenize_format("Annex %R -"), 6, [1, 1, 1, 1, 1, 4]) == "Annex IV -"

    def test_padded(self) -> None:
        assert render_format(tokenize_format("%02n."), 1, [5]) == "05."
