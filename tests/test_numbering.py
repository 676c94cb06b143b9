"""Tests for legalmd.numbering — header counters, labels and the reference table."""
from __future__ import annotations

import pytest

from legalmd.blocks import parse_blocks
from legalmd.config import ResolverConfig, level_formats
from legalmd.errors import HeaderLevelError
from legalmd.numbering import HeaderCounterState, number_headers

DOTTED = ("%n.", "%n.%s", "%n.%s.%t")


def _labels(source: str, templates=DOTTED, config: ResolverConfig | None = None) -> list[str | None]:
    blocks, _ = number_headers(parse_blocks(source), templates, config)
    return [b.label for b in blocks if b.is_header]


# ── HeaderCounterState ───────────────────────────────────────────────


class TestHeaderCounterState:
    def test_advance_resets_deeper_levels(self) -> None:
        state = HeaderCounterState.from_templates(DOTTED)
        state.advance(1)
        state.advance(2)
        state.advance(3)
        assert state.counters == [1, 1, 1]
        state.advance(2)
        assert state.counters == [1, 2, 0]
        state.advance(1)
        assert state.counters == [2, 0, 0]

    def test_label_uses_level_format(self) -> None:
        state = HeaderCounterState.from_templates(DOTTED)
        state.advance(1)
        state.advance(2)
        assert state.label(2) == "1.1"
        assert state.max_level == 3


# ── number_headers ───────────────────────────────────────────────────


class TestNumberHeaders:
    def test_dotted_hierarchy(self) -> None:
        source = "l. A\n\nll. B\n\nll. C\n\nlll. D\n\nl. E"
        assert _labels(source) == ["1.", "1.1", "1.2", "1.2.1", "2."]

    def test_default_formats(self) -> None:
        source = "l. Parties\n\nll. Scope\n\nlll. Detail\n\nllll. Sub"
        assert _labels(source, level_formats({})) == ["Article 1.", "Section 1.", "(1)", "(1a)"]

    def test_non_headers_pass_through(self) -> None:
        blocks, _ = number_headers(parse_blocks("Intro\n\nl. A\n\n- item"), DOTTED)
        assert [b.label for b in blocks] == [None, "1.", None]

    def test_reference_table(self) -> None:
        _, table = number_headers(
            parse_blocks("l. Definitions |defs|\n\nll. Payment |pay|\n\nl. Term"), level_formats({}),
        )
        assert table == {"defs": "Article 1.", "pay": "Section 1."}

    def test_duplicate_key_keeps_first(self) -> None:
        _, table = number_headers(parse_blocks("l. A |k|\n\nl. B |k|"), DOTTED)
        assert table == {"k": "1."}

    def test_custom_roman_format(self) -> None:
        assert _labels("l. A\n\nl. B\n\nl. C", ("Title %R.",)) == ["Title I.", "Title II.", "Title III."]


class TestSkippedLevels:
    SOURCE = "l. A\n\nlll. C"

    def test_initialize_policy_is_default(self) -> None:
        assert _labels(self.SOURCE) == ["1.", "1.1.1"]

    def test_zero_policy(self) -> None:
        assert _labels(self.SOURCE, config=ResolverConfig(skipped_levels="zero")) == ["1.", "1.0.1"]

    def test_error_policy(self) -> None:
        with pytest.raises(HeaderLevelError) as exc_info:
            _labels(self.SOURCE, config=ResolverConfig(skipped_levels="error"))
        assert exc_info.value.level == 3
        assert exc_info.value.line == 3

    def test_level_beyond_formats(self) -> None:
        with pytest.raises(HeaderLevelError, match="outside"):
            _labels("l. A\n\nll. B\n\nlll. C", ("%n.", "%n.%s"))

    def test_max_levels_limits_formats(self) -> None:
        with pytest.raises(HeaderLevelError):
            _labels("l. A\n\nll. B", DOTTED, ResolverConfig(max_levels=1))
