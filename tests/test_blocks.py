"""Tests for legalmd.blocks — front matter splitting and block parsing."""
from __future__ import annotations

import pytest

from legalmd.blocks import (
    clean_import_path,
    matching_bracket,
    parse_blocks,
    reindex,
    split_front_matter,
)
from legalmd.errors import FrontMatterError


# ── split_front_matter ───────────────────────────────────────────────


class TestSplitFrontMatter:
    def test_mapping_and_body(self) -> None:
        meta, body = split_front_matter("---\ntitle: NDA\nparties: 2\n---\nBody text\n")
        assert meta == {"title": "NDA", "parties": 2}
        assert body == "Body text\n"

    def test_no_front_matter(self) -> None:
        meta, body = split_front_matter("l. Heading\n")
        assert meta == {}
        assert body == "l. Heading\n"

    def test_empty_front_matter(self) -> None:
        meta, body = split_front_matter("---\n---\nBody")
        assert meta == {}
        assert body == "Body"

    def test_yaml_dates_are_decoded(self) -> None:
        meta, _ = split_front_matter("---\neffective: 2025-01-15\n---\n")
        assert meta["effective"].isoformat() == "2025-01-15"

    def test_unclosed_raises(self) -> None:
        with pytest.raises(FrontMatterError, match="never closed"):
            split_front_matter("---\ntitle: NDA\nBody")

    def test_invalid_yaml_raises(self) -> None:
        with pytest.raises(FrontMatterError, match="Invalid YAML"):
            split_front_matter("---\nkey: [unclosed\n---\nBody", document="nda.md")

    def test_non_mapping_raises(self) -> None:
        with pytest.raises(FrontMatterError, match="mapping") as exc_info:
            split_front_matter("---\n- a\n- b\n---\n", document="nda.md")
        assert exc_info.value.document == "nda.md"


# ── parse_blocks ─────────────────────────────────────────────────────


class TestParseBlocks:
    def test_headers_levels_and_ref_keys(self) -> None:
        blocks = parse_blocks("l. Definitions |defs|\n\nll. Terms\n\nl3. Deep\n")
        assert [b.kind for b in blocks] == ["header", "header", "header"]
        assert [b.level for b in blocks] == [1, 2, 3]
        assert blocks[0].text == "Definitions"
        assert blocks[0].ref_key == "defs"
        assert blocks[1].ref_key is None

    def test_paragraph_lines_join(self) -> None:
        blocks = parse_blocks("first line\nsecond line\n\nnext paragraph")
        assert [b.text for b in blocks] == ["first line\nsecond line", "next paragraph"]
        assert [b.kind for b in blocks] == ["paragraph", "paragraph"]

    def test_list_items_and_depth(self) -> None:
        blocks = parse_blocks("- one\n  - two\n* three")
        assert [b.kind for b in blocks] == ["list_item"] * 3
        assert [b.text for b in blocks] == ["one", "two", "three"]
        assert [b.depth for b in blocks] == [0, 1, 0]

    def test_fenced_block_is_raw(self) -> None:
        blocks = parse_blocks("```\nl. not a header\n[x]{flag}\n```\n\nafter")
        assert blocks[0].kind == "raw"
        assert "l. not a header" in blocks[0].text
        assert blocks[1].text == "after"

    def test_import_directive(self) -> None:
        blocks = parse_blocks('Intro\n@import "clauses/payment.md"\nOutro')
        assert [b.kind for b in blocks] == ["paragraph", "import", "paragraph"]
        assert blocks[1].text == "clauses/payment.md"

    def test_line_numbers_and_indexes(self) -> None:
        blocks = parse_blocks("a\n\nb\n\nc")
        assert [b.index for b in blocks] == [0, 1, 2]
        assert [b.line for b in blocks] == [1, 3, 5]

    def test_source_is_attached(self) -> None:
        blocks = parse_blocks("text", source="fragment.md")
        assert blocks[0].source == "fragment.md"


# ── Whole-block guards ───────────────────────────────────────────────


class TestBlockGuards:
    def test_single_block_guard(self) -> None:
        blocks = parse_blocks("[Late fee applies]{late_fees_apply}")
        assert len(blocks) == 1
        assert blocks[0].text == "Late fee applies"
        assert [g.expression for g in blocks[0].guards] == ["late_fees_apply"]

    def test_guard_spanning_blocks_shares_id(self) -> None:
        blocks = parse_blocks("[l. Optional\n\nSome text.]{opt}\n\nAfter")
        assert blocks[0].kind == "header"
        assert blocks[0].text == "Optional"
        assert blocks[1].text == "Some text."
        assert blocks[0].guards == blocks[1].guards
        assert blocks[0].guards[0].expression == "opt"
        assert blocks[2].guards == ()

    def test_nested_guards_outermost_first(self) -> None:
        blocks = parse_blocks("[[Inner]{b}]{a}")
        assert blocks[0].text == "Inner"
        assert [g.expression for g in blocks[0].guards] == ["a", "b"]

    def test_inline_guard_is_left_in_text(self) -> None:
        blocks = parse_blocks("Pay [a late fee]{late} now.")
        assert blocks[0].guards == ()
        assert blocks[0].text == "Pay [a late fee]{late} now."

    def test_guard_ids_come_from_caller(self) -> None:
        ids = iter(range(100, 200))
        blocks = parse_blocks("[a]{x}\n\n[b]{y}", next_guard_id=lambda: next(ids))
        assert [b.guards[0].guard_id for b in blocks] == [100, 101]

    def test_unclosed_guard_is_kept_as_text(self) -> None:
        blocks = parse_blocks("[l. Optional\n\nno closer")
        assert blocks[0].guards == ()
        assert blocks[0].text.startswith("[")


# ── Small utilities ──────────────────────────────────────────────────


class TestUtilities:
    def test_matching_bracket(self) -> None:
        assert matching_bracket("[a [b] c] d", 0) == 8
        assert matching_bracket("[a [b] c] d", 3) == 5
        assert matching_bracket("[open", 0) is None

    @pytest.mark.parametrize("raw", ["a.md", '"a.md"', "'a.md'", "[a.md]", "  a.md  "])
    def test_clean_import_path(self, raw: str) -> None:
        assert clean_import_path(raw) == "a.md"

    def test_reindex(self) -> None:
        blocks = parse_blocks("a\n\nb\n\nc")
        renumbered = reindex([blocks[2], blocks[0]])
        assert [(b.index, b.text) for b in renumbered] == [(0, "c"), (1, "a")]
