"""Tests for legalmd.references — |key| substitution after numbering."""
from __future__ import annotations

import pytest

from legalmd.blocks import parse_blocks
from legalmd.config import ResolverConfig
from legalmd.document_types import TrackingStatus
from legalmd.errors import UnresolvedReferenceError
from legalmd.numbering import number_headers
from legalmd.references import REFERENCE_RE, is_table, resolve_references
from legalmd.tracking import FieldTracker


def _resolve(source: str, metadata: dict | None = None, config: ResolverConfig | None = None):
    tracker = FieldTracker()
    blocks, table = number_headers(parse_blocks(source), ("%n.", "%n.%s"))
    out = resolve_references(blocks, table, metadata or {}, tracker, config)
    return out, tracker


class TestReferencePattern:
    def test_matches_keys(self) -> None:
        assert REFERENCE_RE.findall("see |sec2| and |client.name| and |parties[0]|") == [
            "sec2", "client.name", "parties[0]",
        ]

    def test_ignores_spaced_pipes(self) -> None:
        assert REFERENCE_RE.findall("a | b | c") == []


class TestResolveReferences:
    def test_forward_reference(self) -> None:
        blocks, tracker = _resolve("See |sec2| below.\n\nl. First\n\nl. Second |sec2|")
        assert blocks[0].text == "See 2. below."
        [rec] = tracker.records()
        assert rec.status == TrackingStatus.RESOLVED
        assert rec.stage == "reference"
        assert rec.value == "2."
        assert (rec.span.start, rec.span.end) == (4, 10)

    def test_backward_reference(self) -> None:
        blocks, _ = _resolve("l. First |one|\n\nll. Sub |sub|\n\nAs in |sub| of |one|.")
        assert blocks[2].text == "As in 1.1 of 1.."

    def test_metadata_fallback(self) -> None:
        blocks, tracker = _resolve(
            "Paid by |client.name| on |due|.",
            {"client": {"name": "Acme"}, "due": 30},
        )
        assert blocks[0].text == "Paid by Acme on 30."
        assert [r.value for r in tracker.records()] == ["Acme", "30"]

    def test_unresolved_is_marked_and_tracked(self) -> None:
        blocks, tracker = _resolve("See |nope|.")
        assert blocks[0].text == "See [[nope]]."
        [rec] = tracker.records()
        assert rec.status == TrackingStatus.MISSING
        assert rec.reason == "unresolved_reference"
        assert rec.source_text == "|nope|"

    def test_strict_raises(self) -> None:
        with pytest.raises(UnresolvedReferenceError) as exc_info:
            _resolve("See |nope|.", config=ResolverConfig(strict=True))
        assert exc_info.value.name == "nope"

    def test_table_rows_skipped(self) -> None:
        blocks, tracker = _resolve("|name|value|\n|----|-----|")
        assert blocks[0].text == "|name|value|\n|----|-----|"
        assert len(tracker) == 0

    def test_raw_blocks_skipped(self) -> None:
        source = "```\n|sec2|\n```"
        blocks, tracker = _resolve(source)
        assert blocks[0].text == source
        assert len(tracker) == 0

    def test_offsets_on_later_lines(self) -> None:
        _, tracker = _resolve("first line\nsee |x|", {"x": "X"})
        [rec] = tracker.records()
        assert rec.span.start == len("first line\nsee ")

    def test_line_starting_with_reference(self) -> None:
        blocks, tracker = _resolve("|pay| governs the fees.\n\nl. Payment |pay|")
        assert blocks[0].text == "1. governs the fees."
        [rec] = tracker.records()
        assert rec.status == TrackingStatus.RESOLVED
        assert (rec.span.start, rec.span.end) == (0, 5)

    def test_reference_at_start_of_later_line(self) -> None:
        blocks, _ = _resolve("Intro\n|sec2| applies.\n\nl. One\n\nl. Two |sec2|")
        assert blocks[0].text == "Intro\n2. applies."

    def test_template_tags_not_scanned(self) -> None:
        source = "{{nickname||alias||name}} and {{#if a||b||c}}x{{/if}} see |one|\n\nl. One |one|"
        blocks, tracker = _resolve(source, {"alias": "A", "b": True})
        assert blocks[0].text == "{{nickname||alias||name}} and {{#if a||b||c}}x{{/if}} see 1."
        assert [r.name for r in tracker.records()] == ["one"]
        assert tracker.records()[0].span.start == source.index("|one|")


class TestIsTable:
    def test_separator_row(self) -> None:
        assert is_table("| a | b |\n| --- | :---: |\n| 1 | 2 |")
        assert is_table("a | b\n---|---")

    def test_not_a_table(self) -> None:
        assert not is_table("|pay| governs the fees.")
        assert not is_table("Heading\n---")
