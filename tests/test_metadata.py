"""Tests for legalmd.metadata — merging precedence and path lookup."""
from __future__ import annotations

from legalmd.metadata import (
    MISSING,
    content_metadata,
    deep_merge,
    default_metadata,
    flatten_metadata,
    lookup_path,
    merge_metadata,
    split_path,
    strip_reserved,
)


# ── deep_merge ───────────────────────────────────────────────────────


class TestDeepMerge:
    def test_maps_merge_key_by_key(self) -> None:
        merged = deep_merge(
            {"client": {"name": "Acme", "city": "Madrid"}},
            {"client": {"city": "Lisbon"}},
        )
        assert merged == {"client": {"name": "Acme", "city": "Lisbon"}}

    def test_lists_are_replaced_wholesale(self) -> None:
        merged = deep_merge({"items": [1, 2, 3]}, {"items": [9]})
        assert merged["items"] == [9]

    def test_scalar_replaces_map(self) -> None:
        assert deep_merge({"a": {"b": 1}}, {"a": "flat"}) == {"a": "flat"}

    def test_inputs_not_mutated(self) -> None:
        base = {"a": {"b": 1}}
        override = {"a": {"c": 2}}
        merged = deep_merge(base, override)
        merged["a"]["b"] = 99
        assert base == {"a": {"b": 1}}
        assert override == {"a": {"c": 2}}


# ── merge_metadata ───────────────────────────────────────────────────


class TestMergeMetadata:
    def test_external_beats_main_beats_imported(self) -> None:
        merged = merge_metadata(
            {"party": "main", "only_main": 1},
            [{"party": "imported", "only_imported": 2}],
            {"party": "external"},
        )
        assert merged["party"] == "external"
        assert merged["only_main"] == 1
        assert merged["only_imported"] == 2

    def test_main_beats_imported(self) -> None:
        merged = merge_metadata({"party": "main"}, [{"party": "imported"}])
        assert merged["party"] == "main"

    def test_nearest_import_wins(self) -> None:
        merged = merge_metadata({}, [{"x": "first"}, {"x": "second"}])
        assert merged["x"] == "first"

    def test_defaults_are_lowest(self) -> None:
        merged = merge_metadata({"level-one": "Chapter %n."}, [])
        assert merged["level-one"] == "Chapter %n."
        assert merged["level-two"] == default_metadata()["level-two"]

    def test_imported_reserved_keys_are_dropped(self) -> None:
        merged = merge_metadata(
            {}, [{"force_commands": "--pdf", "level-one": "Hijacked %n", "note": "ok"}],
        )
        assert "force_commands" not in merged
        assert merged["level-one"] == default_metadata()["level-one"]
        assert merged["note"] == "ok"

    def test_without_defaults(self) -> None:
        assert merge_metadata({}, [], None, include_defaults=False) == {}

    def test_nested_maps_merge_across_sources(self) -> None:
        merged = merge_metadata(
            {"client": {"name": "Acme"}},
            [{"client": {"name": "Other", "tax_id": "B123"}}],
            {"client": {"city": "Madrid"}},
            include_defaults=False,
        )
        assert merged == {"client": {"name": "Acme", "tax_id": "B123", "city": "Madrid"}}


class TestReservedKeys:
    def test_strip_reserved(self) -> None:
        assert strip_reserved({"commands": "--pdf", "title": "T"}) == {"title": "T"}

    def test_content_metadata(self) -> None:
        assert content_metadata({"level-one": "%n.", "date-format": "legal", "client": "A"}) == {
            "client": "A",
        }


# ── Path lookup ──────────────────────────────────────────────────────


class TestLookupPath:
    DATA = {
        "parties": [{"name": "Acme"}, {"name": "Beta"}],
        "client": {"address": {"city": "Madrid"}},
        "empty": None,
    }

    def test_split_path_forms(self) -> None:
        assert split_path("parties[0].name") == ["parties", "0", "name"]
        assert split_path("parties.0.name") == ["parties", "0", "name"]
        assert split_path("matrix[1][2]") == ["matrix", "1", "2"]

    def test_dotted_and_indexed(self) -> None:
        assert lookup_path(self.DATA, "client.address.city") == "Madrid"
        assert lookup_path(self.DATA, "parties[1].name") == "Beta"
        assert lookup_path(self.DATA, "parties.0.name") == "Acme"
        assert lookup_path(self.DATA, "parties.-1.name") == "Beta"

    def test_missing_segments(self) -> None:
        assert lookup_path(self.DATA, "parties[5].name") is MISSING
        assert lookup_path(self.DATA, "client.phone") is MISSING
        assert lookup_path(self.DATA, "client.address.city.zip") is MISSING
        assert lookup_path(self.DATA, "") is MISSING

    def test_explicit_null_is_not_missing(self) -> None:
        assert lookup_path(self.DATA, "empty") is None

    def test_missing_is_falsy(self) -> None:
        assert not MISSING
        assert repr(MISSING) == "MISSING"


class TestFlatten:
    def test_flatten_nested(self) -> None:
        flat = flatten_metadata({"a": {"b": 1, "c": {"d": 2}}, "e": [1, 2], "f": {}})
        assert flat == {"a.b": 1, "a.c.d": 2, "e": [1, 2], "f": {}}
