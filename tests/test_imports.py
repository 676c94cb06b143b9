"""Tests for legalmd.imports — depth-first import expansion."""
from __future__ import annotations

import pytest

from legalmd.blocks import parse_blocks
from legalmd.config import ResolverConfig
from legalmd.document_types import LoadedFragment
from legalmd.errors import ImportCycleError, ImportDepthExceededError, ImportNotFoundError
from legalmd.imports import MAIN_DOCUMENT, DictLoader, expand_imports


class _RecordingLoader:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    def load(self, path: str, importer: str) -> LoadedFragment | None:
        self.calls.append((path, importer))
        return LoadedFragment(path=path, body=f"Body of {path}")


# ── DictLoader ───────────────────────────────────────────────────────


class TestDictLoader:
    def test_splits_front_matter(self) -> None:
        loader = DictLoader({"a.md": "---\nparty: A\n---\nText A"})
        fragment = loader.load("a.md", MAIN_DOCUMENT)
        assert fragment == LoadedFragment(path="a.md", body="Text A", front_matter={"party": "A"})

    def test_relative_to_importer(self) -> None:
        loader = DictLoader({"clauses/b.md": "B"})
        fragment = loader.load("b.md", "clauses/a.md")
        assert fragment is not None
        assert fragment.path == "clauses/b.md"

    def test_unknown_path(self) -> None:
        assert DictLoader({}).load("missing.md", MAIN_DOCUMENT) is None


# ── expand_imports ───────────────────────────────────────────────────


class TestExpandImports:
    def test_nested_expansion_in_place(self) -> None:
        loader = DictLoader({
            "a.md": "---\nparty: A\n---\nText A\n\n@import b.md",
            "b.md": "---\nparty: B\n---\nText B",
        })
        result = expand_imports(parse_blocks("Intro\n\n@import a.md\n\nOutro"), loader)
        assert [b.text for b in result.blocks] == ["Intro", "Text A", "Text B", "Outro"]
        assert [b.source for b in result.blocks] == [None, "a.md", "b.md", None]
        assert result.paths == ["a.md", "b.md"]
        assert result.front_matters == [{"party": "A"}, {"party": "B"}]

    def test_importer_is_passed_to_loader(self) -> None:
        loader = _RecordingLoader()
        expand_imports(parse_blocks("@import x.md"), loader, document="contract.md")
        assert loader.calls == [("x.md", "contract.md")]

    def test_directive_guards_prepend_to_children(self) -> None:
        loader = DictLoader({"a.md": "One\n\n[Two]{inner}"})
        result = expand_imports(parse_blocks("[@import a.md]{show}"), loader)
        assert [[g.expression for g in b.guards] for b in result.blocks] == [
            ["show"], ["show", "inner"],
        ]

    def test_guard_ids_stay_unique(self) -> None:
        loader = DictLoader({"a.md": "[x]{one}"})
        result = expand_imports(parse_blocks("[y]{two}\n\n@import a.md"), loader)
        ids = [g.guard_id for b in result.blocks for g in b.guards]
        assert len(ids) == len(set(ids)) == 2

    def test_same_fragment_twice_is_not_a_cycle(self) -> None:
        loader = DictLoader({"sig.md": "Signature"})
        result = expand_imports(parse_blocks("@import sig.md\n\n@import sig.md"), loader)
        assert [b.text for b in result.blocks] == ["Signature", "Signature"]


class TestImportErrors:
    def test_cycle_names_full_path(self) -> None:
        loader = DictLoader({"A": "@import B", "B": "@import A"})
        with pytest.raises(ImportCycleError) as exc_info:
            expand_imports(parse_blocks("@import B"), loader, document="A")
        assert exc_info.value.cycle == ("A", "B", "A")
        assert "A → B → A" in str(exc_info.value)

    def test_self_import(self) -> None:
        loader = DictLoader({"a.md": "@import a.md"})
        with pytest.raises(ImportCycleError) as exc_info:
            expand_imports(parse_blocks("@import a.md"), loader)
        assert exc_info.value.cycle == (MAIN_DOCUMENT, "a.md", "a.md")

    def test_missing_target(self) -> None:
        with pytest.raises(ImportNotFoundError) as exc_info:
            expand_imports(parse_blocks("@import missing.md"), DictLoader({}), document="nda.md")
        assert exc_info.value.path == "missing.md"
        assert exc_info.value.importer == "nda.md"

    def test_missing_target_names_nested_importer(self) -> None:
        loader = DictLoader({"a.md": "@import gone.md"})
        with pytest.raises(ImportNotFoundError) as exc_info:
            expand_imports(parse_blocks("@import a.md"), loader)
        assert exc_info.value.importer == "a.md"

    def test_no_loader(self) -> None:
        with pytest.raises(ImportNotFoundError):
            expand_imports(parse_blocks("@import a.md"), None)

    def test_depth_limit(self) -> None:
        loader = DictLoader({"f0": "@import f1", "f1": "@import f2", "f2": "end"})
        with pytest.raises(ImportDepthExceededError) as exc_info:
            expand_imports(parse_blocks("@import f0"), loader, config=ResolverConfig(max_import_depth=2))
        assert exc_info.value.path == "f2"
        assert exc_info.value.limit == 2

    def test_depth_within_limit(self) -> None:
        loader = DictLoader({"f0": "@import f1", "f1": "@import f2", "f2": "end"})
        result = expand_imports(parse_blocks("@import f0"), loader, config=ResolverConfig(max_import_depth=3))
        assert [b.text for b in result.blocks] == ["end"]
