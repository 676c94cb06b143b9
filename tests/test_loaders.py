"""Tests for legalmd.loaders — file-system loader, metadata files and JSON output."""
from __future__ import annotations

import json
from datetime import date
from pathlib import Path

import pytest

from legalmd.errors import FrontMatterError
from legalmd.imports import MAIN_DOCUMENT
from legalmd.loaders import FileSystemLoader, dump_json, load_metadata_file, save_json


class TestFileSystemLoader:
    def test_loads_relative_to_base_dir(self, tmp_path: Path) -> None:
        (tmp_path / "clause.md").write_text("---\nfee: 10\n---\nClause body\n", encoding="utf-8")
        fragment = FileSystemLoader(tmp_path).load("clause.md", MAIN_DOCUMENT)
        assert fragment is not None
        assert fragment.path == str((tmp_path / "clause.md").resolve())
        assert fragment.body == "Clause body\n"
        assert fragment.front_matter == {"fee": 10}

    def test_relative_to_importing_file(self, tmp_path: Path) -> None:
        nested = tmp_path / "clauses"
        nested.mkdir()
        (nested / "b.md").write_text("B", encoding="utf-8")
        importer = str((nested / "a.md").resolve())
        fragment = FileSystemLoader(tmp_path).load("b.md", importer)
        assert fragment is not None
        assert fragment.path == str((nested / "b.md").resolve())

    def test_missing_file(self, tmp_path: Path) -> None:
        assert FileSystemLoader(tmp_path).load("nope.md", MAIN_DOCUMENT) is None

    def test_same_file_same_identity(self, tmp_path: Path) -> None:
        (tmp_path / "a.md").write_text("A", encoding="utf-8")
        loader = FileSystemLoader(tmp_path)
        assert loader.resolve("./a.md", MAIN_DOCUMENT) == loader.resolve("a.md", MAIN_DOCUMENT)


class TestLoadMetadataFile:
    def test_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "client.yaml"
        path.write_text("client:\n  name: Acme\nsigned: 2025-07-16\n", encoding="utf-8")
        assert load_metadata_file(path) == {"client": {"name": "Acme"}, "signed": date(2025, 7, 16)}

    def test_json(self, tmp_path: Path) -> None:
        path = tmp_path / "client.json"
        path.write_text('{"client": {"name": "Acme"}}', encoding="utf-8")
        assert load_metadata_file(path) == {"client": {"name": "Acme"}}

    def test_empty_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yml"
        path.write_text("", encoding="utf-8")
        assert load_metadata_file(path) == {}

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(FrontMatterError, match="Invalid JSON"):
            load_metadata_file(path)

    def test_non_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "list.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(FrontMatterError, match="mapping"):
            load_metadata_file(path)


class TestJsonOutput:
    def test_dump_json_handles_dates_and_sorts(self) -> None:
        payload = json.loads(dump_json({"b": date(2025, 7, 16), "a": 1}))
        assert payload == {"a": 1, "b": "2025-07-16"}
        assert dump_json({"b": 1, "a": 2}, pretty=False) == b'{"a":2,"b":1}'

    def test_save_json_creates_parents(self, tmp_path: Path) -> None:
        target = tmp_path / "out" / "meta.json"
        save_json({"x": 1}, target)
        assert json.loads(target.read_text()) == {"x": 1}
