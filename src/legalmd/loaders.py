"""File-system collaborators: fragment loading, metadata files, JSON output.

These sit outside the resolution core; the core only sees the ContentLoader
protocol and already-parsed metadata.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import orjson
import yaml

from legalmd.blocks import split_front_matter
from legalmd.document_types import LoadedFragment, Metadata
from legalmd.errors import FrontMatterError
from legalmd.imports import MAIN_DOCUMENT

log = logging.getLogger(__name__)

_YAML_SUFFIXES = frozenset({".yaml", ".yml"})


class FileSystemLoader:
    """Loads import targets from disk.

    Relative paths resolve against the importing file's directory (or
    ``base_dir`` for imports made by the main document). The returned
    fragment path is the resolved absolute path.
    """

    def __init__(self, base_dir: Path | str = ".", *, encoding: str = "utf-8") -> None:
        self.base_dir = Path(base_dir).resolve()
        self.encoding = encoding

    def resolve(self, path: str, importer: str) -> Path:
        target = Path(path).expanduser()
        if target.is_absolute():
            return target.resolve()
        if importer and importer != MAIN_DOCUMENT and Path(importer).is_absolute():
            return (Path(importer).parent / target).resolve()
        return (self.base_dir / target).resolve()

    def load(self, path: str, importer: str) -> LoadedFragment | None:
        target = self.resolve(path, importer)
        if not target.is_file():
            log.debug("Import target %s does not exist", target)
            return None
        raw = target.read_text(encoding=self.encoding)
        front_matter, body = split_front_matter(raw, document=str(target))
        return LoadedFragment(path=str(target), body=body, front_matter=front_matter)


def load_metadata_file(path: Path) -> Metadata:
    """Load external metadata from a JSON or YAML file (chosen by suffix)."""
    raw = path.read_bytes()
    data: Any
    if path.suffix.lower() in _YAML_SUFFIXES:
        try:
            data = yaml.safe_load(raw) or {}
        except yaml.YAMLError as exc:
            raise FrontMatterError(f"Invalid YAML metadata: {exc}", document=str(path)) from exc
    else:
        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError as exc:
            raise FrontMatterError(f"Invalid JSON metadata: {exc}", document=str(path)) from exc
    if not isinstance(data, dict):
        raise FrontMatterError(
            f"Metadata file must hold a mapping, got {type(data).__name__}",
            document=str(path),
        )
    return {str(k): v for k, v in data.items()}


def dump_json(obj: Any, *, pretty: bool = True) -> bytes:
    """Serialize with orjson; dates become ISO strings, unknown types ``str()``."""
    opts = orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS if pretty else orjson.OPT_SORT_KEYS
    return orjson.dumps(obj, option=opts, default=str)


def save_json(obj: Any, path: Path, *, pretty: bool = True) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(dump_json(obj, pretty=pretty))
