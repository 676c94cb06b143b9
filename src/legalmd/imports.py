"""Import expansion.

``@import path`` blocks are replaced, depth first, by the blocks of the
fragment the loader returns for ``path``. The core never touches the file
system: a ContentLoader turns an import path into a LoadedFragment, and its
``path`` field is the identity used for cycle detection.
"""
from __future__ import annotations

import itertools
import logging
import posixpath
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from typing import Protocol

from legalmd.blocks import parse_blocks, split_front_matter
from legalmd.config import ResolverConfig
from legalmd.document_types import Block, LoadedFragment, Metadata
from legalmd.errors import (
    ImportCycleError,
    ImportDepthExceededError,
    ImportNotFoundError,
    ImportResolutionError,
)

log = logging.getLogger(__name__)

MAIN_DOCUMENT = "<main>"


class ContentLoader(Protocol):
    """Turns an import path into a fragment, or None when there is none."""

    def load(self, path: str, importer: str) -> LoadedFragment | None: ...


class DictLoader:
    """In-memory loader over a ``path -> raw text`` mapping.

    Relative paths are tried as given, then against the importer's directory.
    """

    def __init__(self, sources: Mapping[str, str]) -> None:
        self._sources = dict(sources)

    def load(self, path: str, importer: str) -> LoadedFragment | None:
        candidates = [path]
        if importer and importer != MAIN_DOCUMENT:
            candidates.append(posixpath.normpath(posixpath.join(posixpath.dirname(importer), path)))
        for candidate in candidates:
            raw = self._sources.get(candidate)
            if raw is not None:
                front_matter, body = split_front_matter(raw, document=candidate)
                return LoadedFragment(path=candidate, body=body, front_matter=front_matter)
        return None


@dataclass(slots=True)
class ImportExpansion:
    """Output of :func:`expand_imports`.

    ``front_matters`` is in precedence order: a fragment's own front matter
    comes before that of the fragments it imports, and earlier sibling
    imports come before later ones.
    """
    blocks: list[Block]
    front_matters: list[Metadata] = field(default_factory=list[Metadata])
    paths: list[str] = field(default_factory=list[str])


def expand_imports(
    blocks: list[Block],
    loader: ContentLoader | None,
    *,
    config: ResolverConfig | None = None,
    document: str | None = None,
    next_guard_id: Callable[[], int] | None = None,
) -> ImportExpansion:
    """Inline every import directive in ``blocks``.

    Guards on an import directive are prepended to the guards of every block
    it brings in. Raises ImportCycleError, ImportNotFoundError or
    ImportDepthExceededError; each aborts the document.
    """
    config = config or ResolverConfig()
    root = document or MAIN_DOCUMENT
    if next_guard_id is None:
        used = [g.guard_id for b in blocks for g in b.guards]
        next_guard_id = itertools.count(max(used, default=0) + 1).__next__
    result = ImportExpansion(blocks=[])

    def expand(seq: list[Block], importer: str, stack: tuple[str, ...]) -> list[Block]:
        out: list[Block] = []
        for block in seq:
            if block.kind != "import":
                out.append(block)
                continue

            depth = len(stack)
            if depth > config.max_import_depth:
                raise ImportDepthExceededError(
                    block.text, depth, config.max_import_depth, document=document,
                )
            if loader is None:
                raise ImportNotFoundError(block.text, importer, document=document)
            fragment = loader.load(block.text, importer)
            if fragment is None:
                raise ImportNotFoundError(block.text, importer, document=document)
            if fragment.path in stack:
                raise ImportCycleError((*stack, fragment.path), document=document)

            log.debug("Importing %s from %s (depth %d)", fragment.path, importer, depth)
            result.front_matters.append(fragment.front_matter)
            result.paths.append(fragment.path)
            children = parse_blocks(fragment.body, source=fragment.path, next_guard_id=next_guard_id)
            if block.guards:
                children = [replace(c, guards=block.guards + c.guards) for c in children]
            out.extend(expand(children, fragment.path, (*stack, fragment.path)))
        return out

    try:
        result.blocks = expand(blocks, root, (root,))
    except ImportResolutionError as exc:
        log.error("Import expansion failed: %s", exc)
        raise
    if result.paths:
        log.info("Expanded %d import(s) into %s", len(result.paths), root)
    return result
