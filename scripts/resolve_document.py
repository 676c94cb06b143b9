#!/usr/bin/env python3
"""Resolve a legal markdown document and print the result.

Imports resolve relative to the document's directory. Outputs structured
JSON to stdout (or a plain-text preview with ``--text``), log messages to
stderr.

Usage::

    python3 scripts/resolve_document.py contract.md
    python3 scripts/resolve_document.py contract.md --metadata client.yaml --text
    python3 scripts/resolve_document.py contract.md --now 2025-07-16 --strict -v
"""
from __future__ import annotations

import argparse
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from legalmd.config import ResolverConfig
from legalmd.errors import LegalMarkdownError
from legalmd.loaders import FileSystemLoader, dump_json, load_metadata_file
from legalmd.resolver import resolve_document

log = logging.getLogger("resolve_document")


def _parse_now(raw: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not an ISO date/datetime: {raw!r}") from exc
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Resolve a legal markdown document.")
    parser.add_argument("document", type=Path, help="Path to the document")
    parser.add_argument(
        "--metadata", type=Path, default=None,
        help="External metadata file (.json, .yaml, .yml); overrides front matter",
    )
    parser.add_argument(
        "--now", type=_parse_now, default=None,
        help="Fixed instant for @today and date helpers (ISO format; default: now)",
    )
    parser.add_argument(
        "--skipped-levels", choices=("initialize", "zero", "error"), default="initialize",
        help="Policy for headers that skip a level (default: initialize)",
    )
    parser.add_argument(
        "--max-import-depth", type=int, default=10,
        help="Maximum @import nesting (default: 10)",
    )
    parser.add_argument(
        "--strict", action="store_true",
        help="Fail on unresolved variables, helpers and references",
    )
    parser.add_argument("--text", action="store_true", help="Print a plain-text preview")
    parser.add_argument("--verbose", "-v", action="store_true")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
    )

    path: Path = args.document.resolve()
    if not path.is_file():
        log.error("Document not found: %s", path)
        return 2

    config = ResolverConfig(
        max_import_depth=args.max_import_depth,
        skipped_levels=args.skipped_levels,
        strict=args.strict,
    )
    try:
        external = load_metadata_file(args.metadata) if args.metadata else None
        resolved = resolve_document(
            path.read_text(encoding="utf-8"),
            loader=FileSystemLoader(path.parent),
            external_metadata=external,
            now=args.now,
            config=config,
            document=str(path),
        )
    except LegalMarkdownError as exc:
        log.error("%s", exc)
        return 1

    missing = [r for r in resolved.tracking if r.status == "missing"]
    if missing:
        log.warning("%d token(s) left unresolved: %s", len(missing), ", ".join(r.name for r in missing))

    if args.text:
        sys.stdout.write(resolved.to_text() + "\n")
    else:
        sys.stdout.buffer.write(dump_json(resolved.to_dict()))
        sys.stdout.buffer.write(b"\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
