"""Document resolution pipeline.

The single entry point is :func:`resolve_document`, which takes the raw
document text (front matter plus body) and returns a
:class:`ResolvedDocument`. Stages run strictly in order, each consuming the
whole output of the previous one::

    front matter + blocks -> imports -> metadata merge -> conditionals
      -> numbering -> cross-references -> interpolation -> tracking

All state is created per call. The helper registry is immutable and the
current instant is fixed once per run, so concurrent calls share nothing
mutable. :func:`resolve_batch` isolates failures per document.
"""
from __future__ import annotations

import itertools
import logging
from collections.abc import Callable, Mapping
from datetime import UTC, date, datetime, time
from typing import Any

from legalmd.blocks import parse_blocks, reindex, split_front_matter
from legalmd.conditionals import apply_conditionals
from legalmd.config import ResolverConfig, level_formats
from legalmd.document_types import Err, Ok, ResolvedDocument, Result
from legalmd.errors import LegalMarkdownError
from legalmd.force_commands import resolve_force_commands
from legalmd.imports import ContentLoader, expand_imports
from legalmd.metadata import content_metadata, merge_metadata
from legalmd.numbering import number_headers
from legalmd.references import resolve_references
from legalmd.template import HelperRegistry, default_registry, interpolate_blocks, render_template
from legalmd.tracking import FieldTracker

log = logging.getLogger(__name__)


def _fixed_instant(now: datetime | date | None) -> datetime:
    if now is None:
        return datetime.now(UTC)
    if isinstance(now, datetime):
        return now
    return datetime.combine(now, time(), tzinfo=UTC)


def _registry(helpers: HelperRegistry | Mapping[str, Callable[..., Any]] | None) -> HelperRegistry:
    if helpers is None:
        return default_registry()
    if isinstance(helpers, HelperRegistry):
        return helpers
    return default_registry().with_helpers(helpers)


def resolve_document(
    source: str,
    *,
    loader: ContentLoader | None = None,
    external_metadata: Mapping[str, Any] | None = None,
    helpers: HelperRegistry | Mapping[str, Callable[..., Any]] | None = None,
    now: datetime | date | None = None,
    config: ResolverConfig | None = None,
    document: str | None = None,
) -> ResolvedDocument:
    """Resolve one document.

    Args:
        source: Raw document text, optionally starting with YAML front matter.
        loader: Content loader for ``@import`` targets. Without one, any
            import directive fails with ImportNotFoundError.
        external_metadata: Highest-precedence metadata (already parsed).
        helpers: A HelperRegistry, or extra helpers added to the built-ins.
        now: The run's fixed instant; read from the clock once if omitted.
        config: Engine configuration; reserved metadata keys overlay it.
        document: Name or path of the document, used in errors and as the
            root of import cycle detection.

    Returns:
        The resolved blocks with merged metadata, the cross-reference table,
        the ordered tracking records and the parsed force commands.

    Raises:
        ParseError: Malformed front matter, expression or template.
        ImportResolutionError: Import cycle, missing target or depth limit.
        TokenResolutionError: Only with ``config.strict``.
    """
    base_config = config or ResolverConfig()
    instant = _fixed_instant(now)
    registry = _registry(helpers)

    try:
        # Step 1: Front matter and block structure of the main document
        front_matter, body = split_front_matter(source, document=document)
        next_guard_id = itertools.count(1).__next__
        blocks = parse_blocks(body, next_guard_id=next_guard_id)

        # Step 2: Inline imports, collecting their front matter
        expansion = expand_imports(
            blocks, loader, config=base_config, document=document, next_guard_id=next_guard_id,
        )
        blocks = reindex(expansion.blocks)

        # Step 3: Merge metadata; reserved keys reconfigure the engine
        metadata = merge_metadata(front_matter, expansion.front_matters, external_metadata)
        run_config = base_config.with_metadata(metadata)
        content = content_metadata(metadata)
        tracker = FieldTracker()

        # Step 4: Conditionals decide which blocks and clauses survive
        blocks = apply_conditionals(blocks, content, tracker, document=document)

        # Step 5: Number the surviving headers; the table is complete afterwards
        blocks, table = number_headers(
            blocks, level_formats(metadata, run_config.max_levels), run_config, document=document,
        )

        # Step 6: Cross-references (forward and backward)
        blocks = resolve_references(blocks, table, content, tracker, run_config, document=document)

        # Step 7: Interpolation
        blocks = interpolate_blocks(
            blocks, content, tracker,
            registry=registry, config=run_config, now=instant, document=document,
        )

        # Step 8: force_commands, interpolated before it is parsed
        force_commands = resolve_force_commands(
            metadata,
            lambda text: render_template(
                text, content, registry=registry, config=run_config, now=instant, document=document,
            ),
        )
    except LegalMarkdownError as exc:
        exc.document = exc.document or document
        log.error("Failed to resolve %s: %s", document or "document", exc)
        raise

    records = tracker.records()
    summary = tracker.summary()
    log.info(
        "Resolved %s: %d blocks, %d headers, %d references, %d tracked (%d missing)",
        document or "document", len(blocks), sum(b.is_header for b in blocks),
        len(table), summary["total"], summary["missing"],
    )
    return ResolvedDocument(
        blocks=tuple(blocks),
        metadata=metadata,
        cross_references=table,
        tracking=records,
        force_commands=force_commands,
        imported_paths=tuple(expansion.paths),
        level_indent=run_config.level_indent,
    )


def resolve_batch(
    sources: Mapping[str, str],
    *,
    loader: ContentLoader | None = None,
    external_metadata: Mapping[str, Any] | None = None,
    helpers: HelperRegistry | Mapping[str, Callable[..., Any]] | None = None,
    now: datetime | date | None = None,
    config: ResolverConfig | None = None,
) -> dict[str, Result[ResolvedDocument, LegalMarkdownError]]:
    """Resolve several documents; a failing document does not stop the others.

    Every document of the batch sees the same fixed instant.
    """
    instant = _fixed_instant(now)
    registry = _registry(helpers)
    results: dict[str, Result[ResolvedDocument, LegalMarkdownError]] = {}
    for name, source in sources.items():
        try:
            results[name] = Ok(resolve_document(
                source,
                loader=loader,
                external_metadata=external_metadata,
                helpers=registry,
                now=instant,
                config=config,
                document=name,
            ))
        except LegalMarkdownError as exc:
            results[name] = Err(exc)
    failed = sum(isinstance(r, Err) for r in results.values())
    log.info("Batch resolved %d document(s), %d failed", len(results), failed)
    return results
