"""Exception taxonomy for document resolution.

Fatal errors abort the current document only:
  ParseError               — malformed front matter, expressions or templates
  ImportResolutionError    — cycles, missing targets, runaway nesting

Non-fatal conditions are reported as ``missing`` tracking records in the
default mode and only raised when ``ResolverConfig.strict`` is set:
  HelperNotFoundError, HelperExecutionError,
  UnresolvedReferenceError, UndefinedVariableError
"""

from __future__ import annotations


class LegalMarkdownError(Exception):
    """Root of every error raised while resolving a document."""

    def __init__(self, message: str, *, document: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.document = document

    def __str__(self) -> str:
        if self.document:
            return f"{self.message} (in {self.document})"
        return self.message


# ---------------------------------------------------------------------------
# Parse errors (fatal)
# ---------------------------------------------------------------------------

class ParseError(LegalMarkdownError):
    """Malformed input that cannot be resolved."""


class FrontMatterError(ParseError):
    """The front matter block is not valid YAML or not a mapping."""


class ExpressionSyntaxError(ParseError):
    """A guard, template or helper expression does not parse."""

    def __init__(
        self,
        message: str,
        *,
        expression: str,
        position: int = 0,
        document: str | None = None,
    ) -> None:
        super().__init__(
            f"{message} at offset {position} in {expression!r}",
            document=document,
        )
        self.detail = message
        self.expression = expression
        self.position = position


class TemplateStructureError(ParseError):
    """Unbalanced or mismatched ``{{#each}}`` / ``{{#if}}`` blocks."""


class HeaderLevelError(ParseError):
    """A header skips levels under the ``error`` policy or exceeds max_levels."""

    def __init__(
        self,
        message: str,
        *,
        level: int,
        line: int = 0,
        document: str | None = None,
    ) -> None:
        super().__init__(message, document=document)
        self.level = level
        self.line = line


# ---------------------------------------------------------------------------
# Import errors (fatal)
# ---------------------------------------------------------------------------

class ImportResolutionError(LegalMarkdownError):
    """Base for failures of the import expander."""


class ImportCycleError(ImportResolutionError):
    """A path reappeared on the current import stack."""

    def __init__(self, cycle: tuple[str, ...], *, document: str | None = None) -> None:
        super().__init__(
            f"Circular import: {' → '.join(cycle)}",
            document=document,
        )
        self.cycle = cycle


class ImportNotFoundError(ImportResolutionError):
    """The loader has no content for an import target."""

    def __init__(self, path: str, importer: str, *, document: str | None = None) -> None:
        super().__init__(
            f"Import target not found: {path!r} (imported from {importer})",
            document=document,
        )
        self.path = path
        self.importer = importer


class ImportDepthExceededError(ImportResolutionError):
    """Import nesting exceeded ``ResolverConfig.max_import_depth``."""

    def __init__(
        self,
        path: str,
        depth: int,
        limit: int,
        *,
        document: str | None = None,
    ) -> None:
        super().__init__(
            f"Import depth {depth} exceeds limit {limit} while importing {path!r}",
            document=document,
        )
        self.path = path
        self.depth = depth
        self.limit = limit


# ---------------------------------------------------------------------------
# Token-level conditions (non-fatal unless strict)
# ---------------------------------------------------------------------------

class TokenResolutionError(LegalMarkdownError):
    """A single token could not be resolved.

    ``reason`` is the value written to the tracking record when the
    condition is reported instead of raised.
    """

    reason = "unresolved"

    def __init__(self, name: str, message: str | None = None, *, document: str | None = None) -> None:
        super().__init__(message or f"{self.reason}: {name}", document=document)
        self.name = name


class HelperNotFoundError(TokenResolutionError):
    reason = "helper_not_found"


class HelperExecutionError(TokenResolutionError):
    reason = "helper_failed"


class UnresolvedReferenceError(TokenResolutionError):
    reason = "unresolved_reference"


class UndefinedVariableError(TokenResolutionError):
    reason = "undefined_variable"
