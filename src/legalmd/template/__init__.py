"""Template interpolation: ``{{...}}`` expressions, sections and helpers."""

from legalmd.template.engine import Scope, interpolate_blocks, render_template
from legalmd.template.expressions import (
    Binary,
    Call,
    Expr,
    Lit,
    Path,
    Ternary,
    Unary,
    parse_expression,
)
from legalmd.template.helpers import (
    DATE_FORMATS,
    HelperEntry,
    HelperRegistry,
    default_registry,
    format_date,
    number_to_words,
    to_display,
)
from legalmd.template.lexer import TemplateToken, block_balance, lex_template
from legalmd.template.parser import (
    Node,
    OutputNode,
    SectionNode,
    TextNode,
    parse_template,
)

__all__ = [
    "DATE_FORMATS",
    "Binary",
    "Call",
    "Expr",
    "HelperEntry",
    "HelperRegistry",
    "Lit",
    "Node",
    "OutputNode",
    "Path",
    "Scope",
    "SectionNode",
    "TemplateToken",
    "Ternary",
    "TextNode",
    "Unary",
    "block_balance",
    "default_registry",
    "format_date",
    "interpolate_blocks",
    "lex_template",
    "number_to_words",
    "parse_expression",
    "parse_template",
    "render_template",
    "to_display",
]
