"""Template tree: text, output tags and ``#each`` / ``#if`` / ``#unless`` sections."""
from __future__ import annotations

from dataclasses import dataclass, field

from legalmd.errors import ExpressionSyntaxError, TemplateStructureError
from legalmd.template.expressions import Expr, parse_expression
from legalmd.template.lexer import BLOCK_HELPERS, TemplateToken, lex_template


@dataclass(frozen=True, slots=True)
class TextNode:
    text: str
    start: int


@dataclass(frozen=True, slots=True)
class OutputNode:
    source: str       # tag content, e.g. "client.name" or "formatDate date 'legal'"
    expr: Expr
    start: int
    end: int


@dataclass(slots=True)
class SectionNode:
    helper: str       # "each" | "if" | "unless"
    source: str
    expr: Expr
    start: int
    end: int = 0
    body: list[Node] = field(default_factory=list)
    else_body: list[Node] = field(default_factory=list)
    in_else: bool = False


type Node = TextNode | OutputNode | SectionNode


def _parse_tag_expression(tok: TemplateToken) -> Expr:
    try:
        return parse_expression(tok.body)
    except ExpressionSyntaxError as exc:
        # Re-anchor the position to the template text.
        raise ExpressionSyntaxError(
            exc.detail,
            expression=tok.body,
            position=tok.start + exc.position,
        ) from exc


def parse_template(text: str) -> list[Node]:
    """Build the node tree; unbalanced or mismatched sections raise TemplateStructureError."""
    root: list[Node] = []
    stack: list[SectionNode] = []

    def sink() -> list[Node]:
        if not stack:
            return root
        top = stack[-1]
        return top.else_body if top.in_else else top.body

    for tok in lex_template(text):
        match tok.kind:
            case "text":
                sink().append(TextNode(tok.body, tok.start))
            case "comment":
                continue
            case "expr":
                sink().append(OutputNode(tok.body, _parse_tag_expression(tok), tok.start, tok.end))
            case "open":
                if tok.name not in BLOCK_HELPERS:
                    raise TemplateStructureError(f"Unknown block helper #{tok.name} at offset {tok.start}")
                if not tok.body:
                    raise TemplateStructureError(f"#{tok.name} at offset {tok.start} needs an expression")
                section = SectionNode(tok.name, tok.body, _parse_tag_expression(tok), tok.start)
                sink().append(section)
                stack.append(section)
            case "else":
                if not stack:
                    raise TemplateStructureError(f"{{{{else}}}} outside a block at offset {tok.start}")
                if stack[-1].in_else:
                    raise TemplateStructureError(f"Second {{{{else}}}} in #{stack[-1].helper} at offset {tok.start}")
                stack[-1].in_else = True
            case "close":
                if not stack:
                    raise TemplateStructureError(f"{{{{/{tok.name}}}}} without an opening tag at offset {tok.start}")
                section = stack.pop()
                if section.helper != tok.name:
                    raise TemplateStructureError(
                        f"{{{{/{tok.name}}}}} at offset {tok.start} closes #{section.helper} "
                        f"opened at offset {section.start}"
                    )
                section.end = tok.end

    if stack:
        raise TemplateStructureError(
            f"#{stack[-1].helper} opened at offset {stack[-1].start} is never closed"
        )
    return root
