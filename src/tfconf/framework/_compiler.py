"""AST compiler: transforms Python-syntax expressions into IR nodes.

Configuration expressions are written in Python syntax and parsed with
``ast.parse(mode="eval")``; they are never executed.

Key concepts:

- **CompileContext**: carries the names bound by enclosing comprehensions
  and dynamic-block iterators.
- **ASTCompiler**: dispatch-table compiler mapping Python AST node types
  to handler methods (see ``_compiler_expressions``).
- **Templates**: document strings may embed expressions as ``${...}``;
  ``compile_template`` splits them into literal and expression parts.
"""

from __future__ import annotations

import ast
import re
from collections.abc import Iterable

from tfconf.model.expressions import Expression, LiteralExpr, TemplateExpr

from ._compilation_helpers import CompileContext, CompileError, _REJECTED_NODES
from ._compiler_expressions import _ExpressionMixin

_TRY_CALL_RE = re.compile(r"\btry\s*\(")


class ASTCompiler(_ExpressionMixin):
    """Compiles Python AST expression nodes into IR expressions."""

    def __init__(self, ctx: CompileContext) -> None:
        self.ctx = ctx

    def compile_expression(self, node: ast.expr) -> Expression:
        """Compile a single AST expression node into an IR expression."""
        if type(node) in _REJECTED_NODES:
            raise CompileError(_REJECTED_NODES[type(node)], node, self.ctx)

        handler = self._EXPRESSION_HANDLERS.get(type(node))
        if handler is None:
            raise CompileError(
                f"Unsupported Python syntax: {type(node).__name__}. "
                f"Configuration expressions support a subset of Python.",
                node, self.ctx,
            )
        return handler(self, node)


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def compile_expression(source: str, *, bound_names: Iterable[str] = ()) -> Expression:
    """Compile one expression such as ``var.port > 0 and var.port < 65536``.

    *bound_names* are treated as local names (comprehension variables,
    dynamic-block iterators) rather than unknown identifiers.
    """
    text = source.strip()
    ctx = CompileContext(bound_names=set(bound_names), source=text)
    if not text:
        raise CompileError("Empty expression")
    try:
        if "\n" in text:
            # Multi-line document values: allow line breaks outside brackets.
            tree = ast.parse(f"(\n{text}\n)", mode="eval")
        else:
            tree = ast.parse(text, mode="eval")
    except SyntaxError as exc:
        where = f", column {exc.offset}" if exc.offset else ""
        hint = " Use try_(...) for the try function." if _TRY_CALL_RE.search(text) else ""
        raise CompileError(
            f"Invalid expression syntax: {exc.msg} (in {text!r}{where}).{hint}"
        ) from None
    return ASTCompiler(ctx).compile_expression(tree.body)


def _find_closing_brace(text: str, start: int) -> int:
    """Index of the ``}`` closing an interpolation whose body starts at *start*."""
    depth = 1
    quote: str | None = None
    i = start
    while i < len(text):
        ch = text[i]
        if quote is not None:
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


def compile_template(text: str, *, bound_names: Iterable[str] = ()) -> Expression:
    """Compile a document string with ``${...}`` interpolations.

    ``$${`` produces a literal ``${``. A string holding nothing but one
    interpolation yields the inner expression itself, so its value keeps
    its type (``"${var.count}"`` is a number, not a string).
    """
    bound = tuple(bound_names)
    parts: list[Expression] = []
    literal: list[str] = []
    interpolations = 0
    i = 0
    while i < len(text):
        if text.startswith("$${", i):
            literal.append("${")
            i += 3
        elif text.startswith("${", i):
            end = _find_closing_brace(text, i + 2)
            if end < 0:
                raise CompileError(f"Unterminated interpolation in {text!r}")
            if literal:
                parts.append(LiteralExpr(value="".join(literal)))
                literal = []
            parts.append(compile_expression(text[i + 2:end], bound_names=bound))
            interpolations += 1
            i = end + 1
        else:
            literal.append(text[i])
            i += 1
    if literal:
        parts.append(LiteralExpr(value="".join(literal)))

    if interpolations == 0:
        return LiteralExpr(value="".join(p.value for p in parts) if parts else "")
    if len(parts) == 1:
        return parts[0]
    return TemplateExpr(parts=parts)
