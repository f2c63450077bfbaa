"""Shared compilation state, errors and operator tables.

Used by ``_compiler.py`` and the expression mixin in
``_compiler_expressions.py``.
"""

from __future__ import annotations

import ast
from dataclasses import dataclass, field

from tfconf.model.expressions import BinaryOp


# ---------------------------------------------------------------------------
# CompileError
# ---------------------------------------------------------------------------

class CompileError(Exception):
    """Error during expression compilation with source location."""

    def __init__(self, message: str, node: ast.AST | None = None, ctx: CompileContext | None = None):
        self.source = ""
        self.column: int | None = None
        if node is not None and ctx is not None:
            self.source = ctx.source
            col = getattr(node, "col_offset", None)
            if col is not None:
                self.column = col + 1
        loc = ""
        if self.source:
            loc = f" (in {self.source!r}"
            if self.column is not None:
                loc += f", column {self.column}"
            loc += ")"
        super().__init__(f"{message}{loc}")


# ---------------------------------------------------------------------------
# CompileContext
# ---------------------------------------------------------------------------

@dataclass
class CompileContext:
    """Mutable state carried through compilation."""

    bound_names: set[str] = field(default_factory=set)
    """Names bound by enclosing comprehensions or dynamic-block iterators"""

    source: str = ""

    def with_names(self, *names: str) -> CompileContext:
        """Child context with extra bound names (comprehension targets)."""
        return CompileContext(bound_names=self.bound_names | set(names), source=self.source)


# ---------------------------------------------------------------------------
# Operator / builtin tables
# ---------------------------------------------------------------------------

_BINOP_MAP: dict[type, BinaryOp] = {
    ast.Add: BinaryOp.ADD,
    ast.Sub: BinaryOp.SUB,
    ast.Mult: BinaryOp.MUL,
    ast.Div: BinaryOp.DIV,
    ast.Mod: BinaryOp.MOD,
}

_REJECTED_BINOP_MESSAGES: dict[type, str] = {
    ast.FloorDiv: "Floor division '//' is not supported. Use floor(a / b).",
    ast.Pow: "'**' is not supported. Use pow(base, exponent).",
    ast.BitAnd: "Bitwise '&' is not supported. Use 'and' for logical AND.",
    ast.BitOr: "Bitwise '|' is not supported. Use 'or' for logical OR.",
    ast.BitXor: "Bitwise '^' is not supported.",
    ast.LShift: "Shift '<<' is not supported.",
    ast.RShift: "Shift '>>' is not supported.",
    ast.MatMult: "'@' is not supported.",
}

_CMPOP_MAP: dict[type, BinaryOp] = {
    ast.Eq: BinaryOp.EQ,
    ast.NotEq: BinaryOp.NE,
    ast.Gt: BinaryOp.GT,
    ast.GtE: BinaryOp.GE,
    ast.Lt: BinaryOp.LT,
    ast.LtE: BinaryOp.LE,
}

_REJECTED_NODES: dict[type, str] = {
    ast.Lambda: "Lambda expressions are not allowed in configuration expressions",
    ast.NamedExpr: "Assignment expressions (:=) are not allowed in configuration expressions",
    ast.Await: "'await' is not allowed in configuration expressions",
    ast.Yield: "'yield' is not allowed in configuration expressions",
    ast.YieldFrom: "'yield from' is not allowed in configuration expressions",
    ast.Starred: "Star-unpacking is not supported. Use concat() or merge().",
    ast.Slice: "Slices are not supported. Use slice helpers such as substr().",
}

# Python builtins spelled the Python way → configuration functions
_PYTHON_BUILTIN_MAP: dict[str, str] = {
    "len": "length",
    "all": "alltrue",
    "any": "anytrue",
    "str": "tostring",
    "int": "tonumber",
    "float": "tonumber",
    "bool": "tobool",
    "sorted": "sort",
    "set": "toset",
    "list": "tolist",
    "dict": "tomap",
    "reversed": "reverse",
    "min": "min",
    "max": "max",
    "abs": "abs",
    "sum": "sum",
    # `try` is a Python keyword
    "try_": "try",
}

# value.method(args) → function(value, args)
_METHOD_MAP: dict[str, str] = {
    "lower": "lower",
    "upper": "upper",
    "title": "title",
    "strip": "trimspace",
    "startswith": "startswith",
    "endswith": "endswith",
    "replace": "replace",
    "join": "join",
    "keys": "keys",
    "values": "values",
    "get": "lookup",
    "removeprefix": "trimprefix",
    "removesuffix": "trimsuffix",
}

# value.method(args) → function(args, value)
_METHOD_MAP_TRAILING: dict[str, str] = {
    "split": "split",
}

_CONSTANT_NAMES: dict[str, bool | None] = {
    "true": True,
    "false": False,
    "null": None,
}

# Comprehension marker for grouping mode: {k: group(v) for ...}
_GROUP_MARKER = "group"
