"""Expression compilation methods for the AST compiler.

Handles all expression AST nodes: constants, names, reference chains
(``var.x``, ``aws_instance.web.id``), operators, comparisons, calls,
subscripts, ternaries, collection displays, comprehensions and f-strings.
"""

from __future__ import annotations

import ast
from collections.abc import Callable
from typing import TYPE_CHECKING

from tfconf.model.expressions import (
    BinaryExpr,
    BinaryOp,
    ConditionalExpr,
    Expression,
    ForExpr,
    FunctionCallExpr,
    GetAttrExpr,
    IndexExpr,
    IterationRef,
    IterationSymbol,
    LiteralExpr,
    LocalRef,
    ObjectExpr,
    ObjectItem,
    ResourceMode,
    ResourceRef,
    ScopeRef,
    TemplateExpr,
    TupleExpr,
    UnaryExpr,
    UnaryOp,
    VariableRef,
)

from ._compilation_helpers import (
    CompileError,
    _BINOP_MAP,
    _CMPOP_MAP,
    _CONSTANT_NAMES,
    _GROUP_MARKER,
    _METHOD_MAP,
    _METHOD_MAP_TRAILING,
    _PYTHON_BUILTIN_MAP,
    _REJECTED_BINOP_MESSAGES,
)

if TYPE_CHECKING:
    from ._compiler import ASTCompiler

_REFERENCE_ROOTS = frozenset({"var", "local", "count", "each", "data"})


def _flatten_chain(node: ast.expr) -> tuple[ast.Name, list[str]] | None:
    """``a.b.c`` → (Name a, ["b", "c"]); None if the chain has no Name root."""
    attrs: list[str] = []
    while isinstance(node, ast.Attribute):
        attrs.append(node.attr)
        node = node.value
    if not isinstance(node, ast.Name):
        return None
    attrs.reverse()
    return node, attrs


# ---------------------------------------------------------------------------
# Expression mixin
# ---------------------------------------------------------------------------

class _ExpressionMixin:
    """Mixin providing expression compilation methods for ASTCompiler."""

    def _compile_constant(self, node: ast.Constant) -> Expression:
        value = node.value
        if value is None or isinstance(value, (bool, int, float, str)):
            return LiteralExpr(value=value)
        raise CompileError(f"Unsupported constant: {value!r}", node, self.ctx)

    def _compile_name(self, node: ast.Name) -> Expression:
        name = node.id
        if name in ("True", "False", "None"):
            return LiteralExpr(value={"True": True, "False": False, "None": None}[name])
        if name in _CONSTANT_NAMES:
            return LiteralExpr(value=_CONSTANT_NAMES[name])
        if name in self.ctx.bound_names:
            return ScopeRef(name=name)
        if name in _REFERENCE_ROOTS:
            raise CompileError(
                f"'{name}' must be followed by an attribute, e.g. '{name}.example'",
                node, self.ctx,
            )
        raise CompileError(f"Unknown name '{name}'", node, self.ctx)

    def _compile_attribute(self, node: ast.Attribute) -> Expression:
        chain = _flatten_chain(node)
        if chain is None:
            # (expr).attr, e.g. aws_instance.web[0].id
            return GetAttrExpr(target=self.compile_expression(node.value), attribute=node.attr)

        root, attrs = chain
        name = root.id
        if name in self.ctx.bound_names:
            base: Expression = ScopeRef(name=name)
            rest = attrs
        elif name == "var":
            base, rest = VariableRef(name=attrs[0]), attrs[1:]
        elif name == "local":
            base, rest = LocalRef(name=attrs[0]), attrs[1:]
        elif name == "count":
            if attrs[0] != "index":
                raise CompileError(
                    f"Unknown attribute 'count.{attrs[0]}'; only 'count.index' exists",
                    node, self.ctx,
                )
            base, rest = IterationRef(symbol=IterationSymbol.COUNT_INDEX), attrs[1:]
        elif name == "each":
            if attrs[0] not in ("key", "value"):
                raise CompileError(
                    f"Unknown attribute 'each.{attrs[0]}'; use 'each.key' or 'each.value'",
                    node, self.ctx,
                )
            symbol = IterationSymbol.EACH_KEY if attrs[0] == "key" else IterationSymbol.EACH_VALUE
            base, rest = IterationRef(symbol=symbol), attrs[1:]
        elif name == "data":
            if len(attrs) < 2:
                raise CompileError(
                    "Data source references need a type and a name: data.TYPE.NAME",
                    node, self.ctx,
                )
            base = ResourceRef(mode=ResourceMode.DATA, resource_type=attrs[0], name=attrs[1])
            rest = attrs[2:]
        elif name in _CONSTANT_NAMES or name in ("True", "False", "None"):
            raise CompileError(f"Cannot access attributes of '{name}'", node, self.ctx)
        else:
            base = ResourceRef(resource_type=name, name=attrs[0])
            rest = attrs[1:]

        for attr in rest:
            base = GetAttrExpr(target=base, attribute=attr)
        return base

    def _compile_binop(self, node: ast.BinOp) -> Expression:
        rejected_msg = _REJECTED_BINOP_MESSAGES.get(type(node.op))
        if rejected_msg is not None:
            raise CompileError(rejected_msg, node, self.ctx)
        op = _BINOP_MAP.get(type(node.op))
        if op is None:
            raise CompileError(
                f"Unsupported binary operator: {type(node.op).__name__}",
                node, self.ctx,
            )
        left = self.compile_expression(node.left)
        right = self.compile_expression(node.right)
        return BinaryExpr(op=op, left=left, right=right)

    def _compile_boolop(self, node: ast.BoolOp) -> Expression:
        op = BinaryOp.AND if isinstance(node.op, ast.And) else BinaryOp.OR
        # Left-fold: a and b and c → AND(AND(a, b), c)
        result = self.compile_expression(node.values[0])
        for val in node.values[1:]:
            right = self.compile_expression(val)
            result = BinaryExpr(op=op, left=result, right=right)
        return result

    def _compile_compare(self, node: ast.Compare) -> Expression:
        # a < b < c → (a < b) and (b < c)
        parts: list[Expression] = []
        left = self.compile_expression(node.left)

        for cmp_op, comparator in zip(node.ops, node.comparators):
            right = self.compile_expression(comparator)
            if isinstance(cmp_op, (ast.In, ast.NotIn)):
                part: Expression = FunctionCallExpr(function_name="contains", args=[right, left])
                if isinstance(cmp_op, ast.NotIn):
                    part = UnaryExpr(op=UnaryOp.NOT, operand=part)
            elif isinstance(cmp_op, (ast.Is, ast.IsNot)):
                if not (isinstance(comparator, ast.Constant) and comparator.value is None):
                    raise CompileError(
                        "'is' is only supported against None; use '==' instead",
                        node, self.ctx,
                    )
                op = BinaryOp.EQ if isinstance(cmp_op, ast.Is) else BinaryOp.NE
                part = BinaryExpr(op=op, left=left, right=right)
            else:
                op = _CMPOP_MAP.get(type(cmp_op))
                if op is None:
                    raise CompileError(
                        f"Unsupported comparison operator: {type(cmp_op).__name__}",
                        node, self.ctx,
                    )
                part = BinaryExpr(op=op, left=left, right=right)
            parts.append(part)
            left = right

        result = parts[0]
        for p in parts[1:]:
            result = BinaryExpr(op=BinaryOp.AND, left=result, right=p)
        return result

    def _compile_unaryop(self, node: ast.UnaryOp) -> Expression:
        operand = self.compile_expression(node.operand)
        if isinstance(node.op, ast.Not):
            return UnaryExpr(op=UnaryOp.NOT, operand=operand)
        if isinstance(node.op, ast.USub):
            if isinstance(operand, LiteralExpr) and isinstance(operand.value, (int, float)) \
                    and not isinstance(operand.value, bool):
                return LiteralExpr(value=-operand.value)
            return UnaryExpr(op=UnaryOp.NEG, operand=operand)
        if isinstance(node.op, ast.UAdd):
            return operand  # +x → x
        raise CompileError(
            "Bitwise ~ is not supported. Use 'not' for logical NOT.",
            node, self.ctx,
        )

    def _compile_call(self, node: ast.Call) -> Expression:
        if node.keywords:
            raise CompileError(
                "Keyword arguments are not supported in function calls",
                node, self.ctx,
            )
        func = node.func

        if isinstance(func, ast.Name):
            name = func.id
            if name == _GROUP_MARKER:
                raise CompileError(
                    "group() is only valid as the value of a dict comprehension",
                    node, self.ctx,
                )
            if name == "enumerate":
                raise CompileError(
                    "enumerate() is only valid as the iterable of a comprehension",
                    node, self.ctx,
                )
            args = self._compile_call_args(node)
            return FunctionCallExpr(function_name=_PYTHON_BUILTIN_MAP.get(name, name), args=args)

        # value.method(...) → function(value, ...)
        if isinstance(func, ast.Attribute):
            if func.attr == "items":
                raise CompileError(
                    ".items() is only valid as the iterable of a comprehension",
                    node, self.ctx,
                )
            if func.attr in _METHOD_MAP:
                target = self.compile_expression(func.value)
                args = self._compile_call_args(node)
                return FunctionCallExpr(function_name=_METHOD_MAP[func.attr], args=[target, *args])
            if func.attr in _METHOD_MAP_TRAILING:
                target = self.compile_expression(func.value)
                args = self._compile_call_args(node)
                return FunctionCallExpr(
                    function_name=_METHOD_MAP_TRAILING[func.attr], args=[*args, target],
                )
            raise CompileError(f"Unsupported method '.{func.attr}()'", node, self.ctx)

        raise CompileError(
            f"Unsupported call target: {ast.unparse(func)}",
            node, self.ctx,
        )

    def _compile_call_args(self, node: ast.Call) -> list[Expression]:
        return [self.compile_expression(arg) for arg in node.args]

    def _compile_subscript(self, node: ast.Subscript) -> Expression:
        if isinstance(node.slice, ast.Tuple):
            raise CompileError("Multi-dimensional indexing is not supported", node, self.ctx)
        collection = self.compile_expression(node.value)
        key = self.compile_expression(node.slice)
        return IndexExpr(collection=collection, key=key)

    def _compile_ifexp(self, node: ast.IfExp) -> Expression:
        """Ternary: ``a if cond else b`` → ``cond ? a : b``."""
        return ConditionalExpr(
            condition=self.compile_expression(node.test),
            true_value=self.compile_expression(node.body),
            false_value=self.compile_expression(node.orelse),
        )

    # -----------------------------------------------------------------------
    # Collection displays
    # -----------------------------------------------------------------------

    def _compile_list(self, node: ast.List | ast.Tuple) -> Expression:
        return TupleExpr(items=[self.compile_expression(elt) for elt in node.elts])

    def _compile_set(self, node: ast.Set) -> Expression:
        return FunctionCallExpr(function_name="toset", args=[self._compile_list(node)])

    def _compile_dict(self, node: ast.Dict) -> Expression:
        items: list[ObjectItem] = []
        for key, value in zip(node.keys, node.values):
            if key is None:
                raise CompileError("'**' unpacking is not supported. Use merge().", node, self.ctx)
            items.append(ObjectItem(
                key=self.compile_expression(key),
                value=self.compile_expression(value),
            ))
        return ObjectExpr(items=items)

    # -----------------------------------------------------------------------
    # Comprehensions
    # -----------------------------------------------------------------------

    def _comprehension_source(
        self, node: ast.expr, generators: list[ast.comprehension],
    ) -> tuple[str | None, str, Expression, list[ast.expr]]:
        """Return (key_var, value_var, collection, conditions) for one generator."""
        if len(generators) != 1:
            raise CompileError(
                "Only a single 'for' clause is supported. Use flatten() for nesting.",
                node, self.ctx,
            )
        gen = generators[0]
        if gen.is_async:
            raise CompileError("Async comprehensions are not supported", node, self.ctx)

        it = gen.iter
        paired = False
        if isinstance(it, ast.Call) and not it.args and not it.keywords \
                and isinstance(it.func, ast.Attribute) and it.func.attr == "items":
            collection = self.compile_expression(it.func.value)
            paired = True
        elif isinstance(it, ast.Call) and isinstance(it.func, ast.Name) \
                and it.func.id == "enumerate":
            if len(it.args) != 1 or it.keywords:
                raise CompileError("enumerate() takes exactly one argument", node, self.ctx)
            collection = self.compile_expression(it.args[0])
            paired = True
        else:
            collection = self.compile_expression(it)

        target = gen.target
        if paired:
            if not (isinstance(target, ast.Tuple) and len(target.elts) == 2
                    and all(isinstance(e, ast.Name) for e in target.elts)):
                raise CompileError(
                    "Iterating pairs requires two names, e.g. 'for k, v in m.items()'",
                    node, self.ctx,
                )
            return target.elts[0].id, target.elts[1].id, collection, gen.ifs
        if not isinstance(target, ast.Name):
            raise CompileError(
                "Comprehension target must be a single name; "
                "use '.items()' or 'enumerate()' to bind two",
                node, self.ctx,
            )
        return None, target.id, collection, gen.ifs

    def _compile_conditions(self, conditions: list[ast.expr]) -> Expression | None:
        result: Expression | None = None
        for cond in conditions:
            compiled = self.compile_expression(cond)
            result = compiled if result is None else BinaryExpr(
                op=BinaryOp.AND, left=result, right=compiled,
            )
        return result

    def _compile_listcomp(self, node: ast.ListComp | ast.GeneratorExp) -> Expression:
        key_var, value_var, collection, conditions = self._comprehension_source(
            node, node.generators,
        )
        outer = self.ctx
        self.ctx = outer.with_names(*(n for n in (key_var, value_var) if n))
        try:
            return ForExpr(
                key_var=key_var,
                value_var=value_var,
                collection=collection,
                value_expr=self.compile_expression(node.elt),
                condition=self._compile_conditions(conditions),
            )
        finally:
            self.ctx = outer

    def _compile_setcomp(self, node: ast.SetComp) -> Expression:
        return FunctionCallExpr(function_name="toset", args=[self._compile_listcomp(node)])

    def _compile_dictcomp(self, node: ast.DictComp) -> Expression:
        key_var, value_var, collection, conditions = self._comprehension_source(
            node, node.generators,
        )
        value_node = node.value
        grouping = False
        if isinstance(value_node, ast.Call) and isinstance(value_node.func, ast.Name) \
                and value_node.func.id == _GROUP_MARKER:
            if len(value_node.args) != 1 or value_node.keywords:
                raise CompileError("group() takes exactly one argument", node, self.ctx)
            value_node = value_node.args[0]
            grouping = True

        outer = self.ctx
        self.ctx = outer.with_names(*(n for n in (key_var, value_var) if n))
        try:
            return ForExpr(
                key_var=key_var,
                value_var=value_var,
                collection=collection,
                key_expr=self.compile_expression(node.key),
                value_expr=self.compile_expression(value_node),
                condition=self._compile_conditions(conditions),
                grouping=grouping,
            )
        finally:
            self.ctx = outer

    # -----------------------------------------------------------------------
    # f-strings
    # -----------------------------------------------------------------------

    def _compile_joinedstr(self, node: ast.JoinedStr) -> Expression:
        parts: list[Expression] = []
        for value in node.values:
            if isinstance(value, ast.Constant):
                parts.append(LiteralExpr(value=value.value))
            elif isinstance(value, ast.FormattedValue):
                if value.format_spec is not None or value.conversion != -1:
                    raise CompileError(
                        "Format specs and conversions are not supported in f-strings. "
                        "Use format().",
                        node, self.ctx,
                    )
                parts.append(self.compile_expression(value.value))
            else:
                raise CompileError("Unsupported f-string part", node, self.ctx)
        return TemplateExpr(parts=parts)

    # Expression handler dispatch table
    _EXPRESSION_HANDLERS: dict[type[ast.expr], Callable[[ASTCompiler, ast.expr], Expression]] = {
        ast.Constant: _compile_constant,
        ast.Name: _compile_name,
        ast.Attribute: _compile_attribute,
        ast.BinOp: _compile_binop,
        ast.BoolOp: _compile_boolop,
        ast.Compare: _compile_compare,
        ast.UnaryOp: _compile_unaryop,
        ast.Call: _compile_call,
        ast.Subscript: _compile_subscript,
        ast.IfExp: _compile_ifexp,
        ast.List: _compile_list,
        ast.Tuple: _compile_list,
        ast.Set: _compile_set,
        ast.Dict: _compile_dict,
        ast.ListComp: _compile_listcomp,
        ast.GeneratorExp: _compile_listcomp,
        ast.SetComp: _compile_setcomp,
        ast.DictComp: _compile_dictcomp,
        ast.JoinedStr: _compile_joinedstr,
    }
