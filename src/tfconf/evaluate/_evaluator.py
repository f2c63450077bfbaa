"""Expression evaluator: tree-walking interpreter for the expression IR.

The ``ExpressionEvaluator`` evaluates expressions against a ``Scope``
holding resolved variables, locals, resource values, repetition symbols
and names bound by for-expressions. Maps and objects are dicts, lists,
sets and tuples are lists.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field, replace

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
    ResourceRef,
    ScopeRef,
    TemplateExpr,
    TupleExpr,
    UnaryExpr,
    UnaryOp,
    VariableRef,
)

from ._functions import FUNCTIONS, LAZY_FUNCTIONS
from ._values import (
    UNKNOWN,
    ConfigError,
    EvaluationError,
    FunctionCallError,
    ResourceInstance,
    UnknownReferenceError,
    is_number,
    is_unknown,
    is_whole_number,
    normalize_number,
    to_display,
    type_name_of,
    values_equal,
)

_FUNCTION_ERRORS = (
    TypeError, ValueError, KeyError, IndexError, ZeroDivisionError, OverflowError, re.error,
)


# ---------------------------------------------------------------------------
# Scope
# ---------------------------------------------------------------------------

@dataclass
class Scope:
    """Names visible to an expression."""

    variables: dict[str, object] = field(default_factory=dict)
    locals: dict[str, object] = field(default_factory=dict)
    resources: dict[str, object] = field(default_factory=dict)
    iteration: dict[IterationSymbol, object] = field(default_factory=dict)
    bindings: dict[str, object] = field(default_factory=dict)

    def bind(self, names: dict[str, object]) -> Scope:
        """Child scope with additional bound names."""
        return replace(self, bindings={**self.bindings, **names})

    def with_iteration(self, symbols: dict[IterationSymbol, object]) -> Scope:
        return replace(self, iteration=dict(symbols))


# ---------------------------------------------------------------------------
# ExpressionEvaluator
# ---------------------------------------------------------------------------

class ExpressionEvaluator:
    """Evaluates expression IR nodes within a single scope.

    Parameters
    ----------
    scope : Scope
        Values visible to the expressions being evaluated.
    """

    def __init__(self, scope: Scope) -> None:
        self.scope = scope

    def evaluate(self, expr: Expression) -> object:
        handler = self._EXPR_DISPATCH.get(expr.kind)
        if handler is None:
            raise EvaluationError(f"Unsupported expression kind: {expr.kind}")
        return handler(self, expr)

    def _child(self, names: dict[str, object]) -> ExpressionEvaluator:
        return ExpressionEvaluator(self.scope.bind(names))

    # -----------------------------------------------------------------------
    # References
    # -----------------------------------------------------------------------

    def _eval_literal(self, expr: LiteralExpr) -> object:
        return expr.value

    def _eval_variable_ref(self, expr: VariableRef) -> object:
        if expr.name in self.scope.variables:
            return self.scope.variables[expr.name]
        raise UnknownReferenceError(f"var.{expr.name}")

    def _eval_local_ref(self, expr: LocalRef) -> object:
        if expr.name in self.scope.locals:
            return self.scope.locals[expr.name]
        raise UnknownReferenceError(f"local.{expr.name}")

    def _eval_resource_ref(self, expr: ResourceRef) -> object:
        if expr.address in self.scope.resources:
            return self.scope.resources[expr.address]
        raise UnknownReferenceError(expr.address)

    def _eval_iteration_ref(self, expr: IterationRef) -> object:
        if expr.symbol in self.scope.iteration:
            return self.scope.iteration[expr.symbol]
        driver = "count" if expr.symbol == IterationSymbol.COUNT_INDEX else "for_each"
        raise EvaluationError(
            f"'{expr.symbol.value}' is only available in blocks that set '{driver}'"
        )

    def _eval_scope_ref(self, expr: ScopeRef) -> object:
        if expr.name in self.scope.bindings:
            return self.scope.bindings[expr.name]
        raise EvaluationError(f"Name '{expr.name}' is not bound in this scope")

    # -----------------------------------------------------------------------
    # Operators
    # -----------------------------------------------------------------------

    def _eval_binary(self, expr: BinaryExpr) -> object:
        if expr.op in (BinaryOp.AND, BinaryOp.OR):
            return self._eval_logical(expr)

        left = self.evaluate(expr.left)
        right = self.evaluate(expr.right)
        if left is UNKNOWN or right is UNKNOWN:
            return UNKNOWN

        if expr.op == BinaryOp.EQ:
            return values_equal(left, right)
        if expr.op == BinaryOp.NE:
            return not values_equal(left, right)

        if not is_number(left) or not is_number(right):
            raise EvaluationError(
                f"Unsupported operand types for {expr.op.value}: "
                f"{type_name_of(left)} and {type_name_of(right)} (number required)"
            )
        try:
            return self._apply_numeric(expr.op, left, right)
        except OverflowError as exc:
            raise EvaluationError(f"Numeric overflow in {expr.op.value}: {exc}") from exc

    def _eval_logical(self, expr: BinaryExpr) -> object:
        # Short-circuit so guards like `var.x == null || length(var.x) > 0` work.
        left = self.evaluate(expr.left)
        self._require_bool(left, expr.op.value)
        if left is not UNKNOWN:
            if expr.op == BinaryOp.AND and not left:
                return False
            if expr.op == BinaryOp.OR and left:
                return True

        right = self.evaluate(expr.right)
        self._require_bool(right, expr.op.value)
        if right is UNKNOWN:
            return UNKNOWN
        if left is UNKNOWN:
            # The right side alone can still decide the result
            if expr.op == BinaryOp.AND and not right:
                return False
            if expr.op == BinaryOp.OR and right:
                return True
            return UNKNOWN
        return right

    @staticmethod
    def _require_bool(value: object, op_name: str) -> None:
        if value is not UNKNOWN and not isinstance(value, bool):
            raise EvaluationError(
                f"Unsupported operand type for {op_name}: "
                f"{type_name_of(value)} (bool required)"
            )

    @staticmethod
    def _apply_numeric(op: BinaryOp, left: int | float, right: int | float) -> object:
        if op == BinaryOp.ADD:
            return normalize_number(left + right)
        if op == BinaryOp.SUB:
            return normalize_number(left - right)
        if op == BinaryOp.MUL:
            return normalize_number(left * right)
        if op == BinaryOp.DIV:
            if right == 0:
                raise EvaluationError("Division by zero")
            return normalize_number(left / right)
        if op == BinaryOp.MOD:
            if right == 0:
                raise EvaluationError("Modulo by zero")
            return normalize_number(left % right)
        if op == BinaryOp.GT:
            return left > right
        if op == BinaryOp.GE:
            return left >= right
        if op == BinaryOp.LT:
            return left < right
        if op == BinaryOp.LE:
            return left <= right
        raise EvaluationError(f"Unsupported binary op: {op}")

    def _eval_unary(self, expr: UnaryExpr) -> object:
        operand = self.evaluate(expr.operand)
        if operand is UNKNOWN:
            return UNKNOWN
        if expr.op == UnaryOp.NEG:
            if not is_number(operand):
                raise EvaluationError(
                    f"Unsupported operand type for negation: {type_name_of(operand)}"
                )
            return -operand
        if expr.op == UnaryOp.NOT:
            if not isinstance(operand, bool):
                raise EvaluationError(
                    f"Unsupported operand type for NOT: {type_name_of(operand)}"
                )
            return not operand
        raise EvaluationError(f"Unsupported unary op: {expr.op}")

    def _eval_conditional(self, expr: ConditionalExpr) -> object:
        condition = self.evaluate(expr.condition)
        if condition is UNKNOWN:
            return UNKNOWN
        if not isinstance(condition, bool):
            raise EvaluationError(
                f"Conditional requires a bool condition, got {type_name_of(condition)}"
            )
        if condition:
            return self.evaluate(expr.true_value)
        return self.evaluate(expr.false_value)

    # -----------------------------------------------------------------------
    # Function calls
    # -----------------------------------------------------------------------

    def _eval_function_call(self, expr: FunctionCallExpr) -> object:
        name = expr.function_name

        if name in LAZY_FUNCTIONS:
            return self._call_lazy(name, expr.args)

        func = FUNCTIONS.get(name)
        if func is None:
            raise EvaluationError(f"Call to unknown function '{name}'")

        args = [self.evaluate(a) for a in expr.args]
        if any(is_unknown(a) for a in args):
            return UNKNOWN
        try:
            return func(*args)
        except _FUNCTION_ERRORS as exc:
            raise FunctionCallError(name, str(exc)) from exc

    def _call_lazy(self, name: str, args: list[Expression]) -> object:
        if name == "can":
            if len(args) != 1:
                raise FunctionCallError("can", "takes exactly one argument")
            try:
                value = self.evaluate(args[0])
            except ConfigError:
                return False
            return UNKNOWN if is_unknown(value) else True

        # try(): first argument that evaluates without error
        if not args:
            raise FunctionCallError("try", "at least one argument is required")
        for arg in args:
            try:
                return self.evaluate(arg)
            except ConfigError:
                continue
        raise FunctionCallError("try", "no expression succeeded")

    # -----------------------------------------------------------------------
    # Traversal
    # -----------------------------------------------------------------------

    def _eval_index(self, expr: IndexExpr) -> object:
        collection = self.evaluate(expr.collection)
        key = self.evaluate(expr.key)
        if collection is UNKNOWN or key is UNKNOWN:
            return UNKNOWN
        if collection is None:
            raise EvaluationError("Attempt to index a null value")

        if isinstance(collection, dict):
            if is_number(key) or isinstance(key, bool):
                key = to_display(key)
            if not isinstance(key, str):
                raise EvaluationError(
                    f"Map keys must be strings, got {type_name_of(key)}"
                )
            if key in collection:
                return collection[key]
            if isinstance(collection, ResourceInstance):
                return UNKNOWN
            raise EvaluationError(f"The given key \"{key}\" does not exist")

        if isinstance(collection, (list, tuple)):
            if not is_whole_number(key):
                raise EvaluationError(
                    f"List index must be a whole number, got {to_display(key)}"
                )
            index = int(key)
            if index < 0 or index >= len(collection):
                raise EvaluationError(
                    f"Index {index} out of range for list of length {len(collection)}"
                )
            return collection[index]

        raise EvaluationError(f"Cannot index into {type_name_of(collection)}")

    def _eval_get_attr(self, expr: GetAttrExpr) -> object:
        target = self.evaluate(expr.target)
        if target is UNKNOWN:
            return UNKNOWN
        if target is None:
            raise EvaluationError(
                f"Attempt to get attribute '{expr.attribute}' from a null value"
            )
        if isinstance(target, dict):
            if expr.attribute in target:
                return target[expr.attribute]
            if isinstance(target, ResourceInstance):
                return UNKNOWN
            raise EvaluationError(
                f"Unsupported attribute '{expr.attribute}'. "
                f"Available: {sorted(target)}"
            )
        raise EvaluationError(
            f"Cannot access attribute '{expr.attribute}' on {type_name_of(target)}"
        )

    # -----------------------------------------------------------------------
    # Constructors
    # -----------------------------------------------------------------------

    def _eval_tuple(self, expr: TupleExpr) -> object:
        return [self.evaluate(item) for item in expr.items]

    def _eval_object(self, expr: ObjectExpr) -> object:
        result: dict[str, object] = {}
        for item in expr.items:
            key = self._object_key(self.evaluate(item.key))
            if key is UNKNOWN:
                return UNKNOWN
            result[key] = self.evaluate(item.value)
        return result

    @staticmethod
    def _object_key(key: object) -> object:
        if key is UNKNOWN or isinstance(key, str):
            return key
        if is_number(key) or isinstance(key, bool):
            return to_display(key)
        raise EvaluationError(f"Object keys must be strings, got {type_name_of(key)}")

    def _eval_for(self, expr: ForExpr) -> object:
        collection = self.evaluate(expr.collection)
        if collection is UNKNOWN:
            return UNKNOWN
        if isinstance(collection, dict):
            pairs = [(k, collection[k]) for k in sorted(collection)]
        elif isinstance(collection, (list, tuple)):
            pairs = list(enumerate(collection))
        else:
            raise EvaluationError(
                f"Cannot iterate over {type_name_of(collection)} in a for expression"
            )

        as_object = expr.key_expr is not None
        items: list[object] = []
        mapping: dict[str, object] = {}

        for key, value in pairs:
            names = {expr.value_var: value}
            if expr.key_var is not None:
                names[expr.key_var] = key
            child = self._child(names)

            if expr.condition is not None:
                keep = child.evaluate(expr.condition)
                if keep is UNKNOWN:
                    return UNKNOWN
                if not isinstance(keep, bool):
                    raise EvaluationError(
                        f"For expression condition must be bool, got {type_name_of(keep)}"
                    )
                if not keep:
                    continue

            item = child.evaluate(expr.value_expr)
            if not as_object:
                items.append(item)
                continue

            item_key = self._object_key(child.evaluate(expr.key_expr))
            if item_key is UNKNOWN:
                return UNKNOWN
            if expr.grouping:
                mapping.setdefault(item_key, []).append(item)
            elif item_key in mapping:
                raise EvaluationError(
                    f"Duplicate object key \"{item_key}\" in for expression; "
                    f"use grouping to collect values"
                )
            else:
                mapping[item_key] = item

        return mapping if as_object else items

    def _eval_template(self, expr: TemplateExpr) -> object:
        rendered: list[str] = []
        for part in expr.parts:
            value = self.evaluate(part)
            if value is UNKNOWN:
                return UNKNOWN
            if value is None:
                raise EvaluationError("Invalid template interpolation value: null")
            if isinstance(value, (dict, list, tuple)):
                raise EvaluationError(
                    f"Cannot include a {type_name_of(value)} value in a string template"
                )
            rendered.append(to_display(value))
        return "".join(rendered)

    # Expression dispatch table
    _EXPR_DISPATCH: dict[str, Callable[[ExpressionEvaluator, Expression], object]] = {
        "literal": _eval_literal,
        "variable_ref": _eval_variable_ref,
        "local_ref": _eval_local_ref,
        "resource_ref": _eval_resource_ref,
        "iteration_ref": _eval_iteration_ref,
        "scope_ref": _eval_scope_ref,
        "binary": _eval_binary,
        "unary": _eval_unary,
        "conditional": _eval_conditional,
        "function_call": _eval_function_call,
        "index": _eval_index,
        "get_attr": _eval_get_attr,
        "tuple": _eval_tuple,
        "object": _eval_object,
        "for": _eval_for,
        "template": _eval_template,
    }
