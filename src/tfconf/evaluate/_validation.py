"""Variable type checking and validation rules.

A candidate value is first converted to the declared type; only a
structurally valid value reaches the validation rules, which run in
declaration order. The first failing rule's message is reported.
"""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import BaseModel

from tfconf.model.types import format_type
from tfconf.model.variables import ValidationRule, Variable

from ._evaluator import ExpressionEvaluator, Scope
from ._values import (
    UNKNOWN,
    ConfigError,
    EvaluationError,
    MissingValueError,
    TypeMismatchError,
    ValidationFailedError,
    convert,
    type_name_of,
)

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class Diagnostic(BaseModel):
    """A reportable problem found while evaluating a configuration."""

    severity: Severity = Severity.ERROR
    summary: str
    detail: str = ""
    address: str = ""

    @classmethod
    def from_error(cls, exc: ConfigError, address: str = "") -> Diagnostic:
        if isinstance(exc, ValidationFailedError):
            return cls(summary="Invalid value for variable" if exc.address.startswith("var.")
                       else "Condition failed",
                       detail=exc.error_message, address=exc.address)
        if isinstance(exc, TypeMismatchError):
            return cls(summary="Invalid value for input variable", detail=str(exc),
                       address=address)
        if isinstance(exc, MissingValueError):
            return cls(summary="No value for required variable", detail=str(exc),
                       address=address or f"var.{exc.name}")
        return cls(summary=type(exc).__name__, detail=str(exc), address=address)


def convert_variable(
    variable: Variable,
    value: object,
    *,
    strict_objects: bool = False,
) -> object:
    """Structurally check *value* against the variable's declared type.

    A null value for a non-nullable variable falls back to the default,
    or is rejected when there is none.
    """
    if value is None and not variable.nullable:
        if variable.required or variable.default is None:
            raise TypeMismatchError(
                "the given value is null, but this variable is not nullable",
                path=variable.address, expected=format_type(variable.data_type),
                got="null",
            )
        value = variable.default
    return convert(value, variable.data_type, path=variable.address,
                   strict_objects=strict_objects)


def check_conditions(
    rules: list[ValidationRule],
    evaluator: ExpressionEvaluator,
    address: str,
) -> None:
    """Evaluate *rules* in order; raise for the first one that is false.

    A condition that cannot be decided yet (unknown) is skipped.
    """
    for rule in rules:
        try:
            result = evaluator.evaluate(rule.condition)
        except EvaluationError as exc:
            raise EvaluationError(f"{address}: invalid condition: {exc}") from exc
        if result is UNKNOWN:
            logger.debug("Condition on %s deferred: value not known yet", address)
            continue
        if not isinstance(result, bool):
            raise EvaluationError(
                f"{address}: condition must return bool, got {type_name_of(result)}"
            )
        if not result:
            raise ValidationFailedError(address, rule.error_message)


def check_variable(
    variable: Variable,
    value: object,
    scope: Scope | None = None,
    *,
    strict_objects: bool = False,
) -> object:
    """Type-check and validate one candidate value; return the converted value.

    *scope* supplies other variables for rules that look beyond their own
    variable. The check has no side effects, so an accepted value is
    accepted again on every later call.

    Raises ``TypeMismatchError`` or ``ValidationFailedError``.
    """
    converted = convert_variable(variable, value, strict_objects=strict_objects)
    base = scope or Scope()
    rule_scope = Scope(
        variables={**base.variables, variable.name: converted},
        locals=base.locals,
        resources=base.resources,
    )
    check_conditions(variable.validations, ExpressionEvaluator(rule_scope), variable.address)
    return converted
