"""Shared test helpers for the tfconf test suite."""

import textwrap

import yaml

from tfconf.evaluate import ExpressionEvaluator, Scope
from tfconf.framework import compile_expression, configuration_from_dict, parse_type
from tfconf.model.variables import ValidationRule, Variable


def compile_expr(source: str, bound=()):
    """Compile a single Python-syntax expression string to an IR expression."""
    return compile_expression(source, bound_names=bound)


def eval_expr(source: str, *, variables=None, locals=None, resources=None, bindings=None):
    """Compile and evaluate an expression against an ad-hoc scope."""
    bindings = bindings or {}
    expr = compile_expression(source, bound_names=tuple(bindings))
    scope = Scope(
        variables=variables or {},
        locals=locals or {},
        resources=resources or {},
        bindings=bindings,
    )
    return ExpressionEvaluator(scope).evaluate(expr)


def rule(condition: str, message: str) -> ValidationRule:
    """Shorthand for a validation rule with a compiled condition."""
    return ValidationRule(condition=compile_expression(condition), error_message=message)


def var(name: str, type_text: str = "any", *rules: ValidationRule, **kwargs) -> Variable:
    """Build a Variable from a type constraint string and optional rules."""
    return Variable(name=name, data_type=parse_type(type_text), validations=list(rules), **kwargs)


def load_yaml(text: str):
    """Build a Configuration from an inline YAML document."""
    return configuration_from_dict(yaml.safe_load(textwrap.dedent(text)))
