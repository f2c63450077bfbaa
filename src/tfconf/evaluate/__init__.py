"""tfconf evaluator: resolve, check and evaluate a configuration.

Entry point::

    from tfconf.evaluate import evaluate

    ctx = evaluate(config, cli_vars={"environment": "prod"})
    ctx.var.port_numbers
    ctx.local.name_prefix
    ctx.outputs["db_endpoint"]
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path

from tfconf.model.configuration import Configuration

from ._context import EvaluationContext, Namespace
from ._evaluator import ExpressionEvaluator, Scope
from ._graph import build_graph, collect_references, evaluation_order
from ._sources import (
    DEFAULT_ENV_PREFIX,
    ResolvedInput,
    UndeclaredVariableError,
    ValueSource,
    VarFileError,
    parse_cli_assignment,
    read_var_file,
    resolve_inputs,
)
from ._validation import Diagnostic, Severity, check_variable
from ._values import (
    UNKNOWN,
    ConfigError,
    EvaluationError,
    FunctionCallError,
    MissingValueError,
    ReferenceCycleError,
    TypeMismatchError,
    UnknownReferenceError,
    ValidationFailedError,
    to_display,
    to_json_compatible,
)


def _context(
    configuration: Configuration,
    cli_vars: Mapping[str, str] | None,
    env: Mapping[str, str] | None,
    var_files: Iterable[str | Path],
    values: Mapping[str, object] | None,
    env_prefix: str,
    strict_objects: bool,
) -> EvaluationContext:
    inputs = resolve_inputs(
        configuration.variables,
        cli_vars=cli_vars,
        env=env if env is not None else {},
        var_files=var_files,
        file_values=[values] if values else [],
        env_prefix=env_prefix,
    )
    return EvaluationContext(configuration, inputs, strict_objects=strict_objects)


def evaluate(
    configuration: Configuration,
    *,
    values: Mapping[str, object] | None = None,
    cli_vars: Mapping[str, str] | None = None,
    env: Mapping[str, str] | None = None,
    var_files: Iterable[str | Path] = (),
    env_prefix: str = DEFAULT_ENV_PREFIX,
    strict_objects: bool = False,
) -> EvaluationContext:
    """Evaluate a configuration and return its context.

    Parameters
    ----------
    configuration
        The declarations to evaluate.
    values
        Already-typed variable values, ranked like a variable file.
    cli_vars
        ``name -> raw string`` from the command line (highest precedence).
    env
        Environment mapping searched for ``<env_prefix>NAME`` keys. Defaults
        to an empty mapping; pass ``os.environ`` explicitly to use it.
    var_files
        JSON/YAML variable files, later files overriding earlier ones.
    strict_objects
        Reject undeclared object attributes instead of dropping them.

    Raises
    ------
    ConfigError
        The first type mismatch, failed validation, missing value or
        evaluation error encountered.
    """
    ctx = _context(configuration, cli_vars, env, var_files, values, env_prefix, strict_objects)
    ctx.resolve_variables()
    ctx.evaluate_declarations()
    return ctx


def validate_configuration(
    configuration: Configuration,
    *,
    values: Mapping[str, object] | None = None,
    cli_vars: Mapping[str, str] | None = None,
    env: Mapping[str, str] | None = None,
    var_files: Iterable[str | Path] = (),
    env_prefix: str = DEFAULT_ENV_PREFIX,
    strict_objects: bool = False,
) -> EvaluationContext:
    """Like ``evaluate`` but records every problem in ``ctx.diagnostics``.

    Input source errors (unreadable files, undeclared command-line
    variables) are still raised.
    """
    ctx = _context(configuration, cli_vars, env, var_files, values, env_prefix, strict_objects)
    ctx.resolve_variables(collect=True)
    ctx.evaluate_declarations(collect=True)
    return ctx


__all__ = [
    "evaluate",
    "validate_configuration",
    "check_variable",
    "EvaluationContext",
    "ExpressionEvaluator",
    "Namespace",
    "Scope",
    "build_graph",
    "collect_references",
    "evaluation_order",
    "ResolvedInput",
    "ValueSource",
    "resolve_inputs",
    "parse_cli_assignment",
    "read_var_file",
    "Diagnostic",
    "Severity",
    "UNKNOWN",
    "ConfigError",
    "EvaluationError",
    "FunctionCallError",
    "MissingValueError",
    "ReferenceCycleError",
    "TypeMismatchError",
    "UndeclaredVariableError",
    "UnknownReferenceError",
    "ValidationFailedError",
    "VarFileError",
    "to_display",
    "to_json_compatible",
]
