"""Input value sources and their precedence.

A variable may receive a value from several places. The highest
precedence source wins: command line, then environment, then variable
files (later files override earlier ones), then the declared default.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from enum import IntEnum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel

from tfconf.model.types import AnyTypeRef, PrimitiveType, PrimitiveTypeRef, TypeRef
from tfconf.model.variables import Variable

from ._values import ConfigError, TypeMismatchError

logger = logging.getLogger(__name__)

DEFAULT_ENV_PREFIX = "TF_VAR_"


class ValueSource(IntEnum):
    """Where a value came from; higher values take precedence."""

    DEFAULT = 0
    FILE = 1
    ENVIRONMENT = 2
    COMMAND_LINE = 3


class ResolvedInput(BaseModel):
    """The winning raw value for one variable and where it came from."""

    name: str
    value: Any = None
    source: ValueSource
    origin: str = ""


class UndeclaredVariableError(ConfigError):
    def __init__(self, name: str, origin: str):
        self.name = name
        self.origin = origin
        super().__init__(f"Value for undeclared variable '{name}' ({origin})")


class VarFileError(ConfigError):
    """A variable file could not be read or has the wrong shape."""


# ---------------------------------------------------------------------------
# Raw string parsing
# ---------------------------------------------------------------------------

def parse_raw_value(raw: str, type_ref: TypeRef, name: str = "") -> object:
    """Interpret a string from the command line or environment.

    Strings stay as-is, numbers and bools are parsed, complex types are
    read as JSON. For ``any`` a JSON document is tried first.
    """
    path = f"var.{name}" if name else ""
    if isinstance(type_ref, PrimitiveTypeRef):
        if type_ref.type == PrimitiveType.STRING:
            return raw
        if type_ref.type == PrimitiveType.NUMBER:
            try:
                return int(raw)
            except ValueError:
                pass
            try:
                return float(raw)
            except ValueError:
                raise TypeMismatchError(
                    f"a number is required, got {json.dumps(raw)}",
                    path=path, expected="number", got="string",
                ) from None
        if type_ref.type == PrimitiveType.BOOL:
            lowered = raw.strip().lower()
            if lowered in ("true", "false"):
                return lowered == "true"
            raise TypeMismatchError(
                f"a bool is required, got {json.dumps(raw)}",
                path=path, expected="bool", got="string",
            )

    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        if isinstance(type_ref, AnyTypeRef):
            return raw
        raise TypeMismatchError(
            f"value {json.dumps(raw)} is not valid JSON for a structured type",
            path=path, got="string",
        ) from None


def parse_cli_assignment(text: str) -> tuple[str, str]:
    """Split ``name=value`` from a ``--var`` argument."""
    name, sep, value = text.partition("=")
    name = name.strip()
    if not sep or not name:
        raise ConfigError(f"Invalid variable assignment {text!r}; expected NAME=VALUE")
    return name, value


# ---------------------------------------------------------------------------
# Variable files
# ---------------------------------------------------------------------------

def read_var_file(path: str | Path) -> dict[str, object]:
    """Load a JSON or YAML variable file into a name -> value mapping."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise VarFileError(f"Cannot read variable file {path}: {exc}") from exc

    try:
        if path.suffix == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise VarFileError(f"Cannot parse variable file {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise VarFileError(f"Variable file {path} must contain a mapping at top level")
    return data


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

def resolve_inputs(
    variables: Iterable[Variable],
    *,
    cli_vars: Mapping[str, str] | None = None,
    env: Mapping[str, str] | None = None,
    var_files: Iterable[str | Path] = (),
    file_values: Iterable[Mapping[str, object]] = (),
    env_prefix: str = DEFAULT_ENV_PREFIX,
) -> dict[str, ResolvedInput]:
    """Pick the highest-precedence value for every declared variable.

    *env* is read for *env_prefix* names; the process environment is
    only consulted when the caller passes it.
    *file_values* are already-parsed variable mappings applied after
    *var_files*. Variables with no value anywhere and no default are
    left out; the caller reports them as missing.

    Raises ``UndeclaredVariableError`` for command-line values naming an
    undeclared variable.
    """
    declared = {v.name: v for v in variables}
    env = env or {}
    resolved: dict[str, ResolvedInput] = {}

    def _offer(candidate: ResolvedInput) -> None:
        current = resolved.get(candidate.name)
        if current is None or candidate.source >= current.source:
            resolved[candidate.name] = candidate

    for var in declared.values():
        if not var.required:
            _offer(ResolvedInput(name=var.name, value=var.default,
                                 source=ValueSource.DEFAULT, origin="default"))

    file_layers: list[tuple[str, Mapping[str, object]]] = [
        (str(p), read_var_file(p)) for p in var_files
    ]
    file_layers.extend(("<values>", values) for values in file_values)
    for origin, values in file_layers:
        for name, value in values.items():
            if name not in declared:
                logger.warning("Ignoring value for undeclared variable '%s' in %s", name, origin)
                continue
            _offer(ResolvedInput(name=name, value=value,
                                 source=ValueSource.FILE, origin=origin))

    for key, raw in env.items():
        if not key.startswith(env_prefix):
            continue
        name = key[len(env_prefix):]
        var = declared.get(name)
        if var is None:
            continue
        _offer(ResolvedInput(name=name, value=parse_raw_value(raw, var.data_type, name),
                             source=ValueSource.ENVIRONMENT, origin=key))

    for name, raw in (cli_vars or {}).items():
        var = declared.get(name)
        if var is None:
            raise UndeclaredVariableError(name, "command line")
        _offer(ResolvedInput(name=name, value=parse_raw_value(raw, var.data_type, name),
                             source=ValueSource.COMMAND_LINE, origin="command line"))

    for item in resolved.values():
        logger.debug("var.%s from %s (%s)", item.name, item.source.name.lower(), item.origin)
    return resolved
