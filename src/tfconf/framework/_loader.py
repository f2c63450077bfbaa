"""Load configuration documents into the model.

Documents follow the JSON layout of Terraform configurations and may be
written as JSON or YAML::

    variable:
      port_numbers:
        type: list(number)
        default: [80, 443]
        validation:
          - condition: all(1 <= p <= 65535 for p in var.port_numbers)
            error_message: All port numbers must be between 1 and 65535.
    locals:
      name_prefix: "${var.project}-${var.environment}"
    resource:
      aws_instance:
        web:
          count: var.instance_count
          tags: {Name: "${local.name_prefix}-${count.index}"}
    output:
      web_ids:
        value: "${[i.id for i in aws_instance.web]}"

Attribute, local and output values are templates (``${...}``); lists and
mappings become constructors. Fields that are always expressions
(``condition``, ``count``, ``for_each``) also accept a bare expression.
Variable defaults are plain data and are never compiled.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from tfconf.evaluate._values import TypeMismatchError, convert
from tfconf.model.configuration import Configuration
from tfconf.model.expressions import (
    Expression,
    LiteralExpr,
    ObjectExpr,
    ObjectItem,
    ResourceMode,
    TupleExpr,
)
from tfconf.model.resources import DynamicBlock, Output, Resource
from tfconf.model.types import AnyTypeRef
from tfconf.model.variables import LocalValue, ValidationRule, Variable

from ._compilation_helpers import CompileError
from ._compiler import compile_expression, compile_template
from ._types import TypeParseError, parse_type

logger = logging.getLogger(__name__)

_TOP_LEVEL_KEYS = frozenset({"name", "variable", "locals", "resource", "data", "output", "metadata"})
_VARIABLE_KEYS = frozenset({"type", "default", "description", "sensitive", "nullable", "validation"})
_OUTPUT_KEYS = frozenset({"value", "description", "sensitive", "depends_on", "precondition"})
_META_ARGUMENTS = frozenset({"count", "for_each", "depends_on", "dynamic", "lifecycle", "provider"})


class LoadError(Exception):
    """The document could not be read or does not describe a configuration."""

    def __init__(self, message: str, location: str = ""):
        self.location = location
        super().__init__(f"{location}: {message}" if location else message)


# ---------------------------------------------------------------------------
# Values and expressions
# ---------------------------------------------------------------------------

def _compile_value(value: object, where: str, bound: tuple[str, ...] = ()) -> Expression:
    """Document value → expression: strings are templates, collections constructors."""
    try:
        if isinstance(value, str):
            return compile_template(value, bound_names=bound)
    except CompileError as exc:
        raise LoadError(str(exc), where) from exc
    if value is None or isinstance(value, (bool, int, float)):
        return LiteralExpr(value=value)
    if isinstance(value, list):
        return TupleExpr(items=[
            _compile_value(item, f"{where}[{i}]", bound) for i, item in enumerate(value)
        ])
    if isinstance(value, Mapping):
        items = []
        for key, item in value.items():
            items.append(ObjectItem(
                key=_compile_value(str(key), where, bound),
                value=_compile_value(item, f"{where}.{key}", bound),
            ))
        return ObjectExpr(items=items)
    raise LoadError(f"unsupported value of type {type(value).__name__}", where)


def _compile_expression_field(value: object, where: str, bound: tuple[str, ...] = ()) -> Expression:
    """Like ``_compile_value`` but a string without ``${`` is a bare expression."""
    if isinstance(value, str) and "${" not in value:
        try:
            return compile_expression(value, bound_names=bound)
        except CompileError as exc:
            raise LoadError(str(exc), where) from exc
    return _compile_value(value, where, bound)


def _as_list(value: object, where: str) -> list:
    if value is None:
        return []
    if isinstance(value, Mapping):
        return [value]
    if isinstance(value, list):
        return value
    raise LoadError("expected a mapping or a list of mappings", where)


def _expect_mapping(value: object, where: str) -> Mapping:
    if not isinstance(value, Mapping):
        raise LoadError(f"expected a mapping, got {type(value).__name__}", where)
    return value


def _rules(value: object, where: str) -> list[ValidationRule]:
    rules = []
    for i, block in enumerate(_as_list(value, where)):
        loc = f"{where}[{i}]"
        block = _expect_mapping(block, loc)
        if "condition" not in block or "error_message" not in block:
            raise LoadError("requires 'condition' and 'error_message'", loc)
        try:
            rules.append(ValidationRule(
                condition=_compile_expression_field(block["condition"], f"{loc}.condition"),
                error_message=str(block["error_message"]),
            ))
        except ValidationError as exc:
            raise LoadError(_first_error(exc), loc) from exc
    return rules


def _depends_on(value: object, where: str) -> list[str]:
    result = []
    for item in _as_list(value, where) if not isinstance(value, str) else [value]:
        if not isinstance(item, str):
            raise LoadError("depends_on entries must be addresses", where)
        item = item.strip()
        if item.startswith("${") and item.endswith("}"):
            item = item[2:-1].strip()
        result.append(item)
    return result


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    return err["msg"].removeprefix("Value error, ")


# ---------------------------------------------------------------------------
# Declarations
# ---------------------------------------------------------------------------

def _variable(name: str, body: object) -> Variable:
    where = f"variable.{name}"
    body = _expect_mapping(body or {}, where)
    unknown = set(body) - _VARIABLE_KEYS
    if unknown:
        raise LoadError(f"unsupported argument(s) {sorted(unknown)}", where)

    fields: dict[str, Any] = {"name": name}
    if "type" in body:
        try:
            fields["data_type"] = parse_type(str(body["type"]))
        except TypeParseError as exc:
            raise LoadError(str(exc), f"{where}.type") from exc
    else:
        fields["data_type"] = AnyTypeRef()
    if "default" in body:
        fields["default"] = body["default"]
    for key in ("description", "sensitive", "nullable"):
        if key in body:
            fields[key] = body[key]
    fields["validations"] = _rules(body.get("validation"), f"{where}.validation")
    try:
        variable = Variable(**fields)
    except ValidationError as exc:
        raise LoadError(_first_error(exc), where) from exc
    if "default" in body:
        try:
            convert(body["default"], variable.data_type, path=f"{where}.default")
        except TypeMismatchError as exc:
            raise LoadError(
                f"default value is not compatible with the type constraint: {exc}", where,
            ) from exc
    return variable


def _locals(value: object) -> list[LocalValue]:
    result = []
    for block in _as_list(value, "locals"):
        for name, body in _expect_mapping(block, "locals").items():
            result.append(LocalValue(name=name, value=_compile_value(body, f"local.{name}")))
    return result


def _dynamic_blocks(value: object, where: str) -> list[DynamicBlock]:
    blocks = []
    for name, body in _expect_mapping(value, where).items():
        loc = f"{where}.{name}"
        body = _expect_mapping(body, loc)
        if "for_each" not in body:
            raise LoadError("dynamic blocks require 'for_each'", loc)
        iterator = body.get("iterator")
        bound = (iterator or name,)
        content = _expect_mapping(body.get("content", {}), f"{loc}.content")
        blocks.append(DynamicBlock(
            name=name,
            for_each=_compile_expression_field(body["for_each"], f"{loc}.for_each"),
            iterator=iterator,
            content={
                key: _compile_value(item, f"{loc}.content.{key}", bound)
                for key, item in content.items()
            },
        ))
    return blocks


def _resource(mode: ResourceMode, resource_type: str, name: str, body: object) -> Resource:
    prefix = "data." if mode == ResourceMode.DATA else ""
    where = f"{prefix}{resource_type}.{name}"
    body = _expect_mapping(body or {}, where)

    fields: dict[str, Any] = {
        "mode": mode,
        "resource_type": resource_type,
        "name": name,
        "attributes": {
            key: _compile_value(item, f"{where}.{key}")
            for key, item in body.items() if key not in _META_ARGUMENTS
        },
    }
    if "count" in body:
        fields["count"] = _compile_expression_field(body["count"], f"{where}.count")
    if "for_each" in body:
        fields["for_each"] = _compile_expression_field(body["for_each"], f"{where}.for_each")
    if "dynamic" in body:
        fields["dynamic_blocks"] = _dynamic_blocks(body["dynamic"], f"{where}.dynamic")
    if "depends_on" in body:
        fields["depends_on"] = _depends_on(body["depends_on"], f"{where}.depends_on")
    lifecycle = body.get("lifecycle") or {}
    preconditions = []
    for i, block in enumerate(_as_list(lifecycle, f"{where}.lifecycle")):
        block = _expect_mapping(block, f"{where}.lifecycle[{i}]")
        preconditions += _rules(block.get("precondition"), f"{where}.lifecycle[{i}].precondition")
    fields["preconditions"] = preconditions
    if "provider" in body:
        logger.debug("%s: ignoring provider meta-argument", where)

    try:
        return Resource(**fields)
    except ValidationError as exc:
        raise LoadError(_first_error(exc), where) from exc


def _resources(mode: ResourceMode, value: object) -> list[Resource]:
    section = "data" if mode == ResourceMode.DATA else "resource"
    result = []
    for block in _as_list(value, section):
        for resource_type, named in _expect_mapping(block, section).items():
            named = _expect_mapping(named, f"{section}.{resource_type}")
            for name, body in named.items():
                result.append(_resource(mode, resource_type, name, body))
    return result


def _output(name: str, body: object) -> Output:
    where = f"output.{name}"
    body = _expect_mapping(body, where)
    unknown = set(body) - _OUTPUT_KEYS
    if unknown:
        raise LoadError(f"unsupported argument(s) {sorted(unknown)}", where)
    if "value" not in body:
        raise LoadError("outputs require a 'value'", where)
    try:
        return Output(
            name=name,
            value=_compile_value(body["value"], f"{where}.value"),
            description=body.get("description", ""),
            sensitive=body.get("sensitive", False),
            depends_on=_depends_on(body.get("depends_on"), f"{where}.depends_on"),
            preconditions=_rules(body.get("precondition"), f"{where}.precondition"),
        )
    except ValidationError as exc:
        raise LoadError(_first_error(exc), where) from exc


def _named_blocks(value: object, section: str) -> list[tuple[str, object]]:
    pairs = []
    for block in _as_list(value, section):
        pairs.extend(_expect_mapping(block, section).items())
    return pairs


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def configuration_from_dict(document: Mapping[str, Any], name: str = "") -> Configuration:
    """Build a ``Configuration`` from a parsed JSON/YAML document.

    Raises ``LoadError`` for malformed documents, uncompilable
    expressions and violated model invariants.
    """
    document = _expect_mapping(document, "document")
    unknown = set(document) - _TOP_LEVEL_KEYS
    if unknown:
        raise LoadError(f"unsupported top-level block(s) {sorted(unknown)}")

    variables = [_variable(n, body) for n, body in _named_blocks(document.get("variable"), "variable")]
    outputs = [_output(n, body) for n, body in _named_blocks(document.get("output"), "output")]
    resources = _resources(ResourceMode.MANAGED, document.get("resource"))
    resources += _resources(ResourceMode.DATA, document.get("data"))

    try:
        config = Configuration(
            name=document.get("name", name),
            variables=variables,
            locals=_locals(document.get("locals")),
            resources=resources,
            outputs=outputs,
            metadata=document.get("metadata", {}),
        )
    except ValidationError as exc:
        raise LoadError(_first_error(exc)) from exc
    logger.debug(
        "Loaded configuration %r: %d variables, %d locals, %d resources, %d outputs",
        config.name, len(config.variables), len(config.locals),
        len(config.resources), len(config.outputs),
    )
    return config


def load_configuration(path: str | Path) -> Configuration:
    """Read a ``.json``, ``.yaml`` or ``.yml`` configuration document."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise LoadError(f"cannot read configuration: {exc}", str(path)) from exc

    try:
        if path.suffix == ".json":
            document = json.loads(text)
        elif path.suffix in (".yaml", ".yml"):
            document = yaml.safe_load(text)
        else:
            raise LoadError("configuration files must be .json, .yaml or .yml", str(path))
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise LoadError(f"cannot parse configuration: {exc}", str(path)) from exc

    return configuration_from_dict(document or {}, name=path.stem)
