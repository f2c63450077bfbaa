"""Value system for evaluation.

Provides the error hierarchy, the unknown-value marker, and structural
type conversion, the foundation for all runtime value handling.
"""

from __future__ import annotations

import json
import logging
import math

from tfconf.model.types import (
    AnyTypeRef,
    ListTypeRef,
    MapTypeRef,
    ObjectTypeRef,
    PrimitiveType,
    PrimitiveTypeRef,
    SetTypeRef,
    TupleTypeRef,
    TypeRef,
    format_type,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class ConfigError(Exception):
    """Base class for every error raised while evaluating a configuration."""


class TypeMismatchError(ConfigError):
    """A value does not have the structure its declared type requires."""

    def __init__(self, message: str, path: str = "", expected: str = "", got: str = ""):
        self.path = path
        self.expected = expected
        self.got = got
        where = f" at {path}" if path else ""
        super().__init__(f"Invalid value{where}: {message}")


class ValidationFailedError(ConfigError):
    """A structurally valid value failed a declared condition."""

    def __init__(self, address: str, error_message: str):
        self.address = address
        self.error_message = error_message
        super().__init__(f"{address}: {error_message}")


class MissingValueError(ConfigError):
    """A required variable received no value from any source."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"No value for required variable '{name}'")


class EvaluationError(ConfigError):
    """An expression could not be evaluated."""


class ReferenceCycleError(EvaluationError):
    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__("Reference cycle: " + " -> ".join(cycle))


class UnknownReferenceError(EvaluationError):
    def __init__(self, address: str, referrer: str = ""):
        self.address = address
        self.referrer = referrer
        suffix = f" (referenced from {referrer})" if referrer else ""
        super().__init__(f"Reference to undeclared '{address}'{suffix}")


class FunctionCallError(EvaluationError):
    def __init__(self, function_name: str, message: str):
        self.function_name = function_name
        super().__init__(f"Error in function call {function_name}(): {message}")


# ---------------------------------------------------------------------------
# Unknown values and resource instances
# ---------------------------------------------------------------------------

class _Unknown:
    """Marker for a value that is only known after apply."""

    _instance: _Unknown | None = None

    def __new__(cls) -> _Unknown:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "(known after apply)"


UNKNOWN = _Unknown()


def is_unknown(value: object) -> bool:
    """True if *value* is unknown or contains an unknown anywhere inside."""
    if value is UNKNOWN:
        return True
    if isinstance(value, dict):
        return any(is_unknown(v) for v in value.values())
    if isinstance(value, (list, tuple)):
        return any(is_unknown(v) for v in value)
    return False


class ResourceInstance(dict):
    """Attribute values of one resource instance.

    Attributes the configuration does not set are computed by the
    provider, so reading them yields ``UNKNOWN`` instead of an error.
    """

    def __init__(self, address: str, attributes: dict | None = None):
        super().__init__(attributes or {})
        self.address = address

    def __repr__(self) -> str:
        return f"ResourceInstance({self.address!r}, {dict.__repr__(self)})"


# ---------------------------------------------------------------------------
# Type names and numbers
# ---------------------------------------------------------------------------

def is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_whole_number(value: object) -> bool:
    if isinstance(value, float):
        return math.isfinite(value) and value.is_integer()
    return is_number(value)


def values_equal(left: object, right: object) -> bool:
    """Equality that never treats bools and numbers as interchangeable."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, dict) and isinstance(right, dict):
        return left.keys() == right.keys() and all(
            values_equal(left[k], right[k]) for k in left
        )
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        return len(left) == len(right) and all(
            values_equal(a, b) for a, b in zip(left, right)
        )
    return left == right


def contains_value(items: list, value: object) -> bool:
    return any(values_equal(item, value) for item in items)


def normalize_number(value: int | float) -> int | float:
    """Collapse integral floats to int so ``4 / 2`` reads as ``2``."""
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    return value


def type_name_of(value: object) -> str:
    """Human-readable type name for error messages."""
    if value is None:
        return "null"
    if value is UNKNOWN:
        return "unknown"
    if isinstance(value, bool):
        return "bool"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "tuple"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


# ---------------------------------------------------------------------------
# Type conversion
# ---------------------------------------------------------------------------

def _child(path: str, key: object) -> str:
    if isinstance(key, int):
        return f"{path}[{key}]"
    return f"{path}[{json.dumps(key)}]" if path else json.dumps(key)


def _mismatch(expected: str, value: object, path: str, detail: str = "") -> TypeMismatchError:
    got = type_name_of(value)
    message = detail or f"{expected} required, got {got}"
    return TypeMismatchError(message, path=path, expected=expected, got=got)


def convert(
    value: object,
    type_ref: TypeRef,
    *,
    path: str = "",
    strict_objects: bool = False,
) -> object:
    """Check *value* against *type_ref* and return the converted value.

    - null conforms to every type
    - primitives are strict: bool is not a number, numbers are not strings
    - sets drop duplicate elements, keeping first occurrences
    - objects fill optional attributes and drop undeclared ones
      (rejected instead when *strict_objects* is set)

    Raises ``TypeMismatchError`` naming the offending path.
    """
    if value is None or value is UNKNOWN:
        return value

    if isinstance(type_ref, AnyTypeRef):
        return value

    if isinstance(type_ref, PrimitiveTypeRef):
        return _convert_primitive(value, type_ref.type, path)

    if isinstance(type_ref, (ListTypeRef, SetTypeRef)):
        expected = format_type(type_ref)
        if not isinstance(value, (list, tuple, set, frozenset)):
            raise _mismatch(expected, value, path)
        if isinstance(value, (set, frozenset)):
            value = sorted(value, key=repr)
        items = [
            convert(item, type_ref.element_type, path=_child(path, i),
                    strict_objects=strict_objects)
            for i, item in enumerate(value)
        ]
        if isinstance(type_ref, SetTypeRef):
            unique: list[object] = []
            for item in items:
                if not contains_value(unique, item):
                    unique.append(item)
            return unique
        return items

    if isinstance(type_ref, MapTypeRef):
        if not isinstance(value, dict):
            raise _mismatch(format_type(type_ref), value, path)
        result = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise _mismatch(
                    format_type(type_ref), value, path,
                    f"map keys must be strings, got {type_name_of(key)}",
                )
            result[key] = convert(item, type_ref.element_type,
                                  path=_child(path, key),
                                  strict_objects=strict_objects)
        return result

    if isinstance(type_ref, TupleTypeRef):
        expected = format_type(type_ref)
        if not isinstance(value, (list, tuple)):
            raise _mismatch(expected, value, path)
        if len(value) != len(type_ref.element_types):
            raise _mismatch(
                expected, value, path,
                f"tuple required exactly {len(type_ref.element_types)} "
                f"elements, got {len(value)}",
            )
        return [
            convert(item, elem_type, path=_child(path, i),
                    strict_objects=strict_objects)
            for i, (item, elem_type) in enumerate(zip(value, type_ref.element_types))
        ]

    if isinstance(type_ref, ObjectTypeRef):
        return _convert_object(value, type_ref, path, strict_objects)

    raise TypeError(f"not a type reference: {type_ref!r}")


def _convert_primitive(value: object, ptype: PrimitiveType, path: str) -> object:
    if ptype == PrimitiveType.STRING:
        if isinstance(value, str):
            return value
        raise _mismatch("string", value, path)

    if ptype == PrimitiveType.NUMBER:
        if is_number(value):
            if isinstance(value, float) and not math.isfinite(value):
                raise _mismatch("number", value, path, "number must be finite")
            return value
        raise _mismatch("number", value, path)

    if ptype == PrimitiveType.BOOL:
        if isinstance(value, bool):
            return value
        raise _mismatch("bool", value, path)

    raise TypeError(f"unhandled primitive type: {ptype}")


def _convert_object(
    value: object,
    type_ref: ObjectTypeRef,
    path: str,
    strict_objects: bool,
) -> dict:
    expected = format_type(type_ref)
    if not isinstance(value, dict):
        raise _mismatch(expected, value, path)

    declared = {attr.name for attr in type_ref.attributes}
    extra = sorted(k for k in value if k not in declared)
    if extra:
        if strict_objects:
            raise _mismatch(
                expected, value, path,
                f"unexpected attribute {json.dumps(extra[0])}",
            )
        logger.debug("Dropping undeclared attributes %s at %s", extra, path or "<root>")

    result: dict[str, object] = {}
    for attr in type_ref.attributes:
        child_path = _child(path, attr.name)
        if attr.name not in value:
            if not attr.optional:
                raise _mismatch(
                    expected, value, path,
                    f"attribute {json.dumps(attr.name)} is required",
                )
            result[attr.name] = convert(attr.default, attr.data_type,
                                        path=child_path,
                                        strict_objects=strict_objects)
            continue
        result[attr.name] = convert(value[attr.name], attr.data_type,
                                    path=child_path,
                                    strict_objects=strict_objects)
    return result


def conforms(value: object, type_ref: TypeRef) -> bool:
    """True if *value* converts to *type_ref* without error."""
    try:
        convert(value, type_ref)
    except TypeMismatchError:
        return False
    return True


# ---------------------------------------------------------------------------
# Display
# ---------------------------------------------------------------------------

def to_display(value: object) -> str:
    """Render a value the way diagnostics and templates show it."""
    if value is None:
        return "null"
    if value is UNKNOWN:
        return repr(UNKNOWN)
    if isinstance(value, bool):
        return "true" if value else "false"
    if is_number(value):
        return str(normalize_number(value))
    if isinstance(value, str):
        return value
    return json.dumps(to_json_compatible(value), sort_keys=True)


def to_json_compatible(value: object) -> object:
    """Replace unknown markers so a value can be serialized."""
    if value is UNKNOWN:
        return repr(UNKNOWN)
    if isinstance(value, dict):
        return {k: to_json_compatible(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_compatible(v) for v in value]
    if is_number(value):
        return normalize_number(value)
    return value
