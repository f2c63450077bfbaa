"""Type constants, constructors and the type-constraint parser.

Provides:
- Primitive type constants (STRING, NUMBER, BOOL, ANY) for use in
  variable declarations.
- Constructors for nested types: ``list_of(NUMBER)``,
  ``object_of(name=STRING, port=optional(NUMBER, 80))``.
- ``parse_type`` for the constraint spelling used in documents:
  ``map(object({port=number, tls=optional(bool, true)}))``.
"""

from __future__ import annotations

import json
import re
from typing import Any

from tfconf.model.types import (
    AnyTypeRef,
    ListTypeRef,
    MapTypeRef,
    ObjectAttribute,
    ObjectTypeRef,
    PrimitiveType,
    PrimitiveTypeRef,
    SetTypeRef,
    TupleTypeRef,
    TypeRef,
)

from tfconf.evaluate._values import TypeMismatchError, convert


class TypeParseError(ValueError):
    """Malformed type constraint."""


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

STRING = PrimitiveTypeRef(type=PrimitiveType.STRING)
NUMBER = PrimitiveTypeRef(type=PrimitiveType.NUMBER)
BOOL = PrimitiveTypeRef(type=PrimitiveType.BOOL)
ANY = AnyTypeRef()


# ---------------------------------------------------------------------------
# Constructors
# ---------------------------------------------------------------------------

def _resolve_type_ref(value: object) -> TypeRef:
    """Accept a TypeRef, a PrimitiveType member or a constraint string."""
    if isinstance(value, PrimitiveType):
        return PrimitiveTypeRef(type=value)
    if isinstance(value, str):
        return parse_type(value)
    if isinstance(value, (PrimitiveTypeRef, AnyTypeRef, ListTypeRef, SetTypeRef,
                          MapTypeRef, TupleTypeRef, ObjectTypeRef)):
        return value
    raise TypeError(f"Cannot use {value!r} as a type")


def _checked_default(type_ref: TypeRef, default: Any) -> Any:
    try:
        return convert(default, type_ref)
    except TypeMismatchError as exc:
        raise TypeParseError(f"Invalid default for optional attribute: {exc}") from exc


class _Optional:
    __slots__ = ("data_type", "default")

    def __init__(self, data_type: TypeRef, default: Any) -> None:
        self.data_type = data_type
        self.default = default


def optional(data_type: object, default: Any = None) -> _Optional:
    """Mark an ``object_of`` attribute as optional, with an optional default."""
    type_ref = _resolve_type_ref(data_type)
    return _Optional(type_ref, _checked_default(type_ref, default))


def list_of(element_type: object) -> ListTypeRef:
    return ListTypeRef(element_type=_resolve_type_ref(element_type))


def set_of(element_type: object) -> SetTypeRef:
    return SetTypeRef(element_type=_resolve_type_ref(element_type))


def map_of(element_type: object) -> MapTypeRef:
    return MapTypeRef(element_type=_resolve_type_ref(element_type))


def tuple_of(*element_types: object) -> TupleTypeRef:
    return TupleTypeRef(element_types=[_resolve_type_ref(t) for t in element_types])


def object_of(**attributes: object) -> ObjectTypeRef:
    attrs = []
    for name, spec in attributes.items():
        if isinstance(spec, _Optional):
            attrs.append(ObjectAttribute(name=name, data_type=spec.data_type,
                                         optional=True, default=spec.default))
        else:
            attrs.append(ObjectAttribute(name=name, data_type=_resolve_type_ref(spec)))
    return ObjectTypeRef(attributes=attrs)


# ---------------------------------------------------------------------------
# Constraint parser
# ---------------------------------------------------------------------------

_TOKEN_RE = re.compile(
    r"""
    \s*(?:
        (?P<string>"(?:[^"\\]|\\.)*")
      | (?P<number>-?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?)
      | (?P<ident>[A-Za-z_][A-Za-z0-9_-]*)
      | (?P<punct>[()\[\]{},=:])
    )
    """,
    re.VERBOSE,
)

_PRIMITIVES = {
    "string": STRING,
    "number": NUMBER,
    "bool": BOOL,
    "any": ANY,
}


class _TypeParser:
    """Recursive-descent parser over a token list."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.tokens: list[tuple[str, str]] = []
        pos = 0
        stripped = text.rstrip()
        while pos < len(stripped):
            m = _TOKEN_RE.match(stripped, pos)
            if m is None or m.end() == pos:
                raise TypeParseError(
                    f"Unexpected character {stripped[pos:].strip()[:1]!r} in type {text!r}"
                )
            kind = m.lastgroup
            self.tokens.append((kind, m.group(kind)))
            pos = m.end()
        self.pos = 0

    # -- token helpers -------------------------------------------------------

    def _peek(self) -> tuple[str, str] | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _next(self) -> tuple[str, str]:
        tok = self._peek()
        if tok is None:
            raise TypeParseError(f"Unexpected end of type {self.text!r}")
        self.pos += 1
        return tok

    def _expect(self, value: str) -> None:
        kind, text = self._next()
        if text != value or kind == "string":
            raise TypeParseError(f"Expected {value!r} but found {text!r} in type {self.text!r}")

    def _accept(self, value: str) -> bool:
        tok = self._peek()
        if tok is not None and tok[1] == value and tok[0] == "punct":
            self.pos += 1
            return True
        return False

    # -- grammar -------------------------------------------------------------

    def parse(self) -> TypeRef:
        result = self._type()
        if self._peek() is not None:
            raise TypeParseError(
                f"Unexpected {self._peek()[1]!r} after type in {self.text!r}"
            )
        return result

    def _type(self) -> TypeRef:
        kind, name = self._next()
        if kind != "ident":
            raise TypeParseError(f"Expected a type name, found {name!r} in {self.text!r}")

        if name in _PRIMITIVES:
            return _PRIMITIVES[name]

        if name in ("list", "set", "map"):
            self._expect("(")
            element = self._type()
            self._expect(")")
            ctor = {"list": ListTypeRef, "set": SetTypeRef, "map": MapTypeRef}[name]
            return ctor(element_type=element)

        if name == "tuple":
            self._expect("(")
            self._expect("[")
            elements: list[TypeRef] = []
            while not self._accept("]"):
                elements.append(self._type())
                if not self._accept(","):
                    self._expect("]")
                    break
            self._expect(")")
            return TupleTypeRef(element_types=elements)

        if name == "object":
            self._expect("(")
            self._expect("{")
            attributes: list[ObjectAttribute] = []
            while not self._accept("}"):
                attributes.append(self._attribute())
                # Attributes may be separated by commas or just line breaks
                self._accept(",")
            self._expect(")")
            try:
                return ObjectTypeRef(attributes=attributes)
            except ValueError as exc:
                raise TypeParseError(f"Invalid object type {self.text!r}: {exc}") from exc

        raise TypeParseError(f"Unknown type {name!r} in {self.text!r}")

    def _attribute(self) -> ObjectAttribute:
        kind, name = self._next()
        if kind == "string":
            name = json.loads(name)
        elif kind != "ident":
            raise TypeParseError(f"Expected an attribute name, found {name!r} in {self.text!r}")
        if not (self._accept("=") or self._accept(":")):
            raise TypeParseError(f"Expected '=' after attribute {name!r} in {self.text!r}")

        tok = self._peek()
        if tok is not None and tok == ("ident", "optional"):
            self._next()
            self._expect("(")
            data_type = self._type()
            default = None
            if self._accept(","):
                default = _checked_default(data_type, self._literal())
            self._expect(")")
            return ObjectAttribute(name=name, data_type=data_type,
                                   optional=True, default=default)
        return ObjectAttribute(name=name, data_type=self._type())

    def _literal(self) -> object:
        kind, text = self._next()
        if kind == "string":
            return json.loads(text)
        if kind == "number":
            return json.loads(text)
        if kind == "ident" and text in ("true", "false", "null"):
            return {"true": True, "false": False, "null": None}[text]
        if text == "[":
            items = []
            while not self._accept("]"):
                items.append(self._literal())
                if not self._accept(","):
                    self._expect("]")
                    break
            return items
        if text == "{":
            obj = {}
            while not self._accept("}"):
                key_kind, key = self._next()
                if key_kind == "string":
                    key = json.loads(key)
                if not (self._accept("=") or self._accept(":")):
                    raise TypeParseError(f"Expected '=' after key {key!r} in {self.text!r}")
                obj[key] = self._literal()
                if not self._accept(","):
                    self._expect("}")
                    break
            return obj
        raise TypeParseError(f"Expected a literal default, found {text!r} in {self.text!r}")


def parse_type(text: str) -> TypeRef:
    """Parse a type constraint such as ``list(object({name=string}))``."""
    if not text or not text.strip():
        raise TypeParseError("Empty type constraint")
    return _TypeParser(text).parse()
