"""Type system for configuration variables.

A ``TypeRef`` describes the structural shape a value must have. It is a
discriminated union on ``kind`` and nests recursively: collection types
carry an element type, tuples carry one type per position, objects carry
named attributes (optionally with defaults).
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, model_validator


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------

class PrimitiveType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOL = "bool"


class PrimitiveTypeRef(BaseModel):
    """A primitive type: string, number or bool."""

    kind: Literal["primitive"] = "primitive"
    type: PrimitiveType


class AnyTypeRef(BaseModel):
    """Placeholder type that accepts any value unchanged."""

    kind: Literal["any"] = "any"


# ---------------------------------------------------------------------------
# Collection and structural types
# ---------------------------------------------------------------------------

class ListTypeRef(BaseModel):
    """Ordered sequence of elements of one type: list(T)."""

    kind: Literal["list"] = "list"
    element_type: TypeRef


class SetTypeRef(BaseModel):
    """Unordered collection of unique elements of one type: set(T)."""

    kind: Literal["set"] = "set"
    element_type: TypeRef


class MapTypeRef(BaseModel):
    """String-keyed collection of elements of one type: map(T)."""

    kind: Literal["map"] = "map"
    element_type: TypeRef


class TupleTypeRef(BaseModel):
    """Fixed-length sequence with one type per position: tuple([T1, T2])."""

    kind: Literal["tuple"] = "tuple"
    element_types: list[TypeRef]


class ObjectAttribute(BaseModel):
    """Named attribute of an object type.

    ``default`` only applies to optional attributes; a missing optional
    attribute without a default becomes null.
    """

    name: str
    data_type: TypeRef
    optional: bool = False
    default: Any = None

    @model_validator(mode="after")
    def _default_requires_optional(self):
        if self.default is not None and not self.optional:
            raise ValueError(
                f"attribute '{self.name}' has a default but is not optional"
            )
        return self


class ObjectTypeRef(BaseModel):
    """Structural object type: object({name=string, port=number})."""

    kind: Literal["object"] = "object"
    attributes: list[ObjectAttribute] = []

    @model_validator(mode="after")
    def _unique_attributes(self):
        seen: set[str] = set()
        for attr in self.attributes:
            if attr.name in seen:
                raise ValueError(f"duplicate object attribute '{attr.name}'")
            seen.add(attr.name)
        return self

    def attribute(self, name: str) -> ObjectAttribute | None:
        for attr in self.attributes:
            if attr.name == name:
                return attr
        return None


TypeRef = Annotated[
    Union[
        PrimitiveTypeRef,
        AnyTypeRef,
        ListTypeRef,
        SetTypeRef,
        MapTypeRef,
        TupleTypeRef,
        ObjectTypeRef,
    ],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def format_type(ref: TypeRef) -> str:
    """Render a type in constraint spelling, e.g. ``list(map(string))``."""
    if isinstance(ref, PrimitiveTypeRef):
        return ref.type.value
    if isinstance(ref, AnyTypeRef):
        return "any"
    if isinstance(ref, ListTypeRef):
        return f"list({format_type(ref.element_type)})"
    if isinstance(ref, SetTypeRef):
        return f"set({format_type(ref.element_type)})"
    if isinstance(ref, MapTypeRef):
        return f"map({format_type(ref.element_type)})"
    if isinstance(ref, TupleTypeRef):
        inner = ", ".join(format_type(t) for t in ref.element_types)
        return f"tuple([{inner}])"
    if isinstance(ref, ObjectTypeRef):
        parts = []
        for attr in ref.attributes:
            rendered = format_type(attr.data_type)
            if attr.optional:
                rendered = f"optional({rendered})"
            parts.append(f"{attr.name}={rendered}")
        return "object({" + ", ".join(parts) + "})"
    raise TypeError(f"not a type reference: {ref!r}")


# ---------------------------------------------------------------------------
# Rebuild models with recursive TypeRef references
# ---------------------------------------------------------------------------

ListTypeRef.model_rebuild()
SetTypeRef.model_rebuild()
MapTypeRef.model_rebuild()
TupleTypeRef.model_rebuild()
ObjectAttribute.model_rebuild()
ObjectTypeRef.model_rebuild()
