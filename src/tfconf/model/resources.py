"""Resource, data source and output declarations."""

from __future__ import annotations

from typing import Self

from pydantic import BaseModel, model_validator

from .expressions import Expression, ResourceMode
from .variables import ValidationRule


class DynamicBlock(BaseModel):
    """Repeated nested block generated from a collection.

    Each element of *for_each* produces one object built from *content*.
    Inside *content* the iterator (named *iterator*, defaulting to the
    block name) exposes ``.key`` and ``.value``.
    """

    name: str
    for_each: Expression
    iterator: str | None = None
    content: dict[str, Expression] = {}

    @property
    def iterator_name(self) -> str:
        return self.iterator or self.name


class Resource(BaseModel):
    """A declared resource or data source.

    At most one multiplicity driver may be set: *count* expands to a list
    of instances keyed by index, *for_each* to a map keyed by element key.
    """

    mode: ResourceMode = ResourceMode.MANAGED
    resource_type: str
    name: str
    attributes: dict[str, Expression] = {}
    dynamic_blocks: list[DynamicBlock] = []
    count: Expression | None = None
    for_each: Expression | None = None
    depends_on: list[str] = []
    preconditions: list[ValidationRule] = []

    @model_validator(mode="after")
    def _single_multiplicity(self) -> Self:
        if self.count is not None and self.for_each is not None:
            raise ValueError(
                f"{self.address} must not set both 'count' and 'for_each'"
            )
        return self

    @property
    def address(self) -> str:
        prefix = "data." if self.mode == ResourceMode.DATA else ""
        return f"{prefix}{self.resource_type}.{self.name}"


class Output(BaseModel):
    """A value exported by the configuration."""

    name: str
    value: Expression
    description: str = ""
    sensitive: bool = False
    depends_on: list[str] = []
    preconditions: list[ValidationRule] = []

    @property
    def address(self) -> str:
        return f"output.{self.name}"
