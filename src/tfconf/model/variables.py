"""Input variables, validation rules and local values."""

from __future__ import annotations

from typing import Any

from pydantic import (
    BaseModel,
    Field,
    SerializerFunctionWrapHandler,
    field_validator,
    model_serializer,
)

from .expressions import Expression
from .types import AnyTypeRef, TypeRef


class ValidationRule(BaseModel):
    """A boolean condition paired with the message shown when it is false.

    Also used for resource and output preconditions.
    """

    condition: Expression
    error_message: str

    @field_validator("error_message")
    @classmethod
    def _message_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("error_message must not be empty")
        return value


class Variable(BaseModel):
    """A named, typed input to a configuration.

    A variable without a declared default is required. Declaring
    ``default=None`` explicitly makes it optional with a null value.
    """

    name: str
    data_type: TypeRef = Field(default_factory=AnyTypeRef)
    default: Any = None
    description: str = ""
    sensitive: bool = False
    nullable: bool = True
    validations: list[ValidationRule] = []

    @model_serializer(mode="wrap")
    def _omit_missing_default(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        # A dumped null default would make a required variable optional on reload
        data = handler(self)
        if self.required:
            data.pop("default", None)
        return data

    @property
    def required(self) -> bool:
        return "default" not in self.model_fields_set

    @property
    def address(self) -> str:
        return f"var.{self.name}"


class LocalValue(BaseModel):
    """A named expression computed once from other declarations."""

    name: str
    value: Expression
    description: str = ""

    @property
    def address(self) -> str:
        return f"local.{self.name}"
