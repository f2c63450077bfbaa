"""Top-level Configuration container."""

from __future__ import annotations

from typing import Any, Self

from pydantic import BaseModel, model_validator

from .resources import Output, Resource
from .variables import LocalValue, Variable

RESERVED_VARIABLE_NAMES = frozenset({
    "source", "version", "providers", "count", "for_each",
    "lifecycle", "depends_on", "locals",
})


def _check_unique(names: list[str], what: str) -> None:
    seen: set[str] = set()
    for name in names:
        if name in seen:
            raise ValueError(f"duplicate {what} '{name}'")
        seen.add(name)


class Configuration(BaseModel):
    name: str = ""
    variables: list[Variable] = []
    locals: list[LocalValue] = []
    resources: list[Resource] = []
    outputs: list[Output] = []
    metadata: dict[str, Any] = {}

    @model_validator(mode="after")
    def _unique_names(self) -> Self:
        _check_unique([v.name for v in self.variables], "variable")
        _check_unique([lv.name for lv in self.locals], "local value")
        _check_unique([r.address for r in self.resources], "resource")
        _check_unique([o.name for o in self.outputs], "output")
        for var in self.variables:
            if var.name in RESERVED_VARIABLE_NAMES:
                raise ValueError(f"variable name '{var.name}' is reserved")
        return self

    def variable(self, name: str) -> Variable | None:
        for var in self.variables:
            if var.name == name:
                return var
        return None

    def resource(self, address: str) -> Resource | None:
        for res in self.resources:
            if res.address == address:
                return res
        return None

    def output(self, name: str) -> Output | None:
        for out in self.outputs:
            if out.name == name:
                return out
        return None
