"""Expression AST nodes for configuration values."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class ResourceMode(str, Enum):
    MANAGED = "managed"
    DATA = "data"


class IterationSymbol(str, Enum):
    COUNT_INDEX = "count.index"
    EACH_KEY = "each.key"
    EACH_VALUE = "each.value"


class BinaryOp(str, Enum):
    ADD = "ADD"
    SUB = "SUB"
    MUL = "MUL"
    DIV = "DIV"
    MOD = "MOD"
    AND = "AND"
    OR = "OR"
    EQ = "EQ"
    NE = "NE"
    GT = "GT"
    GE = "GE"
    LT = "LT"
    LE = "LE"


class UnaryOp(str, Enum):
    NEG = "NEG"
    NOT = "NOT"


class LiteralExpr(BaseModel):
    """A constant scalar value (string, number, bool or null)."""

    kind: Literal["literal"] = "literal"
    value: str | bool | int | float | None = None


class VariableRef(BaseModel):
    """``var.NAME``"""

    kind: Literal["variable_ref"] = "variable_ref"
    name: str


class LocalRef(BaseModel):
    """``local.NAME``"""

    kind: Literal["local_ref"] = "local_ref"
    name: str


class ResourceRef(BaseModel):
    """``TYPE.NAME`` or ``data.TYPE.NAME``.

    Evaluates to the whole resource: a single instance, a list of
    instances (count) or a map of instances (for_each).
    """

    kind: Literal["resource_ref"] = "resource_ref"
    mode: ResourceMode = ResourceMode.MANAGED
    resource_type: str
    name: str

    @property
    def address(self) -> str:
        prefix = "data." if self.mode == ResourceMode.DATA else ""
        return f"{prefix}{self.resource_type}.{self.name}"


class IterationRef(BaseModel):
    """Repetition symbol bound while expanding count/for_each."""

    kind: Literal["iteration_ref"] = "iteration_ref"
    symbol: IterationSymbol


class ScopeRef(BaseModel):
    """Name bound by an enclosing for-expression or dynamic block iterator."""

    kind: Literal["scope_ref"] = "scope_ref"
    name: str


class BinaryExpr(BaseModel):
    kind: Literal["binary"] = "binary"
    op: BinaryOp
    left: Expression
    right: Expression


class UnaryExpr(BaseModel):
    kind: Literal["unary"] = "unary"
    op: UnaryOp
    operand: Expression


class ConditionalExpr(BaseModel):
    """``condition ? true_value : false_value``"""

    kind: Literal["conditional"] = "conditional"
    condition: Expression
    true_value: Expression
    false_value: Expression


class FunctionCallExpr(BaseModel):
    kind: Literal["function_call"] = "function_call"
    function_name: str
    args: list[Expression] = []


class IndexExpr(BaseModel):
    """``collection[key]``"""

    kind: Literal["index"] = "index"
    collection: Expression
    key: Expression


class GetAttrExpr(BaseModel):
    """``target.attribute``"""

    kind: Literal["get_attr"] = "get_attr"
    target: Expression
    attribute: str


class TupleExpr(BaseModel):
    """List constructor: ``[a, b, c]``."""

    kind: Literal["tuple"] = "tuple"
    items: list[Expression] = []


class ObjectItem(BaseModel):
    key: Expression
    value: Expression


class ObjectExpr(BaseModel):
    """Map constructor: ``{key = value, ...}``."""

    kind: Literal["object"] = "object"
    items: list[ObjectItem] = []


class ForExpr(BaseModel):
    """Comprehension over a collection.

    Produces a list when *key_expr* is None, otherwise a map. With
    *grouping*, values sharing a key are collected into lists.
    """

    kind: Literal["for"] = "for"
    key_var: str | None = None
    value_var: str
    collection: Expression
    key_expr: Expression | None = None
    value_expr: Expression
    condition: Expression | None = None
    grouping: bool = False


class TemplateExpr(BaseModel):
    """String interpolation: parts are evaluated and concatenated."""

    kind: Literal["template"] = "template"
    parts: list[Expression] = []


Expression = Annotated[
    Union[
        LiteralExpr,
        VariableRef,
        LocalRef,
        ResourceRef,
        IterationRef,
        ScopeRef,
        BinaryExpr,
        UnaryExpr,
        ConditionalExpr,
        FunctionCallExpr,
        IndexExpr,
        GetAttrExpr,
        TupleExpr,
        ObjectExpr,
        ForExpr,
        TemplateExpr,
    ],
    Field(discriminator="kind"),
]

# Rebuild models with recursive Expression references.
BinaryExpr.model_rebuild()
UnaryExpr.model_rebuild()
ConditionalExpr.model_rebuild()
FunctionCallExpr.model_rebuild()
IndexExpr.model_rebuild()
GetAttrExpr.model_rebuild()
TupleExpr.model_rebuild()
ObjectItem.model_rebuild()
ObjectExpr.model_rebuild()
ForExpr.model_rebuild()
TemplateExpr.model_rebuild()
