"""Tests for model invariants enforced by pydantic validators."""

import pytest
from pydantic import ValidationError

from conftest import compile_expr, rule, var

from tfconf.framework import NUMBER
from tfconf.model.configuration import Configuration
from tfconf.model.expressions import (
    BinaryExpr,
    BinaryOp,
    LiteralExpr,
    ResourceMode,
    ResourceRef,
    VariableRef,
)
from tfconf.model.resources import DynamicBlock, Output, Resource
from tfconf.model.variables import LocalValue, ValidationRule, Variable


class TestValidationRule:
    def test_blank_message_rejected(self):
        with pytest.raises(ValidationError, match="error_message must not be empty"):
            ValidationRule(condition=LiteralExpr(value=True), error_message="   ")

    def test_condition_is_expression(self):
        r = rule("var.x > 0", "x must be positive")
        assert isinstance(r.condition, BinaryExpr)
        assert r.condition.op == BinaryOp.GT


class TestVariable:
    def test_required_without_default(self):
        assert Variable(name="region").required is True

    def test_explicit_null_default_is_optional(self):
        v = Variable(name="region", default=None)
        assert v.required is False
        assert v.default is None

    def test_address(self):
        assert var("port", "number").address == "var.port"

    def test_defaults(self):
        v = Variable(name="x")
        assert v.nullable is True
        assert v.sensitive is False
        assert v.data_type.kind == "any"

    def test_json_round_trip(self):
        v = var("ports", "list(number)", rule("length(var.ports) > 0", "need ports"), default=[80])
        again = Variable.model_validate_json(v.model_dump_json())
        assert again.model_dump() == v.model_dump()
        assert again.required is False

    def test_required_survives_round_trip(self):
        v = var("region", "string")
        assert "default" not in v.model_dump()
        again = Variable.model_validate_json(v.model_dump_json())
        assert again.required is True


class TestResource:
    def test_address(self):
        r = Resource(resource_type="aws_instance", name="web")
        assert r.address == "aws_instance.web"

    def test_data_address(self):
        r = Resource(mode=ResourceMode.DATA, resource_type="aws_ami", name="ubuntu")
        assert r.address == "data.aws_ami.ubuntu"

    def test_count_and_for_each_exclusive(self):
        with pytest.raises(ValidationError, match="must not set both 'count' and 'for_each'"):
            Resource(
                resource_type="aws_instance", name="web",
                count=LiteralExpr(value=2),
                for_each=compile_expr("var.names"),
            )

    def test_dynamic_iterator_defaults_to_block_name(self):
        block = DynamicBlock(name="ingress", for_each=compile_expr("var.ports"))
        assert block.iterator_name == "ingress"
        block = DynamicBlock(name="ingress", iterator="port", for_each=compile_expr("var.ports"))
        assert block.iterator_name == "port"

    def test_resource_ref_address(self):
        ref = ResourceRef(mode=ResourceMode.DATA, resource_type="aws_ami", name="ubuntu")
        assert ref.address == "data.aws_ami.ubuntu"


class TestConfiguration:
    def test_duplicate_variables(self):
        with pytest.raises(ValidationError, match="duplicate variable 'a'"):
            Configuration(variables=[Variable(name="a"), Variable(name="a")])

    def test_duplicate_locals(self):
        with pytest.raises(ValidationError, match="duplicate local value 'x'"):
            Configuration(locals=[
                LocalValue(name="x", value=LiteralExpr(value=1)),
                LocalValue(name="x", value=LiteralExpr(value=2)),
            ])

    def test_duplicate_resources(self):
        with pytest.raises(ValidationError, match="duplicate resource 'aws_s3_bucket.logs'"):
            Configuration(resources=[
                Resource(resource_type="aws_s3_bucket", name="logs"),
                Resource(resource_type="aws_s3_bucket", name="logs"),
            ])

    def test_same_name_different_type_allowed(self):
        config = Configuration(resources=[
            Resource(resource_type="aws_s3_bucket", name="main"),
            Resource(resource_type="aws_vpc", name="main"),
            Resource(mode=ResourceMode.DATA, resource_type="aws_vpc", name="main"),
        ])
        assert config.resource("data.aws_vpc.main").mode == ResourceMode.DATA

    def test_duplicate_outputs(self):
        with pytest.raises(ValidationError, match="duplicate output 'id'"):
            Configuration(outputs=[
                Output(name="id", value=LiteralExpr(value=1)),
                Output(name="id", value=LiteralExpr(value=2)),
            ])

    @pytest.mark.parametrize("name", ["count", "for_each", "source", "version", "depends_on"])
    def test_reserved_variable_names(self, name):
        with pytest.raises(ValidationError, match=f"variable name '{name}' is reserved"):
            Configuration(variables=[Variable(name=name)])

    def test_lookup(self):
        config = Configuration(variables=[Variable(name="a", data_type=NUMBER)])
        assert config.variable("a").data_type == NUMBER
        assert config.variable("b") is None
        assert config.resource("aws_vpc.main") is None

    def test_output_address(self):
        assert Output(name="id", value=VariableRef(name="x")).address == "output.id"
