"""Tests for AST compiler: expression handlers."""

from conftest import compile_expr

from tfconf.framework import compile_template
from tfconf.model.expressions import (
    BinaryExpr,
    BinaryOp,
    ConditionalExpr,
    ForExpr,
    FunctionCallExpr,
    GetAttrExpr,
    IndexExpr,
    IterationRef,
    IterationSymbol,
    LiteralExpr,
    LocalRef,
    ObjectExpr,
    ResourceMode,
    ResourceRef,
    ScopeRef,
    TemplateExpr,
    TupleExpr,
    UnaryExpr,
    UnaryOp,
    VariableRef,
)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

class TestConstant:
    def test_int(self):
        assert compile_expr("42") == LiteralExpr(value=42)

    def test_float(self):
        assert compile_expr("3.14") == LiteralExpr(value=3.14)

    def test_string(self):
        assert compile_expr("'hello'") == LiteralExpr(value="hello")

    def test_python_constants(self):
        assert compile_expr("True") == LiteralExpr(value=True)
        assert compile_expr("False") == LiteralExpr(value=False)
        assert compile_expr("None") == LiteralExpr(value=None)

    def test_lowercase_constants(self):
        assert compile_expr("true") == LiteralExpr(value=True)
        assert compile_expr("null") == LiteralExpr(value=None)

    def test_negative_literal_folded(self):
        assert compile_expr("-5") == LiteralExpr(value=-5)

    def test_unary_plus(self):
        assert compile_expr("+5") == LiteralExpr(value=5)


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------

class TestReferences:
    def test_variable(self):
        assert compile_expr("var.region") == VariableRef(name="region")

    def test_variable_attribute(self):
        result = compile_expr("var.db.engine")
        assert isinstance(result, GetAttrExpr)
        assert result.attribute == "engine"
        assert result.target == VariableRef(name="db")

    def test_local(self):
        assert compile_expr("local.prefix") == LocalRef(name="prefix")

    def test_resource(self):
        result = compile_expr("aws_s3_bucket.logs.arn")
        assert isinstance(result, GetAttrExpr)
        assert result.target == ResourceRef(resource_type="aws_s3_bucket", name="logs")

    def test_bare_resource(self):
        assert compile_expr("aws_vpc.main") == ResourceRef(resource_type="aws_vpc", name="main")

    def test_data_source(self):
        result = compile_expr("data.aws_ami.ubuntu.id")
        assert result.target == ResourceRef(
            mode=ResourceMode.DATA, resource_type="aws_ami", name="ubuntu",
        )

    def test_counted_resource_attribute(self):
        result = compile_expr("aws_instance.web[0].id")
        assert isinstance(result, GetAttrExpr)
        assert isinstance(result.target, IndexExpr)
        assert result.target.collection == ResourceRef(resource_type="aws_instance", name="web")

    def test_count_index(self):
        assert compile_expr("count.index") == IterationRef(symbol=IterationSymbol.COUNT_INDEX)

    def test_each(self):
        assert compile_expr("each.key") == IterationRef(symbol=IterationSymbol.EACH_KEY)
        value_attr = compile_expr("each.value.cidr")
        assert value_attr.target == IterationRef(symbol=IterationSymbol.EACH_VALUE)

    def test_bound_name(self):
        assert compile_expr("port", bound=("port",)) == ScopeRef(name="port")

    def test_bound_name_shadows_resource_type(self):
        result = compile_expr("ingress.value", bound=("ingress",))
        assert result == GetAttrExpr(target=ScopeRef(name="ingress"), attribute="value")


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------

class TestOperators:
    def test_binary(self):
        result = compile_expr("var.a + 1")
        assert isinstance(result, BinaryExpr)
        assert result.op == BinaryOp.ADD

    def test_comparison(self):
        assert compile_expr("var.port >= 1").op == BinaryOp.GE

    def test_chained_comparison(self):
        result = compile_expr("1 <= var.port <= 65535")
        assert result.op == BinaryOp.AND
        assert result.left.op == BinaryOp.LE
        assert result.right.op == BinaryOp.LE
        assert result.right.left == VariableRef(name="port")

    def test_bool_ops_left_fold(self):
        result = compile_expr("a.x and b.y and c.z")
        assert result.op == BinaryOp.AND
        assert isinstance(result.left, BinaryExpr)
        assert result.left.op == BinaryOp.AND

    def test_not(self):
        result = compile_expr("not var.enabled")
        assert result == UnaryExpr(op=UnaryOp.NOT, operand=VariableRef(name="enabled"))

    def test_neg_reference(self):
        assert compile_expr("-var.n").op == UnaryOp.NEG

    def test_in(self):
        result = compile_expr('"a" in var.zones')
        assert result == FunctionCallExpr(
            function_name="contains",
            args=[VariableRef(name="zones"), LiteralExpr(value="a")],
        )

    def test_not_in(self):
        result = compile_expr('"a" not in var.zones')
        assert isinstance(result, UnaryExpr)
        assert result.operand.function_name == "contains"

    def test_is_none(self):
        assert compile_expr("var.x is None").op == BinaryOp.EQ
        assert compile_expr("var.x is not None").op == BinaryOp.NE

    def test_ternary(self):
        result = compile_expr("1 if var.big else 2")
        assert isinstance(result, ConditionalExpr)
        assert result.condition == VariableRef(name="big")


# ---------------------------------------------------------------------------
# Calls
# ---------------------------------------------------------------------------

class TestCalls:
    def test_function(self):
        result = compile_expr("length(var.zones)")
        assert result == FunctionCallExpr(function_name="length", args=[VariableRef(name="zones")])

    def test_python_builtin_renamed(self):
        assert compile_expr("len(var.zones)").function_name == "length"
        assert compile_expr("all(var.flags)").function_name == "alltrue"
        assert compile_expr("str(var.n)").function_name == "tostring"
        assert compile_expr("try_(var.n, 0)").function_name == "try"

    def test_method_value_first(self):
        result = compile_expr("var.name.startswith('prod')")
        assert result.function_name == "startswith"
        assert result.args[0] == VariableRef(name="name")

    def test_join_method(self):
        result = compile_expr("','.join(var.xs)")
        assert result.function_name == "join"
        assert result.args == [LiteralExpr(value=","), VariableRef(name="xs")]

    def test_split_method_value_last(self):
        result = compile_expr("var.csv.split(',')")
        assert result.args == [LiteralExpr(value=","), VariableRef(name="csv")]

    def test_get_is_lookup(self):
        assert compile_expr("var.tags.get('env', 'dev')").function_name == "lookup"


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------

class TestCollections:
    def test_list(self):
        result = compile_expr("[1, var.x]")
        assert isinstance(result, TupleExpr)
        assert len(result.items) == 2

    def test_tuple(self):
        assert isinstance(compile_expr("(1, 2)"), TupleExpr)

    def test_set(self):
        result = compile_expr("{1, 2}")
        assert result.function_name == "toset"
        assert isinstance(result.args[0], TupleExpr)

    def test_dict(self):
        result = compile_expr("{'env': var.env}")
        assert isinstance(result, ObjectExpr)
        assert result.items[0].key == LiteralExpr(value="env")

    def test_index(self):
        result = compile_expr("var.ports[0]")
        assert result == IndexExpr(collection=VariableRef(name="ports"), key=LiteralExpr(value=0))


class TestComprehensions:
    def test_list(self):
        result = compile_expr("[p for p in var.ports if p > 0]")
        assert isinstance(result, ForExpr)
        assert result.value_var == "p"
        assert result.key_var is None
        assert result.value_expr == ScopeRef(name="p")
        assert result.condition.op == BinaryOp.GT

    def test_items(self):
        result = compile_expr("[k for k, v in var.tags.items()]")
        assert result.key_var == "k"
        assert result.value_var == "v"
        assert result.collection == VariableRef(name="tags")

    def test_enumerate(self):
        result = compile_expr("[i for i, z in enumerate(var.zones)]")
        assert result.key_var == "i"
        assert result.collection == VariableRef(name="zones")

    def test_multiple_ifs_anded(self):
        result = compile_expr("[p for p in var.ports if p > 0 if p < 100]")
        assert result.condition.op == BinaryOp.AND

    def test_generator(self):
        assert isinstance(compile_expr("all(p > 0 for p in var.ports)").args[0], ForExpr)

    def test_set_comprehension(self):
        result = compile_expr("{p for p in var.ports}")
        assert result.function_name == "toset"

    def test_dict(self):
        result = compile_expr("{z: upper(z) for z in var.zones}")
        assert result.key_expr == ScopeRef(name="z")
        assert result.grouping is False

    def test_dict_grouping(self):
        result = compile_expr("{v: group(k) for k, v in var.users.items()}")
        assert result.grouping is True
        assert result.value_expr == ScopeRef(name="k")

    def test_names_scoped_to_comprehension(self):
        result = compile_expr("[x for x in var.xs]")
        assert result.value_expr == ScopeRef(name="x")


# ---------------------------------------------------------------------------
# Strings and templates
# ---------------------------------------------------------------------------

class TestTemplates:
    def test_fstring(self):
        result = compile_expr("f'{var.env}-logs'")
        assert result == TemplateExpr(parts=[VariableRef(name="env"), LiteralExpr(value="-logs")])

    def test_plain_string(self):
        assert compile_template("hello") == LiteralExpr(value="hello")

    def test_empty_string(self):
        assert compile_template("") == LiteralExpr(value="")

    def test_single_interpolation_keeps_type(self):
        assert compile_template("${var.count}") == VariableRef(name="count")

    def test_mixed(self):
        result = compile_template("${var.env}-bucket-${count.index}")
        assert isinstance(result, TemplateExpr)
        assert result.parts == [
            VariableRef(name="env"),
            LiteralExpr(value="-bucket-"),
            IterationRef(symbol=IterationSymbol.COUNT_INDEX),
        ]

    def test_escaped_interpolation(self):
        assert compile_template("cost: $${amount}") == LiteralExpr(value="cost: ${amount}")

    def test_braces_inside_interpolation(self):
        result = compile_template("${ {'a': 1}['a'] }")
        assert isinstance(result, IndexExpr)

    def test_brace_in_quoted_string(self):
        result = compile_template("${ var.x == '}' }")
        assert result.right == LiteralExpr(value="}")

    def test_bound_names(self):
        result = compile_template("port-${ingress.value}", bound_names=("ingress",))
        assert result.parts[1] == GetAttrExpr(target=ScopeRef(name="ingress"), attribute="value")

    def test_multiline_expression(self):
        result = compile_expr("""
            var.port > 0
            and var.port < 65536
        """)
        assert result.op == BinaryOp.AND
