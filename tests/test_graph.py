"""Tests for the declaration reference graph."""

import pytest

from conftest import compile_expr, load_yaml

from tfconf.evaluate import (
    ReferenceCycleError,
    UnknownReferenceError,
    build_graph,
    collect_references,
    evaluation_order,
)


class TestCollectReferences:
    def test_mixed(self):
        expr = compile_expr("f'{var.env}-{local.prefix}-{aws_s3_bucket.logs.id}'")
        assert collect_references(expr) == {"var.env", "local.prefix", "aws_s3_bucket.logs"}

    def test_data_source(self):
        assert collect_references(compile_expr("data.aws_ami.ubuntu.id")) == {"data.aws_ami.ubuntu"}

    def test_comprehension_names_are_not_references(self):
        expr = compile_expr("[p for p in var.ports if p > 0]")
        assert collect_references(expr) == {"var.ports"}

    def test_iteration_symbols_are_not_references(self):
        assert collect_references(compile_expr("count.index + each.value")) == set()


class TestBuildGraph:
    def test_edges(self):
        config = load_yaml("""
            variable:
              env: {type: string}
            locals:
              prefix: "app-${var.env}"
            resource:
              aws_s3_bucket:
                logs:
                  bucket: "${local.prefix}-logs"
            output:
              bucket:
                value: "${aws_s3_bucket.logs.bucket}"
        """)
        graph = build_graph(config)
        assert graph == {
            "local.prefix": set(),
            "aws_s3_bucket.logs": {"local.prefix"},
            "output.bucket": {"aws_s3_bucket.logs"},
        }

    def test_depends_on_edge(self):
        config = load_yaml("""
            resource:
              aws_vpc:
                main: {cidr_block: 10.0.0.0/16}
              aws_instance:
                web:
                  depends_on: [aws_vpc.main]
        """)
        assert build_graph(config)["aws_instance.web"] == {"aws_vpc.main"}

    def test_undeclared_local(self):
        config = load_yaml("""
            locals:
              a: "${local.missing}"
        """)
        with pytest.raises(UnknownReferenceError, match=r"'local.missing' \(referenced from local.a\)"):
            build_graph(config)

    def test_undeclared_variable(self):
        config = load_yaml("""
            locals:
              a: "${var.missing}"
        """)
        with pytest.raises(UnknownReferenceError, match="'var.missing'"):
            build_graph(config)

    def test_undeclared_resource(self):
        config = load_yaml("""
            output:
              id: {value: "${aws_vpc.main.id}"}
        """)
        with pytest.raises(UnknownReferenceError) as exc_info:
            build_graph(config)
        assert exc_info.value.address == "aws_vpc.main"
        assert exc_info.value.referrer == "output.id"


class TestEvaluationOrder:
    def test_dependencies_first(self):
        order = evaluation_order({
            "output.x": {"local.b"},
            "local.b": {"local.a"},
            "local.a": set(),
        })
        assert order.index("local.a") < order.index("local.b") < order.index("output.x")

    def test_cycle(self):
        config = load_yaml("""
            locals:
              a: "${local.b}"
              b: "${local.a}"
        """)
        with pytest.raises(ReferenceCycleError, match="Reference cycle") as exc_info:
            evaluation_order(build_graph(config))
        assert set(exc_info.value.cycle) == {"local.a", "local.b"}

    def test_self_reference(self):
        config = load_yaml("""
            locals:
              a: "${local.a + 1}"
        """)
        with pytest.raises(ReferenceCycleError):
            evaluation_order(build_graph(config))
