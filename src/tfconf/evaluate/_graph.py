"""Reference graph between declarations.

Every local, resource and output is a node; each reference found in its
expressions (plus explicit ``depends_on``) is an edge. The graph only
orders evaluation: it must be acyclic and every reference must name a
declared object.
"""

from __future__ import annotations

import graphlib
import logging
from collections.abc import Iterator

from pydantic import BaseModel

from tfconf.model.configuration import Configuration
from tfconf.model.expressions import LocalRef, ResourceRef, VariableRef
from tfconf.model.resources import Output, Resource
from tfconf.model.variables import LocalValue

from ._values import ReferenceCycleError, UnknownReferenceError

logger = logging.getLogger(__name__)


def iter_nodes(node: object) -> Iterator[BaseModel]:
    """Yield *node* and every IR model nested inside it, depth first."""
    if isinstance(node, BaseModel):
        yield node
        for field_name in type(node).model_fields:
            yield from iter_nodes(getattr(node, field_name))
    elif isinstance(node, (list, tuple)):
        for item in node:
            yield from iter_nodes(item)
    elif isinstance(node, dict):
        for item in node.values():
            yield from iter_nodes(item)


def collect_references(node: object) -> set[str]:
    """Addresses (``var.x``, ``local.y``, ``aws_s3_bucket.logs``) referenced by *node*."""
    refs: set[str] = set()
    for child in iter_nodes(node):
        if isinstance(child, VariableRef):
            refs.add(f"var.{child.name}")
        elif isinstance(child, LocalRef):
            refs.add(f"local.{child.name}")
        elif isinstance(child, ResourceRef):
            refs.add(child.address)
    return refs


def _declaration_references(decl: LocalValue | Resource | Output) -> set[str]:
    if isinstance(decl, LocalValue):
        return collect_references(decl.value)
    refs = collect_references(decl)
    refs.update(decl.depends_on)
    return refs


def build_graph(configuration: Configuration) -> dict[str, set[str]]:
    """Map each local/resource/output address to the addresses it depends on.

    Variable references are checked but do not become edges: variables
    are resolved before anything else.

    Raises ``UnknownReferenceError`` for references to undeclared objects.
    """
    variables = {v.address for v in configuration.variables}
    declarations: list[LocalValue | Resource | Output] = [
        *configuration.locals, *configuration.resources, *configuration.outputs,
    ]
    nodes = {d.address for d in declarations}

    graph: dict[str, set[str]] = {}
    for decl in declarations:
        deps: set[str] = set()
        for ref in sorted(_declaration_references(decl)):
            if ref in variables:
                continue
            if ref not in nodes or ref.startswith("output."):
                raise UnknownReferenceError(ref, referrer=decl.address)
            deps.add(ref)
        graph[decl.address] = deps
    return graph


def evaluation_order(graph: dict[str, set[str]]) -> list[str]:
    """Topologically order *graph* so dependencies come first.

    Raises ``ReferenceCycleError`` naming the cycle.
    """
    sorter = graphlib.TopologicalSorter(graph)
    try:
        order = list(sorter.static_order())
    except graphlib.CycleError as exc:
        cycle = list(exc.args[1])
        raise ReferenceCycleError(cycle) from exc
    logger.debug("Evaluation order: %s", order)
    return order
