"""Evaluation context: the user-facing object holding evaluated values.

Resolves input variables, checks them, then evaluates locals, resources
and outputs in reference order. Values are reachable through the
``var``, ``local``, ``resources`` and ``outputs`` attributes.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping

from tfconf.model.configuration import Configuration
from tfconf.model.expressions import IterationSymbol
from tfconf.model.resources import DynamicBlock, Output, Resource
from tfconf.model.variables import LocalValue

from ._evaluator import ExpressionEvaluator, Scope
from ._graph import build_graph, collect_references, evaluation_order
from ._sources import ResolvedInput, ValueSource
from ._validation import Diagnostic, check_conditions, convert_variable
from ._values import (
    UNKNOWN,
    ConfigError,
    EvaluationError,
    MissingValueError,
    ResourceInstance,
    is_whole_number,
    to_display,
    type_name_of,
)

logger = logging.getLogger(__name__)

SENSITIVE_PLACEHOLDER = "(sensitive value)"


class Namespace(Mapping):
    """Read-only mapping with attribute access: ``ctx.var.region``."""

    def __init__(self, prefix: str, values: dict[str, object]) -> None:
        object.__setattr__(self, "_prefix", prefix)
        object.__setattr__(self, "_values", values)

    def __getattr__(self, name: str) -> object:
        values = object.__getattribute__(self, "_values")
        if name in values:
            return values[name]
        prefix = object.__getattribute__(self, "_prefix")
        raise AttributeError(
            f"No value for '{prefix}.{name}'. Available: {sorted(values)}"
        )

    def __setattr__(self, name: str, value: object) -> None:
        raise AttributeError(f"'{self._prefix}' values are read-only")

    def __getitem__(self, name: str) -> object:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Namespace({self._prefix!r}, {self._values!r})"


class EvaluationContext:
    """Evaluated state of one configuration.

    Parameters
    ----------
    configuration : Configuration
        The declarations to evaluate.
    inputs : dict[str, ResolvedInput]
        Winning raw value per variable (see ``resolve_inputs``).
    strict_objects : bool
        Reject undeclared object attributes instead of dropping them.
    """

    def __init__(
        self,
        configuration: Configuration,
        inputs: dict[str, ResolvedInput] | None = None,
        *,
        strict_objects: bool = False,
    ) -> None:
        self.configuration = configuration
        self.inputs = inputs or {}
        self.strict_objects = strict_objects
        self.diagnostics: list[Diagnostic] = []
        self.order: list[str] = []
        self._variables: dict[str, object] = {}
        self._locals: dict[str, object] = {}
        self._resources: dict[str, object] = {}
        self._outputs: dict[str, object] = {}
        self._invalid: set[str] = set()

    # -----------------------------------------------------------------------
    # Public views
    # -----------------------------------------------------------------------

    @property
    def var(self) -> Namespace:
        return Namespace("var", self._variables)

    @property
    def local(self) -> Namespace:
        return Namespace("local", self._locals)

    @property
    def resources(self) -> dict[str, object]:
        return dict(self._resources)

    @property
    def outputs(self) -> dict[str, object]:
        return dict(self._outputs)

    @property
    def sources(self) -> dict[str, ValueSource]:
        return {name: item.source for name, item in self.inputs.items()}

    @property
    def ok(self) -> bool:
        return not self.diagnostics

    def instances(self) -> dict[str, ResourceInstance]:
        """Every resource instance keyed by its full address."""
        result: dict[str, ResourceInstance] = {}
        for value in self._resources.values():
            if isinstance(value, ResourceInstance):
                result[value.address] = value
            elif isinstance(value, list):
                result.update((inst.address, inst) for inst in value)
            elif isinstance(value, dict):
                result.update((inst.address, inst) for inst in value.values())
        return result

    def output_values(self, *, mask_sensitive: bool = True) -> dict[str, object]:
        """Outputs ready for display, with sensitive ones masked."""
        result: dict[str, object] = {}
        for output in self.configuration.outputs:
            if output.name not in self._outputs:
                continue
            if output.sensitive and mask_sensitive:
                result[output.name] = SENSITIVE_PLACEHOLDER
            else:
                result[output.name] = self._outputs[output.name]
        return result

    def scope(self) -> Scope:
        return Scope(
            variables=self._variables,
            locals=self._locals,
            resources=self._resources,
        )

    # -----------------------------------------------------------------------
    # Variables
    # -----------------------------------------------------------------------

    def resolve_variables(self, *, collect: bool = False) -> None:
        """Convert every input to its declared type, then run validation rules.

        With *collect*, errors are recorded in ``diagnostics`` and every
        variable is still checked; otherwise the first error is raised.
        """
        for var in self.configuration.variables:
            try:
                item = self.inputs.get(var.name)
                if item is None:
                    raise MissingValueError(var.name)
                self._variables[var.name] = convert_variable(
                    var, item.value, strict_objects=self.strict_objects,
                )
            except ConfigError as exc:
                self._invalid.add(var.address)
                self._report(exc, var.address, collect)

        evaluator = ExpressionEvaluator(self.scope())
        unconverted = set(self._invalid)
        for var in self.configuration.variables:
            if var.address in unconverted:
                continue
            if unconverted & collect_references(var.validations):
                logger.debug("Skipping rules of %s: they refer to an invalid variable", var.address)
                continue
            try:
                check_conditions(var.validations, evaluator, var.address)
            except ConfigError as exc:
                self._invalid.add(var.address)
                self._report(exc, var.address, collect)

    def _report(self, exc: ConfigError, address: str, collect: bool) -> None:
        if not collect:
            raise exc
        logger.debug("%s: %s", address, exc)
        self.diagnostics.append(Diagnostic.from_error(exc, address))

    # -----------------------------------------------------------------------
    # Locals, resources, outputs
    # -----------------------------------------------------------------------

    def evaluate_declarations(self, *, collect: bool = False) -> None:
        """Evaluate locals, resources and outputs in dependency order.

        With *collect*, a failing declaration is recorded in
        ``diagnostics`` and everything that depends on it is skipped.
        """
        config = self.configuration
        by_address: dict[str, LocalValue | Resource | Output] = {
            d.address: d for d in (*config.locals, *config.resources, *config.outputs)
        }
        try:
            self.order = evaluation_order(build_graph(config))
        except ConfigError as exc:
            self._report(exc, "", collect)
            return

        failed = set(self._invalid)
        for address in self.order:
            decl = by_address[address]
            refs = collect_references(decl) | set(getattr(decl, "depends_on", []))
            if failed & refs:
                failed.add(address)
                logger.debug("Skipping %s: depends on a failed declaration", address)
                continue
            try:
                if isinstance(decl, LocalValue):
                    evaluator = ExpressionEvaluator(self.scope())
                    self._locals[decl.name] = evaluator.evaluate(decl.value)
                elif isinstance(decl, Resource):
                    self._resources[address] = self._evaluate_resource(decl)
                else:
                    self._outputs[decl.name] = self._evaluate_output(decl)
            except ConfigError as exc:
                failed.add(address)
                self._report(exc, address, collect)

    def _evaluate_output(self, output: Output) -> object:
        evaluator = ExpressionEvaluator(self.scope())
        check_conditions(output.preconditions, evaluator, output.address)
        return evaluator.evaluate(output.value)

    def _evaluate_resource(self, resource: Resource) -> object:
        evaluator = ExpressionEvaluator(self.scope())

        if resource.count is not None:
            count = evaluator.evaluate(resource.count)
            count = self._check_count(resource, count)
            logger.debug("%s: count = %d", resource.address, count)
            return [
                self._build_instance(
                    resource, f"{resource.address}[{i}]",
                    {IterationSymbol.COUNT_INDEX: i},
                )
                for i in range(count)
            ]

        if resource.for_each is not None:
            items = self._for_each_items(resource, evaluator.evaluate(resource.for_each))
            logger.debug("%s: for_each keys = %s", resource.address, list(items))
            return {
                key: self._build_instance(
                    resource, f'{resource.address}["{key}"]',
                    {IterationSymbol.EACH_KEY: key, IterationSymbol.EACH_VALUE: value},
                )
                for key, value in items.items()
            }

        return self._build_instance(resource, resource.address, {})

    @staticmethod
    def _check_count(resource: Resource, count: object) -> int:
        if count is UNKNOWN:
            raise EvaluationError(
                f"{resource.address}: count depends on values known only after apply"
            )
        if not is_whole_number(count) or count < 0:
            raise EvaluationError(
                f"{resource.address}: count must be a non-negative whole number, "
                f"got {to_display(count)}"
            )
        return int(count)

    @staticmethod
    def _for_each_items(resource: Resource, value: object) -> dict[str, object]:
        if value is UNKNOWN:
            raise EvaluationError(
                f"{resource.address}: for_each depends on values known only after apply"
            )
        if isinstance(value, dict):
            return {k: value[k] for k in sorted(value)}
        if isinstance(value, (list, tuple)):
            items: dict[str, object] = {}
            for element in value:
                if not isinstance(element, str):
                    raise EvaluationError(
                        f"{resource.address}: for_each set elements must be strings, "
                        f"got {type_name_of(element)}"
                    )
                items[element] = element
            return dict(sorted(items.items()))
        raise EvaluationError(
            f"{resource.address}: for_each requires a map or a set of strings, "
            f"got {type_name_of(value)}"
        )

    def _build_instance(
        self,
        resource: Resource,
        address: str,
        iteration: dict[IterationSymbol, object],
    ) -> ResourceInstance:
        scope = self.scope().with_iteration(iteration)
        evaluator = ExpressionEvaluator(scope)
        check_conditions(resource.preconditions, evaluator, address)

        attributes: dict[str, object] = {}
        for name, expr in resource.attributes.items():
            attributes[name] = evaluator.evaluate(expr)
        for block in resource.dynamic_blocks:
            attributes[block.name] = self._expand_dynamic(block, evaluator)
        return ResourceInstance(address, attributes)

    @staticmethod
    def _expand_dynamic(block: DynamicBlock, evaluator: ExpressionEvaluator) -> object:
        collection = evaluator.evaluate(block.for_each)
        if collection is UNKNOWN:
            return UNKNOWN
        if isinstance(collection, dict):
            pairs = [(k, collection[k]) for k in sorted(collection)]
        elif isinstance(collection, (list, tuple)):
            pairs = list(enumerate(collection))
        else:
            raise EvaluationError(
                f"dynamic \"{block.name}\" for_each requires a collection, "
                f"got {type_name_of(collection)}"
            )

        blocks: list[dict[str, object]] = []
        for key, value in pairs:
            child = ExpressionEvaluator(
                evaluator.scope.bind({block.iterator_name: {"key": key, "value": value}})
            )
            blocks.append({
                name: child.evaluate(expr) for name, expr in block.content.items()
            })
        return blocks
