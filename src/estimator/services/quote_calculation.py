"""Quote calculation service: links, computed outputs and module cost per instance."""

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from estimator.core.exceptions import CircularLinkError, ErrorKind, FormulaError
from estimator.core.logging import LoggerMixin
from estimator.formula.context import build_variable_context
from estimator.formula.evaluator import FormulaEvaluator
from estimator.formula.outputs import evaluate_computed_outputs
from estimator.formula.parser import parse_formula
from estimator.formula.resolver import FunctionResolver
from estimator.linking.resolver import FieldLinkResolver, instance_field_names
from estimator.schemas.function import SharedFunction
from estimator.schemas.instance import QuoteModuleInstance
from estimator.schemas.material import Material
from estimator.schemas.module import OUTPUT_PREFIX, CalculationModule
from estimator.schemas.results import (
    ComputedOutputEvaluation,
    InstanceCalculation,
    LinkIssue,
)


@dataclass
class _InstanceState:
    values: dict[str, Any] = field(default_factory=dict)
    issues: list[LinkIssue] = field(default_factory=list)
    outputs: ComputedOutputEvaluation = field(default_factory=ComputedOutputEvaluation)


class QuoteCalculator(LoggerMixin):
    """
    Calculates every module instance of a quote or template workspace.

    Link targets of the form `out.<name>` are computed on demand. An
    instance whose outputs are requested while they are still being computed
    closes a loop through its outputs; the field that closed it is flagged
    `CircularLink` and falls back to its local value.

    A calculator holds the state of one `calculate` call only.
    """

    def __init__(
        self,
        modules: Iterable[CalculationModule],
        materials: Iterable[Material],
        functions: Iterable[SharedFunction] | None = None,
    ):
        self.modules = {m.id: m for m in modules}
        self.materials = list(materials)
        self.functions = list(functions or [])

        self._instances: dict[str, QuoteModuleInstance] = {}
        self._states: dict[str, _InstanceState] = {}
        self._in_progress: set[str] = set()
        self._resolver: FieldLinkResolver | None = None

    def calculate(self, instances: Iterable[QuoteModuleInstance]) -> list[InstanceCalculation]:
        """
        Calculate all instances.

        Args:
            instances: Module instances in workspace order

        Returns:
            One InstanceCalculation per instance, in the same order
        """
        instances = list(instances)
        self._instances = {}
        for instance in instances:
            self._instances.setdefault(instance.id, instance)
        self._states = {}
        self._in_progress = set()
        self._resolver = FieldLinkResolver(
            instances, output_provider=self._provide_output, modules=self.modules.values()
        )

        results = [self._calculate_instance(instance) for instance in instances]
        self.logger.debug(
            "Calculated workspace",
            extra={
                "instances": len(results),
                "failed": sum(1 for r in results if r.error is not None),
            },
        )
        return results

    def _provide_output(self, instance_id: str, output_name: str) -> float | None:
        instance = self._instances.get(instance_id)
        module = self.modules.get(instance.module_id) if instance is not None else None
        if module is None or module.get_output(output_name) is None:
            return None
        state = self._state(instance_id)
        return state.outputs.values.get(f"{OUTPUT_PREFIX}{output_name}")

    def _state(self, instance_id: str) -> _InstanceState:
        """Resolved values and outputs of an instance, computed once per call."""
        state = self._states.get(instance_id)
        if state is not None:
            return state
        if instance_id in self._in_progress:
            raise CircularLinkError(f"Computed outputs of instance {instance_id} depend on themselves")

        self._in_progress.add(instance_id)
        try:
            instance = self._instances[instance_id]
            state = _InstanceState()
            for field_name in instance_field_names(instance):
                value, issue = self._resolver.resolve_field(instance_id, field_name)
                state.values[field_name] = value
                if issue is not None:
                    state.issues.append(issue)

            module = self.modules.get(instance.module_id)
            if module is not None:
                state.outputs = evaluate_computed_outputs(
                    module, state.values, self.materials, self.functions
                )
        finally:
            self._in_progress.discard(instance_id)

        self._states[instance_id] = state
        return state

    def _calculate_instance(self, instance: QuoteModuleInstance) -> InstanceCalculation:
        state = self._state(instance.id)
        result = InstanceCalculation(
            instance_id=instance.id,
            field_values=dict(state.values),
            outputs=dict(state.outputs.values),
            output_errors=list(state.outputs.errors),
            link_issues=list(state.issues),
        )

        module = self.modules.get(instance.module_id)
        if module is None:
            result.error = ErrorKind.UNKNOWN_IDENTIFIER
            result.message = f"Module definition {instance.module_id} not found"
            self.logger.warning(
                "Module definition not found",
                extra={"instance_id": instance.id, "module_id": instance.module_id},
            )
            return result

        result.missing_fields = [
            f.variable_name
            for f in module.fields
            if f.required and state.values.get(f.variable_name) in (None, "") and f.default_value is None
        ]
        if result.missing_fields:
            result.error = ErrorKind.MISSING_VALUE
            result.message = f"Missing required fields: {', '.join(result.missing_fields)}"
            return result

        if not module.formula or not module.formula.strip():
            return result

        context = build_variable_context(
            state.values, self.materials, module.fields, state.outputs.values
        )
        evaluator = FormulaEvaluator(context, FunctionResolver(self.functions))
        try:
            result.cost = evaluator.evaluate(parse_formula(module.formula))
        except FormulaError as e:
            self.logger.warning(
                "Module formula evaluation failed",
                extra={
                    "instance_id": instance.id,
                    "module_id": module.id,
                    "error": e.code,
                    "reason": e.message,
                },
            )
            result.error = e.kind
            result.message = e.message
            result.cost = 0.0
        return result


def calculate_quote(
    instances: Iterable[QuoteModuleInstance],
    modules: Iterable[CalculationModule],
    materials: Iterable[Material],
    functions: Iterable[SharedFunction] | None = None,
) -> list[InstanceCalculation]:
    """Convenience wrapper around `QuoteCalculator.calculate`."""
    return QuoteCalculator(modules, materials, functions).calculate(instances)
