"""Computed outputs: ordered, formula-derived values scoped to one module."""

from collections.abc import Iterable, Mapping

from estimator.core.config import settings
from estimator.core.exceptions import ErrorKind, FormulaError
from estimator.core.logging import get_logger
from estimator.formula.context import build_variable_context
from estimator.formula.evaluator import FormulaEvaluator
from estimator.formula.functions import func_round
from estimator.formula.names import validate_computed_output_variable_name
from estimator.formula.parser import parse_formula
from estimator.formula.resolver import FunctionResolver
from estimator.formula.validator import FormulaValidator
from estimator.schemas.field import FieldValue
from estimator.schemas.function import SharedFunction
from estimator.schemas.material import Material
from estimator.schemas.module import OUTPUT_PREFIX, CalculationModule
from estimator.schemas.results import (
    ComputedOutputEvaluation,
    FormulaValidationResult,
    OutputError,
)
from estimator.units import convert_from_base

logger = get_logger(__name__)


def validate_computed_output_expression(
    module: CalculationModule,
    index: int,
    materials: Iterable[Material],
    functions: Iterable[SharedFunction] | None = None,
) -> FormulaValidationResult:
    """
    Validate the expression of the output at `index`.

    Outputs before it are available as `out.<name>`; the output itself and
    every later one are forward references.
    """
    outputs = module.computed_outputs
    output = outputs[index]
    if not output.expression or not output.expression.strip():
        return FormulaValidationResult(
            valid=False, error=ErrorKind.SYNTAX_ERROR, message="Expression is required"
        )

    validator = FormulaValidator(
        [f.variable_name for f in module.fields],
        materials,
        module.fields,
        functions,
        output_names=[o.variable_name for o in outputs[:index]],
        later_output_names=[o.variable_name for o in outputs[index:]],
        output_units={o.variable_name: o.unit_symbol for o in outputs[:index]},
    )
    return validator.validate(output.expression)


def validate_computed_outputs(
    module: CalculationModule,
    materials: Iterable[Material],
    functions: Iterable[SharedFunction] | None = None,
) -> dict[str, FormulaValidationResult]:
    """
    Validate every output of a module, in declaration order.

    Returns:
        Mapping of output id to its validation result
    """
    materials = list(materials)
    functions = list(functions or [])
    field_names = [f.variable_name for f in module.fields]

    results: dict[str, FormulaValidationResult] = {}
    for index, output in enumerate(module.computed_outputs):
        earlier = [o.variable_name for o in module.computed_outputs[:index]]
        valid, error = validate_computed_output_variable_name(output.variable_name, earlier, field_names)
        if not valid:
            results[output.id] = FormulaValidationResult(
                valid=False, error=ErrorKind.INVALID_NAME, message=error
            )
            continue
        results[output.id] = validate_computed_output_expression(module, index, materials, functions)
    return results


def evaluate_computed_outputs(
    module: CalculationModule,
    field_values: Mapping[str, FieldValue | None],
    materials: Iterable[Material],
    functions: Iterable[SharedFunction] | None = None,
) -> ComputedOutputEvaluation:
    """
    Evaluate a module's computed outputs strictly in declaration order.

    Each value is rounded to the configured precision and stored as
    `out.<name>` in base units. A failing output is recorded and set to 0 so
    later outputs still evaluate.

    Args:
        module: Module definition
        field_values: Link-resolved field values, in display units
        materials: Material catalog
        functions: Shared function registry

    Returns:
        ComputedOutputEvaluation
    """
    result = ComputedOutputEvaluation()
    if not module.computed_outputs:
        return result

    precision = settings.computed_output_precision
    context = build_variable_context(field_values, materials, module.fields)
    evaluator = FormulaEvaluator(context, FunctionResolver(functions))

    for output in module.computed_outputs:
        key = output.reference
        try:
            value = evaluator.evaluate(parse_formula(output.expression))
        except FormulaError as e:
            logger.warning(
                "Computed output evaluation failed",
                extra={
                    "module_id": module.id,
                    "output": output.variable_name,
                    "error": e.code,
                    "reason": e.message,
                },
            )
            result.errors.append(
                OutputError(
                    output_id=output.id,
                    output_label=output.label or output.variable_name,
                    error=e.kind,
                    message=e.message,
                )
            )
            value = 0.0

        rounded = func_round(value, precision)
        result.values[key] = rounded
        result.display_values[key] = func_round(convert_from_base(value, output.unit_symbol), precision)
        context.outputs[output.variable_name] = rounded

    return result


def sanitize_legacy_module(module: CalculationModule) -> CalculationModule:
    """
    Rename fields that use the reserved `out.` prefix.

    `out.area` becomes `_out_area`. Returns the module unchanged when no
    field needs renaming.
    """
    renamed = []
    changed = False
    for field in module.fields:
        if field.variable_name.startswith(OUTPUT_PREFIX):
            new_name = "_out_" + field.variable_name.removeprefix(OUTPUT_PREFIX)
            logger.warning(
                "Renamed field using reserved output prefix",
                extra={"module_id": module.id, "field": field.variable_name, "new_name": new_name},
            )
            field = field.model_copy(update={"variable_name": new_name})
            changed = True
        renamed.append(field)

    if not changed:
        return module
    return module.model_copy(update={"fields": renamed})
