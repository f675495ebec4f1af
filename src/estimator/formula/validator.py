"""Static formula validation.

Checks, in order: syntax, shared-function calls (existence, arity), function
expansion (cycles, limits), every reference in the expanded tree, unit
categories, and finally an optional preview evaluation. The first failure is
reported; nothing here raises to the caller.
"""

from collections.abc import Iterable, Mapping
from typing import Any

from estimator.core.config import settings
from estimator.core.exceptions import (
    ArityMismatchError,
    CircularFunctionReferenceError,
    ForwardOutputReferenceError,
    FormulaError,
    InvalidNameError,
    TypeMismatchError,
    UnknownIdentifierError,
    UnknownPropertyError,
)
from estimator.core.logging import get_logger
from estimator.formula.context import IMPLICIT_PRICE_PROPERTIES, build_variable_context
from estimator.formula.dependencies import FunctionDependencyGraph
from estimator.formula.evaluator import FormulaEvaluator
from estimator.formula.functions import CONSTANTS, FORMULA_FUNCTIONS, is_builtin
from estimator.formula.names import is_identifier, validate_parameter_name
from estimator.formula.parser import (
    FunctionCallNode,
    OutputRefNode,
    PropertyRefNode,
    VariableNode,
    iter_nodes,
    parse_formula,
)
from estimator.formula.resolver import FunctionResolver
from estimator.formula.unit_check import UnitCategoryChecker
from estimator.schemas.field import DropdownMode, Field, FieldType, FieldValue
from estimator.schemas.function import SharedFunction
from estimator.schemas.material import Material
from estimator.schemas.module import OUTPUT_PREFIX
from estimator.schemas.results import FormulaValidationResult
from estimator.units import get_unit_category

logger = get_logger(__name__)


class FormulaValidator:
    """
    Validates formulas against a fixed set of names.

    Args:
        field_names: Field (or parameter) names in scope; names prefixed
            `out.` are treated as available computed outputs
        materials: Material catalog
        fields: Field definitions, used for type and unit checks
        functions: Shared function registry
        output_names: Computed outputs defined before the formula
        later_output_names: Outputs defined at or after it (forward references)
        output_units: Unit symbol per output name, for the unit check
    """

    def __init__(
        self,
        field_names: Iterable[str],
        materials: Iterable[Material],
        fields: Iterable[Field] | None = None,
        functions: Iterable[SharedFunction] | None = None,
        output_names: Iterable[str] | None = None,
        later_output_names: Iterable[str] | None = None,
        output_units: Mapping[str, str | None] | None = None,
    ):
        self.materials = list(materials)
        self.fields = list(fields or [])
        self.functions = list(functions or [])

        self.field_defs = {f.variable_name: f for f in self.fields}
        self.material_map = {m.variable_name: m for m in self.materials}
        self.function_map = {f.name: f for f in self.functions}

        self.field_names: set[str] = set(self.field_defs)
        self.output_names: set[str] = set()
        for name in field_names:
            if name.startswith(OUTPUT_PREFIX):
                self.output_names.add(name.removeprefix(OUTPUT_PREFIX))
            else:
                self.field_names.add(name)
        self.output_names.update(n.removeprefix(OUTPUT_PREFIX) for n in output_names or [])
        self.later_output_names = {
            n.removeprefix(OUTPUT_PREFIX) for n in later_output_names or []
        } - self.output_names
        self.output_units = {k.removeprefix(OUTPUT_PREFIX): v for k, v in (output_units or {}).items()}

        self.resolver = FunctionResolver(self.functions)

    def validate(
        self,
        formula: str,
        preview_values: Mapping[str, FieldValue | None] | None = None,
    ) -> FormulaValidationResult:
        """
        Validate a formula.

        Args:
            formula: Formula text
            preview_values: Values used for the preview; field defaults when omitted

        Returns:
            FormulaValidationResult
        """
        warnings: list[str] = []
        try:
            tree = parse_formula(formula)
            self._check_calls(tree, warnings)
            expanded = self.resolver.expand_tree(tree)
            self._check_references(expanded, warnings)
            UnitCategoryChecker(
                self.fields,
                self.materials,
                {name: get_unit_category(unit) for name, unit in self.output_units.items()},
            ).check(expanded)
        except FormulaError as e:
            return FormulaValidationResult(
                valid=False, error=e.kind, message=e.message, warnings=warnings
            )

        result = FormulaValidationResult(valid=True, warnings=warnings)
        if settings.preview_enabled:
            self._preview(expanded, preview_values, result)
        return result

    def _check_calls(self, tree: Any, warnings: list[str]) -> None:
        """Existence and arity of every call in the unexpanded formula."""
        for node in iter_nodes(tree):
            if not isinstance(node, FunctionCallNode):
                continue

            builtin = FORMULA_FUNCTIONS.get(node.name)
            if builtin is not None:
                if not builtin.accepts(len(node.arguments)):
                    raise ArityMismatchError(node.name, builtin.arity_description, len(node.arguments))
                if node.name in self.function_map:
                    warnings.append(
                        f"Function '{node.name}' is shadowed by the built-in function of the same name"
                    )
                continue

            func = self.function_map.get(node.name)
            if func is None:
                raise UnknownIdentifierError(node.name, f"Function '{node.name}' not found")
            if len(node.arguments) != len(func.parameters):
                raise ArityMismatchError(node.name, str(len(func.parameters)), len(node.arguments))

            for param, arg in zip(func.parameters, node.arguments):
                if (
                    isinstance(arg, VariableNode)
                    and arg.name in self.material_map
                    and arg.name not in self.field_names
                ):
                    warnings.append(
                        f"Function '{node.name}' parameter '{param.name}' receives material "
                        f"'{arg.name}', which evaluates to its price"
                    )

    def _check_references(self, tree: Any, warnings: list[str]) -> None:
        """Every identifier and dotted reference in the expanded tree must resolve."""
        for node in iter_nodes(tree):
            if isinstance(node, VariableNode):
                self._check_variable(node.name)
            elif isinstance(node, PropertyRefNode):
                self._check_property(node, warnings)
            elif isinstance(node, OutputRefNode):
                self._check_output(node.name)
            elif isinstance(node, FunctionCallNode) and not is_builtin(node.name):
                # Left over after expansion: defined nowhere
                raise UnknownIdentifierError(node.name, f"Function '{node.name}' not found")

    def _check_variable(self, name: str) -> None:
        if name in self.field_names:
            field = self.field_defs.get(name)
            if (
                field is not None
                and field.type == FieldType.DROPDOWN
                and field.dropdown_mode == DropdownMode.STRING
            ):
                raise TypeMismatchError(
                    f"Dropdown '{name}' holds text options and cannot be used in arithmetic",
                    details={"name": name},
                )
            return
        if name in self.material_map or name in CONSTANTS:
            return
        if name in self.function_map or is_builtin(name):
            raise UnknownIdentifierError(name, f"Function '{name}' must be called with arguments")
        raise UnknownIdentifierError(name)

    def _check_property(self, node: PropertyRefNode, warnings: list[str]) -> None:
        base, prop = node.base, node.property

        field = self.field_defs.get(base)
        if field is not None:
            if field.type != FieldType.MATERIAL:
                raise UnknownPropertyError(
                    base, prop, f'Field "{base}" is not a material field, cannot access properties'
                )
            candidates = self.materials
            if field.material_category and field.material_category.strip():
                candidates = [m for m in candidates if m.category == field.material_category]
            if prop in IMPLICIT_PRICE_PROPERTIES and candidates:
                return
            if not any(m.get_property(prop) is not None for m in candidates):
                category = f' in category "{field.material_category}"' if field.material_category else ""
                raise UnknownPropertyError(
                    base,
                    prop,
                    f'Property "{prop}" not found on any material{category} for field "{base}"',
                )
            return

        material = self.material_map.get(base)
        if material is not None:
            if material.get_property(prop) is None and prop not in IMPLICIT_PRICE_PROPERTIES:
                raise UnknownPropertyError(
                    base, prop, f'Property "{prop}" not found on material "{base}"'
                )
            return

        if base in self.field_names:
            # Field without a definition: the property can only be checked at evaluation
            warnings.append(f'Cannot verify property "{prop}" of field "{base}" without its definition')
            return

        raise UnknownIdentifierError(base, f'Material variable "{base}" not found')

    def _check_output(self, name: str) -> None:
        if name in self.output_names:
            return
        if name in self.later_output_names:
            raise ForwardOutputReferenceError(name)
        available = ", ".join(sorted(self.output_names)) or "none"
        raise UnknownIdentifierError(
            f"{OUTPUT_PREFIX}{name}",
            f"Computed output '{name}' not found. Available computed outputs: {available}",
        )

    def _preview(
        self,
        expanded: Any,
        preview_values: Mapping[str, FieldValue | None] | None,
        result: FormulaValidationResult,
    ) -> None:
        """Evaluate when every referenced field and output has a value."""
        values: dict[str, FieldValue | None] = {}
        if preview_values is None:
            for field in self.fields:
                if field.default_value is not None:
                    values[field.variable_name] = field.default_value
        else:
            values.update(preview_values)

        for node in iter_nodes(expanded):
            if isinstance(node, VariableNode) and node.name in self.field_names:
                needed = node.name
            elif isinstance(node, PropertyRefNode) and node.base in self.field_names:
                needed = node.base
            elif isinstance(node, OutputRefNode):
                needed = node.full
            else:
                continue
            if values.get(needed) in (None, ""):
                return

        context = build_variable_context(values, self.materials, self.fields)
        try:
            result.preview = FormulaEvaluator(context, self.resolver).evaluate(expanded)
        except FormulaError as e:
            logger.debug("Formula preview failed", extra={"error": e.code, "reason": e.message})
            result.preview_error = e.message


def validate_formula(
    formula: str,
    field_names: Iterable[str],
    materials: Iterable[Material],
    fields: Iterable[Field] | None = None,
    functions: Iterable[SharedFunction] | None = None,
    *,
    output_names: Iterable[str] | None = None,
    later_output_names: Iterable[str] | None = None,
    output_units: Mapping[str, str | None] | None = None,
    preview_values: Mapping[str, FieldValue | None] | None = None,
) -> FormulaValidationResult:
    """
    Convenience function to validate one formula.

    Returns:
        FormulaValidationResult with `error` set to the failing ErrorKind
    """
    validator = FormulaValidator(
        field_names,
        materials,
        fields,
        functions,
        output_names=output_names,
        later_output_names=later_output_names,
        output_units=output_units,
    )
    return validator.validate(formula, preview_values)


def validate_function(
    function: SharedFunction,
    functions: Iterable[SharedFunction],
    materials: Iterable[Material],
) -> FormulaValidationResult:
    """
    Validate a shared function definition against the rest of the registry.

    The function replaces any registry entry of the same name.
    """
    try:
        if not is_identifier(function.name):
            raise InvalidNameError(
                "Function name must start with a letter or underscore and contain only "
                "letters, numbers, and underscores",
                details={"name": function.name},
            )
        if is_builtin(function.name) or function.name in CONSTANTS:
            raise InvalidNameError(
                f"Function name '{function.name}' is reserved for a built-in",
                details={"name": function.name},
            )
        seen: list[str] = []
        for param in function.parameters:
            valid, error = validate_parameter_name(param.name, seen)
            if not valid:
                raise InvalidNameError(error, details={"parameter": param.name})
            seen.append(param.name)

        registry = [f for f in functions if f.name != function.name] + [function]
        cycle = FunctionDependencyGraph.from_functions(registry).find_cycle(function.name)
        if cycle is not None:
            raise CircularFunctionReferenceError(cycle)
    except FormulaError as e:
        return FormulaValidationResult(valid=False, error=e.kind, message=e.message)

    return validate_formula(
        function.formula,
        function.parameter_names,
        materials,
        functions=registry,
    )
