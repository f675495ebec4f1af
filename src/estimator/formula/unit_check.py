"""Static unit-category check for formula trees.

Infers the unit category of every sub-expression from the categories of the
fields and properties it references. `None` means the category is unknown or
the value is a plain scalar; unknown operands never produce an error.
"""

from collections.abc import Iterable, Mapping
from typing import Any

from estimator.core.exceptions import UnitMismatchError
from estimator.formula.parser import (
    BinaryOpNode,
    COMPARISON_OPERATORS,
    FunctionCallNode,
    OutputRefNode,
    PropertyRefNode,
    UnaryOpNode,
    VariableNode,
    format_expression,
)
from estimator.schemas.field import Field, FieldType
from estimator.schemas.material import Material, MaterialProperty
from estimator.units import UnitCategory, divide_units, get_unit_category, multiply_units

# Categories that can be added to or subtracted from anything
SCALAR_CATEGORIES = frozenset({UnitCategory.COUNT, UnitCategory.PERCENTAGE})

_SAME_CATEGORY_FUNCTIONS = frozenset({"round", "ceil", "floor", "abs", "max", "min"})


def _property_category(prop: MaterialProperty) -> UnitCategory | None:
    return prop.unit_category or get_unit_category(prop.unit_symbol)


class UnitCategoryChecker:
    """Infers categories bottom-up and rejects incompatible combinations."""

    def __init__(
        self,
        fields: Iterable[Field] | None = None,
        materials: Iterable[Material] | None = None,
        output_categories: Mapping[str, UnitCategory | None] | None = None,
    ):
        self._fields = {f.variable_name: f for f in fields or []}
        self._materials = list(materials or [])
        self._material_map = {m.variable_name: m for m in self._materials}
        self._outputs = dict(output_categories or {})

    def check(self, tree: Any) -> UnitCategory | None:
        """
        Check a tree (shared functions already expanded).

        Returns:
            Inferred category of the whole expression

        Raises:
            UnitMismatchError: On addition, subtraction or division of
                incompatible categories
        """
        return self._infer(tree)

    def _infer(self, node: Any) -> UnitCategory | None:
        if isinstance(node, VariableNode):
            field = self._fields.get(node.name)
            if field is not None and field.is_numeric and field.type != FieldType.MATERIAL:
                return field.unit_category
            return None

        if isinstance(node, PropertyRefNode):
            return self._property_ref_category(node)

        if isinstance(node, OutputRefNode):
            return self._outputs.get(node.name)

        if isinstance(node, UnaryOpNode):
            return self._infer(node.operand)

        if isinstance(node, FunctionCallNode):
            categories = [self._infer(arg) for arg in node.arguments]
            if node.name in _SAME_CATEGORY_FUNCTIONS and categories:
                first = categories[0]
                return first if all(c == first for c in categories) else None
            if node.name == "sqrt" and categories == [UnitCategory.AREA]:
                return UnitCategory.LENGTH
            return None

        if isinstance(node, BinaryOpNode):
            return self._infer_binary(node)

        return None

    def _infer_binary(self, node: BinaryOpNode) -> UnitCategory | None:
        left = self._infer(node.left)
        right = self._infer(node.right)
        op = node.operator

        if op in COMPARISON_OPERATORS:
            return None

        if op in ("+", "-"):
            if left is None:
                return right
            if right is None or left == right:
                return left
            if left in SCALAR_CATEGORIES:
                return right
            if right in SCALAR_CATEGORIES:
                return left
            verb = "add" if op == "+" else "subtract"
            raise UnitMismatchError(
                f"Cannot {verb} {left.value} ({format_expression(node.left)}) "
                f"{'to' if op == '+' else 'from'} {right.value} ({format_expression(node.right)})",
                details={"left": left.value, "right": right.value, "operator": op},
            )

        if op == "*":
            if left is None:
                return right
            if right is None:
                return left
            return multiply_units(left, right)

        if op == "/":
            if left is None or right is None:
                return left if right is None else None
            result = divide_units(left, right)
            if result is None:
                kind = "unitless" if left in SCALAR_CATEGORIES else left.value
                raise UnitMismatchError(
                    f"Cannot divide {kind} ({format_expression(node.left)}) "
                    f"by {right.value} ({format_expression(node.right)})",
                    details={"left": left.value, "right": right.value, "operator": op},
                )
            return result

        return None

    def _property_ref_category(self, node: PropertyRefNode) -> UnitCategory | None:
        field = self._fields.get(node.base)
        if field is not None:
            if field.type != FieldType.MATERIAL:
                return None
            candidates = self._materials
            if field.material_category and field.material_category.strip():
                candidates = [m for m in candidates if m.category == field.material_category]
            for material in candidates:
                prop = material.get_property(node.property)
                if prop is not None and _property_category(prop) is not None:
                    return _property_category(prop)
            return None

        material = self._material_map.get(node.base)
        if material is not None:
            prop = material.get_property(node.property)
            if prop is not None:
                return _property_category(prop)
        return None


def check_unit_compatibility(
    tree: Any,
    fields: Iterable[Field] | None = None,
    materials: Iterable[Material] | None = None,
    output_categories: Mapping[str, UnitCategory | None] | None = None,
) -> UnitCategory | None:
    """Convenience wrapper around `UnitCategoryChecker.check`."""
    return UnitCategoryChecker(fields, materials, output_categories).check(tree)
