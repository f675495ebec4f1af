"""Formula evaluator for the estimator engine.

Evaluates parsed formula ASTs against a variable context.
"""

import math
from collections.abc import Iterable, Mapping
from typing import Any

from estimator.core.exceptions import (
    ArityMismatchError,
    DivisionByZeroError,
    FormulaInternalError,
    NonFiniteResultError,
    UnknownIdentifierError,
)
from estimator.formula.context import VariableContext, build_variable_context
from estimator.formula.functions import FORMULA_FUNCTIONS
from estimator.formula.parser import (
    BinaryOpNode,
    FunctionCallNode,
    NumberNode,
    OutputRefNode,
    PropertyRefNode,
    UnaryOpNode,
    VariableNode,
    parse_formula,
)
from estimator.formula.resolver import FunctionResolver
from estimator.schemas.field import Field, FieldValue
from estimator.schemas.function import SharedFunction
from estimator.schemas.material import Material
from estimator.units import convert_from_base


class FormulaEvaluator:
    """
    Evaluates formula ASTs against a variable context.

    Shared-function calls are expanded by the resolver before evaluation, so
    the walk itself only sees built-in calls. Every intermediate result is a
    float; comparisons yield 1.0 or 0.0.
    """

    def __init__(
        self,
        context: VariableContext | None = None,
        resolver: FunctionResolver | None = None,
    ):
        """
        Initialize evaluator.

        Args:
            context: Variable bindings to evaluate against
            resolver: Shared-function resolver (no user functions when omitted)
        """
        self._context = context or VariableContext()
        self._resolver = resolver or FunctionResolver()

    def evaluate(self, ast: Any, context: VariableContext | None = None) -> float:
        """
        Evaluate an AST.

        Args:
            ast: AST root node
            context: Optional bindings (overrides constructor context)

        Returns:
            Result in base units

        Raises:
            FormulaError: Any recoverable evaluation failure
        """
        if context is not None:
            self._context = context

        expanded = self._resolver.expand_tree(ast)
        result = self._eval(expanded)
        if not math.isfinite(result):
            raise NonFiniteResultError("Formula result is not a finite number")
        return result

    def _eval(self, node: Any) -> float:
        """Recursively evaluate an AST node."""
        if isinstance(node, NumberNode):
            return node.value

        if isinstance(node, VariableNode):
            return self._context.lookup(node.name)

        if isinstance(node, PropertyRefNode):
            return self._context.lookup_property(node.base, node.property)

        if isinstance(node, OutputRefNode):
            return self._context.lookup_output(node.name)

        if isinstance(node, FunctionCallNode):
            return self._eval_function(node)

        if isinstance(node, BinaryOpNode):
            return self._eval_binary(node)

        if isinstance(node, UnaryOpNode):
            operand = self._eval(node.operand)
            if node.operator == "-":
                return -operand
            if node.operator == "+":
                return operand
            raise FormulaInternalError(f"Unknown unary operator: {node.operator}")

        raise FormulaInternalError(f"Unknown node type: {type(node).__name__}")

    def _eval_function(self, node: FunctionCallNode) -> float:
        """Evaluate a built-in function call."""
        builtin = FORMULA_FUNCTIONS.get(node.name)
        if builtin is None:
            # Shared functions were expanded away; anything left is unknown
            raise UnknownIdentifierError(node.name, f"Function '{node.name}' not found")
        if not builtin.accepts(len(node.arguments)):
            raise ArityMismatchError(node.name, builtin.arity_description, len(node.arguments))

        args = [self._eval(arg) for arg in node.arguments]
        if not all(math.isfinite(arg) for arg in args):
            raise NonFiniteResultError(f"{node.name}() called with a non-finite argument")
        try:
            result = float(builtin.func(*args))
        except (ArithmeticError, ValueError) as e:
            raise NonFiniteResultError(f"{node.name}() failed: {e}") from e
        if not math.isfinite(result):
            raise NonFiniteResultError(f"{node.name}() produced a non-finite result")
        return result

    def _eval_binary(self, node: BinaryOpNode) -> float:
        """Evaluate a binary operation."""
        left = self._eval(node.left)
        right = self._eval(node.right)
        op = node.operator

        # Arithmetic operators
        if op == "+":
            return left + right
        if op == "-":
            return left - right
        if op == "*":
            return left * right
        if op == "/":
            if right == 0:
                raise DivisionByZeroError()
            return left / right

        # Comparison operators
        if op == "==":
            return 1.0 if left == right else 0.0
        if op == "!=":
            return 1.0 if left != right else 0.0
        if op == "<":
            return 1.0 if left < right else 0.0
        if op == ">":
            return 1.0 if left > right else 0.0
        if op == "<=":
            return 1.0 if left <= right else 0.0
        if op == ">=":
            return 1.0 if left >= right else 0.0

        raise FormulaInternalError(f"Unknown operator: {op}")


def evaluate_formula(
    formula: str,
    field_values: Mapping[str, FieldValue | None] | None = None,
    materials: Iterable[Material] | None = None,
    fields: Iterable[Field] | None = None,
    functions: Iterable[SharedFunction] | None = None,
    computed_outputs: Mapping[str, float] | None = None,
    display_unit: str | None = None,
) -> float:
    """
    Convenience function to parse and evaluate a formula.

    Args:
        formula: Formula text
        field_values: Field values in display units
        materials: Material catalog
        fields: Field definitions (units, types, defaults)
        functions: Shared functions callable from the formula
        computed_outputs: Outputs computed so far in this module pass
        display_unit: Convert the base-unit result to this unit

    Returns:
        Evaluation result

    Raises:
        FormulaError: On any syntax or evaluation failure
    """
    tree = parse_formula(formula)
    context = build_variable_context(field_values, materials, fields, computed_outputs)
    evaluator = FormulaEvaluator(context, FunctionResolver(functions))
    result = evaluator.evaluate(tree)
    if display_unit:
        return convert_from_base(result, display_unit)
    return result
