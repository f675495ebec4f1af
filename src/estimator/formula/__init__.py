"""Formula engine for the estimator.

This module provides the formula subsystem:
- Arithmetic operations (+, -, *, /) and comparisons (==, !=, <, >, <=, >=)
- Field, material and material property references (mat.length)
- Computed output references (out.name)
- Built-in math functions (round, ceil, floor, sqrt, abs, max, min, ...)
- Shared user-defined functions, expanded with cycle and depth guards
- Unit-category checks and computed output evaluation
"""

from estimator.formula.analysis import (
    analyze_formula_variables,
    is_property_reference_in_formula,
    is_variable_in_formula,
)
from estimator.formula.context import VariableContext, build_variable_context
from estimator.formula.dependencies import FunctionDependencyGraph
from estimator.formula.evaluator import FormulaEvaluator, evaluate_formula
from estimator.formula.functions import CONSTANTS, FORMULA_FUNCTIONS, register_function
from estimator.formula.outputs import (
    evaluate_computed_outputs,
    validate_computed_output_expression,
    validate_computed_outputs,
)
from estimator.formula.parser import FormulaParser, parse_formula
from estimator.formula.resolver import FunctionResolver
from estimator.formula.validator import FormulaValidator, validate_formula, validate_function

__all__ = [
    "CONSTANTS",
    "FORMULA_FUNCTIONS",
    "FormulaEvaluator",
    "FormulaParser",
    "FormulaValidator",
    "FunctionDependencyGraph",
    "FunctionResolver",
    "VariableContext",
    "analyze_formula_variables",
    "build_variable_context",
    "evaluate_computed_outputs",
    "evaluate_formula",
    "is_property_reference_in_formula",
    "is_variable_in_formula",
    "parse_formula",
    "register_function",
    "validate_computed_output_expression",
    "validate_computed_outputs",
    "validate_formula",
    "validate_function",
]
