"""Built-in math functions and constants available in formulas."""

import math
from dataclasses import dataclass
from typing import Callable

from estimator.core.exceptions import NonFiniteResultError


# Type alias for formula functions
FormulaFunction = Callable[..., float]


@dataclass(frozen=True)
class BuiltinFunction:
    """A built-in function with its arity rules."""

    name: str
    func: FormulaFunction
    min_args: int
    max_args: int | None  # None means variadic

    def accepts(self, count: int) -> bool:
        if count < self.min_args:
            return False
        return self.max_args is None or count <= self.max_args

    @property
    def arity_description(self) -> str:
        if self.max_args is None:
            return f"at least {self.min_args}"
        if self.min_args == self.max_args:
            return str(self.min_args)
        return f"{self.min_args} to {self.max_args}"


# Registry of built-in functions
FORMULA_FUNCTIONS: dict[str, BuiltinFunction] = {}

CONSTANTS: dict[str, float] = {
    "pi": math.pi,
    "e": math.e,
}


def register_function(
    name: str, min_args: int = 1, max_args: int | None = 1
) -> Callable[[FormulaFunction], FormulaFunction]:
    """Decorator to register a built-in formula function."""

    def decorator(func: FormulaFunction) -> FormulaFunction:
        FORMULA_FUNCTIONS[name] = BuiltinFunction(name, func, min_args, max_args)
        return func

    return decorator


def is_builtin(name: str) -> bool:
    return name in FORMULA_FUNCTIONS


def _half_up(x: float) -> float:
    """Round half toward positive infinity, as spreadsheet users expect."""
    return float(math.floor(x + 0.5))


# Beyond this many places a double has nothing left to round
MAX_ROUND_DECIMALS = 300


# =============================================================================
# Rounding Functions
# =============================================================================


@register_function("round", min_args=1, max_args=2)
def func_round(x: float, decimals: float | None = None) -> float:
    """round(x) to nearest integer, round(x, decimals) to decimal places."""
    if decimals is None:
        return _half_up(x)
    places = max(-MAX_ROUND_DECIMALS, min(MAX_ROUND_DECIMALS, _half_up(decimals)))
    factor = 10.0 ** places
    scaled = x * factor
    if not math.isfinite(scaled):
        return x
    return _half_up(scaled) / factor


@register_function("ceil")
def func_ceil(x: float) -> float:
    """Round up to the next integer."""
    return float(math.ceil(x))


@register_function("floor")
def func_floor(x: float) -> float:
    """Round down to the previous integer."""
    return float(math.floor(x))


# =============================================================================
# Numeric Functions
# =============================================================================


@register_function("sqrt")
def func_sqrt(x: float) -> float:
    """Square root."""
    if x < 0:
        raise NonFiniteResultError(f"sqrt() of negative number: {x}")
    return math.sqrt(x)


@register_function("abs")
def func_abs(x: float) -> float:
    """Absolute value."""
    return abs(x)


@register_function("max", min_args=1, max_args=None)
def func_max(*args: float) -> float:
    """Largest argument."""
    return max(args)


@register_function("min", min_args=1, max_args=None)
def func_min(*args: float) -> float:
    """Smallest argument."""
    return min(args)


# =============================================================================
# Trigonometric & Exponential Functions
# =============================================================================


@register_function("sin")
def func_sin(x: float) -> float:
    return math.sin(x)


@register_function("cos")
def func_cos(x: float) -> float:
    return math.cos(x)


@register_function("tan")
def func_tan(x: float) -> float:
    return math.tan(x)


@register_function("log")
def func_log(x: float) -> float:
    """Natural logarithm."""
    if x <= 0:
        raise NonFiniteResultError(f"log() of non-positive number: {x}")
    return math.log(x)


@register_function("exp")
def func_exp(x: float) -> float:
    try:
        return math.exp(x)
    except OverflowError:
        raise NonFiniteResultError(f"exp() overflow for {x}")
