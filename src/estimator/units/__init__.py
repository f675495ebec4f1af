"""Unit registry: categories, base units and conversions."""

from estimator.units.registry import (
    UNITS,
    Unit,
    UnitCategory,
    are_compatible,
    convert,
    convert_from_base,
    divide_units,
    get_all_unit_symbols,
    get_unit,
    get_unit_category,
    get_units_by_category,
    is_unitless,
    multiply_units,
    normalize_to_base,
)

__all__ = [
    "UNITS",
    "Unit",
    "UnitCategory",
    "are_compatible",
    "convert",
    "convert_from_base",
    "divide_units",
    "get_all_unit_symbols",
    "get_unit",
    "get_unit_category",
    "get_units_by_category",
    "is_unitless",
    "multiply_units",
    "normalize_to_base",
]
