"""Unit registry for the estimator engine.

Defines unit categories, base units and linear conversion factors. Every
stored numeric value is normalized to its category's base unit:

    length -> m, area -> m2, volume -> m3, weight -> kg

Percentage, count and currency are unitless passthrough categories.
"""

from dataclasses import dataclass
from enum import Enum

from estimator.core.exceptions import UnitConversionError


class UnitCategory(str, Enum):
    """Available unit categories."""

    LENGTH = "length"
    AREA = "area"
    VOLUME = "volume"
    WEIGHT = "weight"
    PERCENTAGE = "percentage"
    COUNT = "count"
    CURRENCY = "currency"


# Categories that act as plain scalars in unit algebra
UNITLESS_CATEGORIES = frozenset(
    {UnitCategory.COUNT, UnitCategory.PERCENTAGE, UnitCategory.CURRENCY}
)


@dataclass(frozen=True)
class Unit:
    """A unit symbol with its category and factor to the category's base unit."""

    symbol: str
    category: UnitCategory
    factor_to_base: float
    display: str

    def to_base(self, value: float) -> float:
        return value * self.factor_to_base

    def from_base(self, value: float) -> float:
        return value / self.factor_to_base


def _unit(symbol: str, category: UnitCategory, factor: float, display: str | None = None) -> Unit:
    return Unit(symbol=symbol, category=category, factor_to_base=factor, display=display or symbol)


UNITS: dict[str, Unit] = {
    u.symbol: u
    for u in (
        # Length (base: meters)
        _unit("mm", UnitCategory.LENGTH, 0.001),
        _unit("cm", UnitCategory.LENGTH, 0.01),
        _unit("m", UnitCategory.LENGTH, 1.0),
        _unit("km", UnitCategory.LENGTH, 1000.0),
        _unit("in", UnitCategory.LENGTH, 0.0254),
        _unit("ft", UnitCategory.LENGTH, 0.3048),
        # Area (base: square meters)
        _unit("mm2", UnitCategory.AREA, 1e-6, "mm²"),
        _unit("cm2", UnitCategory.AREA, 1e-4, "cm²"),
        _unit("m2", UnitCategory.AREA, 1.0, "m²"),
        _unit("ft2", UnitCategory.AREA, 0.09290304, "ft²"),
        # Volume (base: cubic meters)
        _unit("cm3", UnitCategory.VOLUME, 1e-6, "cm³"),
        _unit("ml", UnitCategory.VOLUME, 1e-6, "mL"),
        _unit("l", UnitCategory.VOLUME, 0.001, "L"),
        _unit("m3", UnitCategory.VOLUME, 1.0, "m³"),
        # Weight (base: kilograms)
        _unit("g", UnitCategory.WEIGHT, 0.001),
        _unit("kg", UnitCategory.WEIGHT, 1.0),
        _unit("t", UnitCategory.WEIGHT, 1000.0),
        _unit("lb", UnitCategory.WEIGHT, 0.45359237),
        # Percentage (base: numeric 0-100)
        _unit("%", UnitCategory.PERCENTAGE, 1.0),
        # Count (unitless). "liters" counts containers, it is not a volume.
        _unit("pcs", UnitCategory.COUNT, 1.0),
        _unit("liters", UnitCategory.COUNT, 1.0, "L"),
        # Currency per unit, used as-is
        _unit("price", UnitCategory.CURRENCY, 1.0, "$"),
    )
}


def get_unit(symbol: str | None) -> Unit | None:
    """Get unit by symbol."""
    if not symbol:
        return None
    return UNITS.get(symbol)


def get_unit_category(symbol: str | None) -> UnitCategory | None:
    """Get unit category from symbol. Derived metadata for UI grouping only."""
    unit = get_unit(symbol)
    return unit.category if unit else None


def normalize_to_base(value: float, unit_symbol: str | None) -> float:
    """
    Normalize a value to the base unit of its symbol's category.

    Unknown or missing symbols are treated as unitless and pass through.
    """
    unit = get_unit(unit_symbol)
    if unit is None:
        return value
    return unit.to_base(value)


def convert_from_base(base_value: float, unit_symbol: str | None) -> float:
    """Convert a base-normalized value to the display unit."""
    unit = get_unit(unit_symbol)
    if unit is None:
        return base_value
    return unit.from_base(base_value)


def convert(value: float, from_symbol: str, to_symbol: str) -> float:
    """
    Convert a value between two units of the same category.

    Raises:
        UnitConversionError: If either symbol is unknown or categories differ
    """
    from_unit = get_unit(from_symbol)
    to_unit = get_unit(to_symbol)
    if from_unit is None or to_unit is None:
        raise UnitConversionError(
            f"Invalid unit symbols: {from_symbol} or {to_symbol}", from_symbol, to_symbol
        )
    if from_unit.category != to_unit.category:
        raise UnitConversionError(
            "Cannot convert between different unit categories: "
            f"{from_unit.category.value} and {to_unit.category.value}",
            from_symbol,
            to_symbol,
        )
    return to_unit.from_base(from_unit.to_base(value))


def are_compatible(first_symbol: str, second_symbol: str) -> bool:
    """Check if two units share a category."""
    first = get_unit(first_symbol)
    second = get_unit(second_symbol)
    if first is None or second is None:
        return False
    return first.category == second.category


def get_units_by_category(category: UnitCategory | str) -> list[str]:
    """Get all unit symbols for a category, in registry order."""
    category = UnitCategory(category)
    return [symbol for symbol, unit in UNITS.items() if unit.category == category]


def get_all_unit_symbols() -> list[str]:
    """Get all available unit symbols."""
    return list(UNITS)


# =============================================================================
# Category algebra
# =============================================================================


def is_unitless(category: UnitCategory | None) -> bool:
    return category is None or category in UNITLESS_CATEGORIES


def multiply_units(first: UnitCategory, second: UnitCategory) -> UnitCategory:
    """
    Result category of multiplying two categories.

    length * length -> area, area * length -> volume, unitless is a scalar,
    any other dimensional product is unitless.
    """
    if first == UnitCategory.LENGTH and second == UnitCategory.LENGTH:
        return UnitCategory.AREA
    if {first, second} == {UnitCategory.AREA, UnitCategory.LENGTH}:
        return UnitCategory.VOLUME
    if first in UNITLESS_CATEGORIES:
        return second
    if second in UNITLESS_CATEGORIES:
        return first
    return UnitCategory.COUNT


def divide_units(first: UnitCategory, second: UnitCategory) -> UnitCategory | None:
    """
    Result category of dividing two categories, or None when invalid.

    Same dimension / same dimension -> count, unit / unitless -> unit,
    unitless / unit and cross-dimension division are invalid.
    """
    if first == second and first not in UNITLESS_CATEGORIES:
        return UnitCategory.COUNT
    if second in UNITLESS_CATEGORIES:
        return first
    return None
