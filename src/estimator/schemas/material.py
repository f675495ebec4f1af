"""Material catalog schemas."""

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field, model_validator

from estimator.units import UnitCategory, get_unit_category, normalize_to_base


class PropertyType(str, Enum):
    """Material property value types."""

    NUMBER = "number"
    STRING = "string"
    BOOLEAN = "boolean"
    PRICE = "price"


NUMERIC_PROPERTY_TYPES = (PropertyType.NUMBER, PropertyType.PRICE)


class MaterialProperty(BaseModel):
    """
    Named property of a material.

    `value` is in display units; `stored_value` is the base-unit-normalized
    numeric value and is recomputed whenever a numeric property carries a
    unit symbol.
    """

    id: str
    name: str
    type: PropertyType = PropertyType.NUMBER
    value: Union[bool, float, str]
    unit_symbol: Optional[str] = None
    unit_category: Optional[UnitCategory] = None
    stored_value: Optional[float] = None

    @model_validator(mode="after")
    def normalize_stored_value(self) -> "MaterialProperty":
        if self.unit_symbol and self.unit_category is None:
            self.unit_category = get_unit_category(self.unit_symbol)
        if self.type in NUMERIC_PROPERTY_TYPES and self.unit_symbol:
            try:
                raw = float(self.value)
            except (TypeError, ValueError):
                raise ValueError(
                    f"Property '{self.name}' of type {self.type.value} needs a numeric value"
                )
            self.stored_value = normalize_to_base(raw, self.unit_symbol)
        return self


class Material(BaseModel):
    """Catalog material referenced from formulas by its variable name."""

    id: str
    name: str
    variable_name: str = Field(..., description="Globally unique identifier")
    category: str = ""
    unit: str = ""
    price: float = 0.0
    properties: list[MaterialProperty] = Field(default_factory=list)

    def get_property(self, name: str) -> MaterialProperty | None:
        for prop in self.properties:
            if prop.name == name:
                return prop
        return None
