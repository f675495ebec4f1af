"""Field schemas: typed input slots on a calculation module."""

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field as PydanticField, model_validator

from estimator.units import UnitCategory, get_unit_category

# Dynamic field value. Coercion rules live in estimator.formula.context.
FieldValue = Union[bool, int, float, str]


class FieldType(str, Enum):
    """Available field types."""

    NUMBER = "number"
    BOOLEAN = "boolean"
    TEXT = "text"
    DROPDOWN = "dropdown"
    MATERIAL = "material"


class DropdownMode(str, Enum):
    """How dropdown selections are interpreted."""

    STRING = "string"
    NUMERIC = "numeric"


class Field(BaseModel):
    """Schema for a module field."""

    id: str = PydanticField(..., description="Field ID")
    variable_name: str = PydanticField(..., description="Identifier unique within the module")
    label: str = PydanticField(default="", description="Display label")
    type: FieldType = PydanticField(default=FieldType.NUMBER, description="Field type")
    unit: Optional[str] = PydanticField(None, description="Free-text unit label")
    unit_symbol: Optional[str] = PydanticField(None, description="Registry unit symbol")
    unit_category: Optional[UnitCategory] = PydanticField(
        None, description="Derived from unit_symbol"
    )
    required: bool = PydanticField(default=False, description="Whether a value is required")
    default_value: Optional[FieldValue] = PydanticField(None, description="Default value")
    material_category: Optional[str] = PydanticField(
        None, description="Material category filter for material fields"
    )
    options: list[str] = PydanticField(default_factory=list, description="Dropdown options")
    dropdown_mode: DropdownMode = PydanticField(
        default=DropdownMode.STRING, description="Dropdown interpretation"
    )

    @model_validator(mode="after")
    def derive_unit_category(self) -> "Field":
        if self.unit_symbol and self.unit_category is None:
            self.unit_category = get_unit_category(self.unit_symbol)
        return self

    @property
    def is_numeric(self) -> bool:
        """Whether the field can appear in arithmetic."""
        if self.type == FieldType.DROPDOWN:
            return self.dropdown_mode == DropdownMode.NUMERIC
        return self.type in (FieldType.NUMBER, FieldType.BOOLEAN, FieldType.MATERIAL)
