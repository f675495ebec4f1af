"""Shared (user-defined) function schemas."""

from typing import Optional

from pydantic import BaseModel, Field

from estimator.units import UnitCategory


class FunctionParameter(BaseModel):
    """Declared parameter of a shared function."""

    name: str
    label: str = ""
    required: bool = True
    unit_symbol: Optional[str] = None
    unit_category: Optional[UnitCategory] = None


class SharedFunction(BaseModel):
    """Reusable formula over its own parameters and other functions."""

    id: str
    name: str = Field(..., description="Globally unique identifier")
    parameters: list[FunctionParameter] = Field(default_factory=list)
    formula: str

    @property
    def parameter_names(self) -> list[str]:
        return [p.name for p in self.parameters]
