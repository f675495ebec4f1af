"""Calculation module schemas."""

from typing import Optional

from pydantic import BaseModel, Field as PydanticField

from estimator.schemas.field import Field

OUTPUT_PREFIX = "out."


class ComputedOutput(BaseModel):
    """Named, ordered, formula-derived value scoped to one module."""

    id: str
    variable_name: str
    label: str = ""
    expression: str
    unit_symbol: Optional[str] = None

    @property
    def reference(self) -> str:
        """Name used to reference this output from formulas."""
        return f"{OUTPUT_PREFIX}{self.variable_name}"


class CalculationModule(BaseModel):
    """Module definition: fields, computed outputs and a cost formula."""

    id: str
    name: str = ""
    category: Optional[str] = None
    fields: list[Field] = PydanticField(default_factory=list)
    formula: str = ""
    computed_outputs: list[ComputedOutput] = PydanticField(default_factory=list)

    def get_field(self, variable_name: str) -> Field | None:
        for field in self.fields:
            if field.variable_name == variable_name:
                return field
        return None

    def get_output(self, variable_name: str) -> ComputedOutput | None:
        name = variable_name.removeprefix(OUTPUT_PREFIX)
        for output in self.computed_outputs:
            if output.variable_name == name:
                return output
        return None
