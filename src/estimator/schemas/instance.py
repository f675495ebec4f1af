"""Module instance schemas for quotes and templates."""

from pydantic import BaseModel, Field

from estimator.schemas.field import FieldValue


class FieldLink(BaseModel):
    """Reference making a field mirror another instance's field or output."""

    target_instance_id: str
    target_field: str = Field(..., description="Field variable name or out.<name>")


class QuoteModuleInstance(BaseModel):
    """
    Placed instance of a calculation module.

    A linked field reads through its link; the local value is kept so it can
    be restored when the link is removed.
    """

    id: str
    module_id: str
    field_values: dict[str, FieldValue] = Field(default_factory=dict)
    field_links: dict[str, FieldLink] = Field(default_factory=dict)
    calculated_cost: float = 0.0

    def has_field(self, name: str) -> bool:
        return name in self.field_values or name in self.field_links
