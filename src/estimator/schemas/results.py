"""Structured result schemas returned to the host application."""

from typing import Any, Optional

from pydantic import BaseModel, Field

from estimator.core.exceptions import ErrorKind


class FormulaValidationResult(BaseModel):
    """Outcome of static formula validation."""

    valid: bool
    error: Optional[ErrorKind] = None
    message: Optional[str] = None
    warnings: list[str] = Field(default_factory=list)
    preview: Optional[float] = None
    preview_error: Optional[str] = None


class FieldPropertyRef(BaseModel):
    full: str
    field_var: str
    property: str


class MaterialPropertyRef(BaseModel):
    full: str
    material_var: str
    property: str


class FunctionCallInfo(BaseModel):
    name: str
    arguments: list[str] = Field(default_factory=list)
    full_match: str


class FormulaAnalysis(BaseModel):
    """Identifiers found in a formula, grouped by what they resolve to."""

    variables: list[str] = Field(default_factory=list)
    unknown_variables: list[str] = Field(default_factory=list)
    field_property_refs: list[FieldPropertyRef] = Field(default_factory=list)
    material_property_refs: list[MaterialPropertyRef] = Field(default_factory=list)
    function_calls: list[FunctionCallInfo] = Field(default_factory=list)
    math_functions: list[str] = Field(default_factory=list)
    computed_outputs: list[str] = Field(default_factory=list)


class LinkCheckResult(BaseModel):
    """Whether a prospective field link is legal."""

    valid: bool
    error: Optional[ErrorKind] = None
    message: Optional[str] = None


class LinkIssue(BaseModel):
    """A field whose link could not be followed."""

    instance_id: str
    field_name: str
    kind: ErrorKind
    path: list[str] = Field(default_factory=list)
    message: str = ""


class LinkResolution(BaseModel):
    """Resolved value of every field, plus flagged links."""

    values: dict[str, dict[str, Any]] = Field(default_factory=dict)
    issues: list[LinkIssue] = Field(default_factory=list)

    def issue_for(self, instance_id: str, field_name: str) -> LinkIssue | None:
        for issue in self.issues:
            if issue.instance_id == instance_id and issue.field_name == field_name:
                return issue
        return None


class OutputError(BaseModel):
    output_id: str
    output_label: str
    error: ErrorKind
    message: str


class ComputedOutputEvaluation(BaseModel):
    """Computed outputs of one module evaluation pass."""

    values: dict[str, float] = Field(default_factory=dict, description="out.<name> -> base value")
    display_values: dict[str, float] = Field(default_factory=dict)
    errors: list[OutputError] = Field(default_factory=list)


class InstanceCalculation(BaseModel):
    """Full calculation result for one module instance."""

    instance_id: str
    field_values: dict[str, Any] = Field(default_factory=dict)
    outputs: dict[str, float] = Field(default_factory=dict)
    cost: float = 0.0
    error: Optional[ErrorKind] = None
    message: Optional[str] = None
    output_errors: list[OutputError] = Field(default_factory=list)
    link_issues: list[LinkIssue] = Field(default_factory=list)
    missing_fields: list[str] = Field(default_factory=list)
