"""Pydantic schemas for the estimator data model and results."""

from estimator.schemas.field import DropdownMode, Field, FieldType, FieldValue
from estimator.schemas.function import FunctionParameter, SharedFunction
from estimator.schemas.instance import FieldLink, QuoteModuleInstance
from estimator.schemas.material import Material, MaterialProperty, PropertyType
from estimator.schemas.module import OUTPUT_PREFIX, CalculationModule, ComputedOutput
from estimator.schemas.results import (
    ComputedOutputEvaluation,
    FieldPropertyRef,
    FormulaAnalysis,
    FormulaValidationResult,
    FunctionCallInfo,
    InstanceCalculation,
    LinkCheckResult,
    LinkIssue,
    LinkResolution,
    MaterialPropertyRef,
    OutputError,
)

__all__ = [
    "CalculationModule",
    "ComputedOutput",
    "ComputedOutputEvaluation",
    "DropdownMode",
    "Field",
    "FieldLink",
    "FieldPropertyRef",
    "FieldType",
    "FieldValue",
    "FormulaAnalysis",
    "FormulaValidationResult",
    "FunctionCallInfo",
    "FunctionParameter",
    "InstanceCalculation",
    "LinkCheckResult",
    "LinkIssue",
    "LinkResolution",
    "Material",
    "MaterialProperty",
    "MaterialPropertyRef",
    "OUTPUT_PREFIX",
    "OutputError",
    "PropertyType",
    "QuoteModuleInstance",
    "SharedFunction",
]
