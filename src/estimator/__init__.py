"""
Estimator - formula engine for a catalog and estimate builder.

Formulas reference input fields, catalog materials and their properties,
shared user-defined functions and built-in math functions. Values entered in
display units are normalized to base units, and fields can mirror fields or
computed outputs of other module instances through field links.
"""

__version__ = "0.1.0"

from estimator.formula import evaluate_formula, validate_formula
from estimator.linking import can_link_fields, resolve_field_links

__all__ = [
    "__version__",
    "can_link_fields",
    "evaluate_formula",
    "resolve_field_links",
    "validate_formula",
]
