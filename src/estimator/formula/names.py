"""Identifier rules for fields, parameters and computed outputs."""

import re
from collections.abc import Iterable

from estimator.schemas.module import OUTPUT_PREFIX

IDENTIFIER_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

_IDENTIFIER_RULE = "must start with a letter or underscore and contain only letters, numbers, and underscores"

# Appended suffixes stop here; past this the caller has a naming problem
MAX_SUFFIX = 1000


def is_identifier(name: str) -> bool:
    return bool(IDENTIFIER_PATTERN.match(name))


def label_to_variable_name(label: str) -> str:
    """
    Convert a display label into an identifier.

    "Material Type" -> "material_type", "2x4 Lumber" -> "_2x4_lumber".
    Returns an empty string when nothing usable is left.
    """
    if not label or not label.strip():
        return ""

    result = re.sub(r"\s+", "_", label.strip())
    result = result.replace("-", "_")
    result = re.sub(r"[^a-zA-Z0-9_]", "", result)
    result = re.sub(r"_+", "_", result).strip("_")
    if not result:
        return ""

    if result[0].isdigit():
        result = "_" + result
    return result.lower()


def generate_unique_name(label: str, existing: Iterable[str]) -> str:
    """Identifier for `label`, suffixed `_1`, `_2`, ... until unused (case-insensitive)."""
    base = label_to_variable_name(label)
    if not base:
        return ""

    taken = {name.lower() for name in existing if name}
    if base.lower() not in taken:
        return base

    candidate = base
    for counter in range(1, MAX_SUFFIX):
        candidate = f"{base}_{counter}"
        if candidate.lower() not in taken:
            break
    return candidate


def validate_variable_name(name: str, existing: Iterable[str] = ()) -> tuple[bool, str | None]:
    """
    Validate a field variable name.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not name or not name.strip():
        return False, "Variable name is required"
    name = name.strip()
    if not is_identifier(name):
        return False, f"Variable name {_IDENTIFIER_RULE}"
    if name.lower() in {n.lower() for n in existing if n}:
        return False, "Variable name must be unique"
    return True, None


def validate_parameter_name(name: str, existing: Iterable[str] = ()) -> tuple[bool, str | None]:
    """Validate a shared-function parameter name against its siblings."""
    if not name or not name.strip():
        return False, "Parameter name is required"
    name = name.strip()
    if not is_identifier(name):
        return False, f"Parameter name {_IDENTIFIER_RULE}"
    if name.lower() in {n.lower() for n in existing if n}:
        return False, "Parameter name must be unique"
    return True, None


def validate_computed_output_variable_name(
    name: str,
    existing_outputs: Iterable[str] = (),
    existing_fields: Iterable[str] = (),
) -> tuple[bool, str | None]:
    """
    Validate a computed output name.

    The `out.` namespace is reserved: outputs are declared by bare name and
    referenced as `out.<name>`.
    """
    if not name or not name.strip():
        return False, "Variable name is required"
    name = name.strip()
    if name.startswith(OUTPUT_PREFIX):
        return False, f"Variable name cannot start with '{OUTPUT_PREFIX}'"
    if not is_identifier(name):
        return False, f"Variable name {_IDENTIFIER_RULE}"
    lowered = name.lower()
    if lowered in {n.lower() for n in existing_outputs if n}:
        return False, "Variable name must be unique (already used by another computed output)"
    if lowered in {n.lower() for n in existing_fields if n}:
        return False, "Variable name must be unique (already used by a field)"
    return True, None


def generate_computed_output_variable_name(
    label: str,
    existing_outputs: Iterable[str] = (),
    existing_fields: Iterable[str] = (),
) -> str:
    """Unique output name for `label` among outputs and fields of one module."""
    return generate_unique_name(label, [*existing_outputs, *existing_fields])
