"""Variable context: the concrete bindings a formula is evaluated against.

Field values arrive as the dynamic `FieldValue` variant and are coerced to
base-unit numbers here, once, before evaluation:

- bool: 1.0 / 0.0
- int/float: float, normalized through the field's unit symbol
- str naming a material variable: a material selection, evaluates to its price
- str on a numeric dropdown or number field: parsed, then normalized
- str on a string-mode dropdown, or any other non-numeric str: TypeMismatch

A value that cannot be coerced is kept as a deferred error and raised only if
the formula actually references it.
"""

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field as dataclass_field

from estimator.core.exceptions import (
    FormulaError,
    MissingValueError,
    TypeMismatchError,
    UnknownIdentifierError,
    UnknownPropertyError,
)
from estimator.formula.functions import CONSTANTS
from estimator.schemas.field import DropdownMode, Field, FieldType, FieldValue
from estimator.schemas.material import Material, MaterialProperty, PropertyType
from estimator.schemas.module import OUTPUT_PREFIX
from estimator.units import normalize_to_base

# Resolve to the material's price when no real property of that name exists
IMPLICIT_PRICE_PROPERTIES = frozenset({"price", "price_per_unit"})


def property_value(material: Material, prop: MaterialProperty) -> float:
    """Base-normalized numeric value of a material property."""
    if prop.type in (PropertyType.NUMBER, PropertyType.PRICE):
        if prop.stored_value is not None:
            return prop.stored_value
        try:
            raw = float(prop.value)
        except (TypeError, ValueError):
            raise TypeMismatchError(
                f'Property "{prop.name}" on material "{material.name}" is not numeric'
            )
        return normalize_to_base(raw, prop.unit_symbol)

    if prop.type == PropertyType.BOOLEAN:
        return 1.0 if prop.value is True or prop.value == "true" else 0.0

    try:
        value = float(prop.value)
    except (TypeError, ValueError):
        raise TypeMismatchError(
            f'Property "{prop.name}" on material "{material.name}" is a text value '
            "and cannot be used in a formula"
        )
    if not math.isfinite(value):
        raise TypeMismatchError(f'Property "{prop.name}" on material "{material.name}" is not finite')
    return value


def resolve_material_property(material: Material, name: str) -> float:
    """Value of `material.name`, including the implicit price properties."""
    prop = material.get_property(name)
    if prop is not None:
        return property_value(material, prop)
    if name in IMPLICIT_PRICE_PROPERTIES:
        return material.price
    raise UnknownPropertyError(
        material.variable_name,
        name,
        f'Property "{name}" not found on material "{material.variable_name}"',
    )


@dataclass
class VariableContext:
    """Name -> base-normalized value bindings for one evaluation."""

    values: dict[str, float] = dataclass_field(default_factory=dict)
    deferred_errors: dict[str, FormulaError] = dataclass_field(default_factory=dict)
    material_selections: dict[str, Material] = dataclass_field(default_factory=dict)
    materials: dict[str, Material] = dataclass_field(default_factory=dict)
    fields: dict[str, Field] = dataclass_field(default_factory=dict)
    outputs: dict[str, float] = dataclass_field(default_factory=dict)

    def lookup(self, name: str) -> float:
        """Value of a bare identifier."""
        if name in self.values:
            return self.values[name]
        if name in self.deferred_errors:
            raise self.deferred_errors[name]
        if name in self.fields:
            raise MissingValueError(name)
        material = self.materials.get(name)
        if material is not None:
            # A bare material reference means its unit price
            return material.price
        if name in CONSTANTS:
            return CONSTANTS[name]
        raise UnknownIdentifierError(name)

    def lookup_property(self, base: str, prop: str) -> float:
        """Value of a dotted `base.prop` reference."""
        if base in self.deferred_errors:
            raise self.deferred_errors[base]

        selected = self.material_selections.get(base)
        if selected is not None:
            try:
                return resolve_material_property(selected, prop)
            except UnknownPropertyError:
                raise UnknownPropertyError(
                    base,
                    prop,
                    f'Property "{prop}" not found on selected material "{selected.name}" '
                    f'for field "{base}"',
                )

        field = self.fields.get(base)
        if field is not None:
            if field.type != FieldType.MATERIAL:
                raise UnknownPropertyError(
                    base, prop, f'Field "{base}" is not a material field, cannot access properties'
                )
            raise MissingValueError(base, f'No material selected for field "{base}"')

        material = self.materials.get(base)
        if material is not None:
            return resolve_material_property(material, prop)

        if base in self.values:
            raise UnknownPropertyError(
                base, prop, f'Field "{base}" is not a material field or no material is selected'
            )
        raise UnknownIdentifierError(base, f'Material variable "{base}" not found')

    def lookup_output(self, name: str) -> float:
        """Value of an already computed output `out.name`."""
        if name in self.outputs:
            return self.outputs[name]
        raise UnknownIdentifierError(
            f"{OUTPUT_PREFIX}{name}", f"Computed output '{name}' has not been computed"
        )


def coerce_field_value(
    name: str,
    value: FieldValue | None,
    field: Field | None,
    materials: Mapping[str, Material],
) -> tuple[float, Material | None]:
    """
    Coerce one field value to a base-unit number.

    Returns:
        Tuple of (numeric value, selected material or None)

    Raises:
        MissingValueError: If the value is empty
        TypeMismatchError: If the value cannot be used in arithmetic
    """
    if value is None or value == "":
        if field is not None and field.type == FieldType.MATERIAL:
            raise MissingValueError(name, f'No material selected for field "{name}"')
        raise MissingValueError(name)

    unit_symbol = field.unit_symbol if field is not None else None

    if isinstance(value, bool):
        return (1.0 if value else 0.0), None

    if isinstance(value, (int, float)):
        number = float(value)
        if not math.isfinite(number):
            raise TypeMismatchError(f"Value of '{name}' is not a finite number")
        return normalize_to_base(number, unit_symbol), None

    if isinstance(value, str):
        material = materials.get(value)
        if material is not None:
            return material.price, material
        if field is not None and field.type == FieldType.MATERIAL:
            raise MissingValueError(name, f'Selected material "{value}" for field "{name}" not found')
        if (
            field is not None
            and field.type == FieldType.DROPDOWN
            and field.dropdown_mode == DropdownMode.STRING
        ):
            raise TypeMismatchError(
                f"Dropdown '{name}' holds text options and cannot be used in arithmetic"
            )
        try:
            number = float(value.strip())
        except ValueError:
            raise TypeMismatchError(f"Value of '{name}' is not numeric: {value!r}")
        if not math.isfinite(number):
            raise TypeMismatchError(f"Value of '{name}' is not a finite number")
        return normalize_to_base(number, unit_symbol), None

    raise TypeMismatchError(f"Unsupported value type for '{name}': {type(value).__name__}")


def build_variable_context(
    field_values: Mapping[str, FieldValue | None] | None = None,
    materials: Iterable[Material] | None = None,
    fields: Iterable[Field] | None = None,
    computed_outputs: Mapping[str, float] | None = None,
    use_defaults: bool = True,
) -> VariableContext:
    """
    Build a context from raw field values.

    Args:
        field_values: Values as entered, in display units
        materials: Material catalog
        fields: Field definitions (units, types, defaults)
        computed_outputs: Outputs computed so far, keyed `out.name` or `name`
        use_defaults: Fall back to field default values for absent fields

    Returns:
        VariableContext with base-normalized values
    """
    material_map = {m.variable_name: m for m in materials or []}
    field_map = {f.variable_name: f for f in fields or []}
    raw: dict[str, FieldValue | None] = dict(field_values or {})

    if use_defaults:
        for name, field in field_map.items():
            if raw.get(name) in (None, "") and field.default_value is not None:
                raw[name] = field.default_value

    context = VariableContext(materials=material_map, fields=field_map)
    for name, value in raw.items():
        if name.startswith(OUTPUT_PREFIX):
            continue
        try:
            number, selected = coerce_field_value(name, value, field_map.get(name), material_map)
        except FormulaError as e:
            context.deferred_errors[name] = e
            continue
        context.values[name] = number
        if selected is not None:
            context.material_selections[name] = selected

    outputs = dict(computed_outputs or {})
    for key, value in raw.items():
        if key.startswith(OUTPUT_PREFIX) and isinstance(value, (int, float)):
            outputs.setdefault(key, float(value))
    context.outputs = {key.removeprefix(OUTPUT_PREFIX): float(v) for key, v in outputs.items()}
    return context
