"""
Pytest configuration and fixtures for estimator tests.
"""

import pytest

from estimator.schemas import (
    CalculationModule,
    ComputedOutput,
    DropdownMode,
    Field,
    FieldLink,
    FieldType,
    FunctionParameter,
    Material,
    MaterialProperty,
    PropertyType,
    QuoteModuleInstance,
    SharedFunction,
)


# ==============================================================================
# Catalog Fixtures
# ==============================================================================


@pytest.fixture
def plywood() -> Material:
    """Sheet material with unit-carrying properties."""
    return Material(
        id="mat-plywood",
        name="Plywood 18mm",
        variable_name="plywood",
        category="sheet",
        unit="sheet",
        price=45.0,
        properties=[
            MaterialProperty(id="p-length", name="length", value=2440, unit_symbol="mm"),
            MaterialProperty(id="p-width", name="width", value=1220, unit_symbol="mm"),
            MaterialProperty(id="p-grade", name="grade", type=PropertyType.STRING, value="B"),
        ],
    )


@pytest.fixture
def mdf() -> Material:
    return Material(
        id="mat-mdf",
        name="MDF 16mm",
        variable_name="mdf",
        category="sheet",
        unit="sheet",
        price=30.0,
        properties=[
            MaterialProperty(id="p-length", name="length", value=2.8, unit_symbol="m"),
            MaterialProperty(id="p-thickness", name="thickness", value=16, unit_symbol="mm"),
        ],
    )


@pytest.fixture
def screws() -> Material:
    return Material(
        id="mat-screws",
        name="Wood screws",
        variable_name="screws",
        category="hardware",
        unit="pcs",
        price=0.05,
    )


@pytest.fixture
def materials(plywood, mdf, screws) -> list[Material]:
    return [plywood, mdf, screws]


# ==============================================================================
# Field Fixtures
# ==============================================================================


@pytest.fixture
def fields() -> list[Field]:
    """Fields of a cabinet-style module."""
    return [
        Field(id="f-width", variable_name="width", label="Width", unit_symbol="m"),
        Field(id="f-height", variable_name="height", label="Height", unit_symbol="m"),
        Field(id="f-qty", variable_name="qty", label="Quantity", default_value=1),
        Field(
            id="f-sheet",
            variable_name="sheet",
            label="Sheet",
            type=FieldType.MATERIAL,
            material_category="sheet",
        ),
        Field(
            id="f-finish",
            variable_name="finish",
            label="Finish",
            type=FieldType.DROPDOWN,
            options=["matte", "gloss"],
        ),
        Field(
            id="f-thickness",
            variable_name="thickness",
            label="Thickness",
            type=FieldType.DROPDOWN,
            dropdown_mode=DropdownMode.NUMERIC,
            options=["16", "18"],
            unit_symbol="mm",
        ),
        Field(id="f-mass", variable_name="mass", label="Mass", unit_symbol="kg"),
        Field(id="f-waste", variable_name="waste", label="Waste", unit_symbol="%"),
        Field(id="f-glue", variable_name="glue", label="Glue", type=FieldType.BOOLEAN),
    ]


# ==============================================================================
# Function Fixtures
# ==============================================================================


def _function(name: str, params: list[str], formula: str) -> SharedFunction:
    return SharedFunction(
        id=f"fn-{name}",
        name=name,
        parameters=[FunctionParameter(name=p, label=p.title()) for p in params],
        formula=formula,
    )


@pytest.fixture
def functions() -> list[SharedFunction]:
    return [
        _function("double", ["x"], "x * 2"),
        _function("area", ["w", "h"], "w * h"),
        _function("panel_cost", ["w", "h"], "area(w, h) * plywood.price"),
    ]


# ==============================================================================
# Module & Instance Fixtures
# ==============================================================================


@pytest.fixture
def panel_module() -> CalculationModule:
    return CalculationModule(
        id="mod-panel",
        name="Panel",
        fields=[
            Field(id="f-width", variable_name="width", label="Width", unit_symbol="m", required=True),
            Field(id="f-height", variable_name="height", label="Height", unit_symbol="m", required=True),
            Field(id="f-glue", variable_name="glue", label="Glue", type=FieldType.BOOLEAN),
            Field(id="f-sheet", variable_name="sheet", type=FieldType.MATERIAL, material_category="sheet"),
        ],
        formula="out.area * sheet.price + glue * 5",
        computed_outputs=[
            ComputedOutput(id="o-area", variable_name="area", label="Area", expression="width * height"),
            ComputedOutput(
                id="o-perimeter",
                variable_name="perimeter",
                label="Perimeter",
                expression="2 * (width + height)",
                unit_symbol="mm",
            ),
        ],
    )


@pytest.fixture
def trim_module() -> CalculationModule:
    return CalculationModule(
        id="mod-trim",
        name="Trim",
        fields=[
            Field(id="f-length", variable_name="length", label="Length", unit_symbol="m"),
            Field(id="f-width", variable_name="width", label="Width", unit_symbol="cm"),
            Field(id="f-glue", variable_name="glue", label="Glue", type=FieldType.BOOLEAN),
            Field(id="f-sheet", variable_name="sheet", type=FieldType.MATERIAL),
        ],
        formula="length * 12",
        computed_outputs=[
            ComputedOutput(id="o-double", variable_name="double_length", expression="length * 2"),
        ],
    )


@pytest.fixture
def modules(panel_module, trim_module) -> list[CalculationModule]:
    return [panel_module, trim_module]


@pytest.fixture
def panel_instance() -> QuoteModuleInstance:
    return QuoteModuleInstance(
        id="inst-panel",
        module_id="mod-panel",
        field_values={"width": 2, "height": 3, "glue": True, "sheet": "plywood"},
    )


@pytest.fixture
def trim_instance() -> QuoteModuleInstance:
    return QuoteModuleInstance(
        id="inst-trim",
        module_id="mod-trim",
        field_values={"length": 4, "width": 10, "glue": False, "sheet": "mdf"},
    )


@pytest.fixture
def make_function():
    """Factory for shared functions: make_function(name, params, formula)."""
    return _function


@pytest.fixture
def make_link():
    """Factory for field links: make_link(target_instance_id, target_field)."""

    def _link(target_instance_id: str, target_field: str) -> FieldLink:
        return FieldLink(target_instance_id=target_instance_id, target_field=target_field)

    return _link
