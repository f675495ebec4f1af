"""Unit tests for static formula validation."""

import pytest

from estimator.core.config import settings
from estimator.core.exceptions import ErrorKind
from estimator.formula.validator import FormulaValidator, validate_formula, validate_function

FIELD_NAMES = ["width", "height", "qty", "sheet", "finish", "thickness", "mass", "waste", "glue"]


@pytest.fixture
def validator(fields, materials, functions):
    return FormulaValidator(FIELD_NAMES, materials, fields, functions)


class TestFormulaValidation:
    """Tests for FormulaValidator.validate."""

    def test_valid_formula(self, validator):
        """Test a formula over known fields."""
        result = validator.validate("width * height * qty")
        assert result.valid is True
        assert result.error is None
        assert result.warnings == []

    def test_syntax_error(self, validator):
        """Test that syntax errors are reported, not raised."""
        result = validator.validate("width * (height")
        assert result.valid is False
        assert result.error == ErrorKind.SYNTAX_ERROR
        assert "parenthesis" in result.message

    def test_unknown_identifier(self, validator):
        """Test a name that resolves to nothing."""
        result = validator.validate("width * depth")
        assert result.error == ErrorKind.UNKNOWN_IDENTIFIER
        assert result.message == "Undefined variable: depth"

    def test_materials_and_constants_are_known(self, validator):
        """Test bare material and constant names."""
        assert validator.validate("plywood * 2 + pi").valid is True

    def test_function_name_without_call(self, validator):
        """Test using a function name as a variable."""
        result = validator.validate("double + 1")
        assert result.error == ErrorKind.UNKNOWN_IDENTIFIER
        assert "must be called" in result.message

    def test_string_dropdown(self, validator):
        """Test a text dropdown used in arithmetic."""
        result = validator.validate("finish * 2")
        assert result.error == ErrorKind.TYPE_MISMATCH

    def test_numeric_dropdown(self, validator):
        """Test a numeric dropdown is accepted."""
        assert validator.validate("thickness * 2").valid is True


class TestFunctionCallValidation:
    """Tests for built-in and shared function calls."""

    def test_unknown_function(self, validator):
        """Test calling an undefined function."""
        result = validator.validate("frobnicate(width)")
        assert result.error == ErrorKind.UNKNOWN_IDENTIFIER
        assert result.message == "Function 'frobnicate' not found"

    def test_builtin_arity(self, validator):
        """Test built-in argument counts."""
        result = validator.validate("round(width, 2, 3)")
        assert result.error == ErrorKind.ARITY_MISMATCH
        assert "1 to 2" in result.message

    def test_shared_function_arity(self, validator):
        """Test shared function argument counts."""
        result = validator.validate("area(width)")
        assert result.error == ErrorKind.ARITY_MISMATCH

    def test_nested_shared_functions(self, validator):
        """Test functions that call other functions."""
        assert validator.validate("panel_cost(width, height)").valid is True

    def test_circular_function(self, fields, materials, make_function):
        """Test that recursive functions are rejected."""
        functions = [make_function("f", ["x"], "g(x)"), make_function("g", ["x"], "f(x)")]
        result = validate_formula("f(width)", FIELD_NAMES, materials, fields, functions)
        assert result.error == ErrorKind.CIRCULAR_FUNCTION_REFERENCE
        assert "f → g → f" in result.message

    def test_excessive_depth(self, fields, materials, make_function):
        """Test that very deep acyclic chains are rejected."""
        functions = [make_function(f"f{i}", ["x"], f"f{i + 1}(x)") for i in range(20)]
        functions.append(make_function("f20", ["x"], "x"))
        result = validate_formula("f0(width)", FIELD_NAMES, materials, fields, functions)
        assert result.error == ErrorKind.EXCESSIVE_EXPANSION_DEPTH

    def test_material_argument_warning(self, validator):
        """Test passing a material to a function parameter warns."""
        result = validator.validate("double(plywood)")
        assert result.valid is True
        assert any("receives material 'plywood'" in w for w in result.warnings)

    def test_shadowed_function_warning(self, fields, materials, make_function):
        """Test that a shared function hidden by a built-in warns."""
        functions = [make_function("sqrt", ["x"], "x")]
        result = validate_formula("sqrt(width)", FIELD_NAMES, materials, fields, functions)
        assert result.valid is True
        assert any("shadowed" in w for w in result.warnings)

    def test_error_inside_function_body(self, fields, materials, make_function):
        """Test that body references are checked after expansion."""
        functions = [make_function("bad", ["x"], "x * missing")]
        result = validate_formula("bad(width)", FIELD_NAMES, materials, fields, functions)
        assert result.error == ErrorKind.UNKNOWN_IDENTIFIER


class TestPropertyValidation:
    """Tests for dotted references."""

    def test_material_property(self, validator):
        """Test a property of a catalog material."""
        assert validator.validate("plywood.length * 2").valid is True

    def test_implicit_price(self, validator):
        """Test implicit price properties."""
        assert validator.validate("plywood.price_per_unit").valid is True

    def test_unknown_material_property(self, validator):
        """Test a property the material lacks."""
        result = validator.validate("plywood.density")
        assert result.error == ErrorKind.UNKNOWN_PROPERTY

    def test_unknown_material(self, validator):
        """Test a dotted reference on an unknown base."""
        result = validator.validate("oak.length")
        assert result.error == ErrorKind.UNKNOWN_IDENTIFIER
        assert 'Material variable "oak" not found' in result.message

    def test_material_field_property(self, validator):
        """Test properties of materials in the field's category."""
        assert validator.validate("sheet.thickness").valid is True

    def test_material_field_property_outside_category(self, validator):
        """Test a property no material in the category has."""
        result = validator.validate("sheet.density")
        assert result.error == ErrorKind.UNKNOWN_PROPERTY
        assert 'in category "sheet"' in result.message

    def test_property_of_plain_field(self, validator):
        """Test dotted access on a number field."""
        result = validator.validate("width.length")
        assert result.error == ErrorKind.UNKNOWN_PROPERTY

    def test_undefined_field_property_warns(self, materials):
        """Test properties of fields known by name only."""
        result = validate_formula("box.length", ["box"], materials)
        assert result.valid is True
        assert result.warnings


class TestOutputValidation:
    """Tests for computed output references."""

    def test_known_output(self, fields, materials):
        """Test referencing an earlier output."""
        result = validate_formula(
            "out.area * 2", FIELD_NAMES, materials, fields, output_names=["area"]
        )
        assert result.valid is True

    def test_output_via_field_names(self, materials):
        """Test outputs passed as out.-prefixed names."""
        assert validate_formula("out.area", ["out.area"], materials).valid is True

    def test_forward_reference(self, fields, materials):
        """Test referencing an output defined later."""
        result = validate_formula(
            "out.volume", FIELD_NAMES, materials, fields,
            output_names=["area"], later_output_names=["volume"],
        )
        assert result.error == ErrorKind.FORWARD_OUTPUT_REFERENCE

    def test_unknown_output_lists_available(self, fields, materials):
        """Test the message for an undefined output."""
        result = validate_formula(
            "out.nope", FIELD_NAMES, materials, fields, output_names=["area", "perimeter"]
        )
        assert result.error == ErrorKind.UNKNOWN_IDENTIFIER
        assert "Available computed outputs: area, perimeter" in result.message


class TestUnitValidation:
    """Tests for unit category checks during validation."""

    def test_adding_length_and_weight(self, validator):
        """Test incompatible addition."""
        result = validator.validate("width + mass")
        assert result.error == ErrorKind.UNIT_MISMATCH

    def test_output_units(self, fields, materials):
        """Test output categories take part in the check."""
        result = validate_formula(
            "out.area + width", FIELD_NAMES, materials, fields,
            output_names=["area"], output_units={"area": "m2"},
        )
        assert result.error == ErrorKind.UNIT_MISMATCH


class TestPreview:
    """Tests for preview evaluation."""

    def test_preview_with_values(self, validator):
        """Test that supplied values produce a preview."""
        result = validator.validate("width * height", {"width": 2, "height": 3})
        assert result.preview == 6.0

    def test_preview_with_defaults(self, validator):
        """Test that field defaults are used when no values are given."""
        assert validator.validate("qty * 10").preview == 10.0

    def test_no_preview_when_values_missing(self, validator):
        """Test that incomplete values skip the preview."""
        result = validator.validate("width * height", {"width": 2})
        assert result.valid is True
        assert result.preview is None
        assert result.preview_error is None

    def test_preview_error(self, validator):
        """Test a valid formula that fails on the preview values."""
        result = validator.validate("width / height", {"width": 2, "height": 0})
        assert result.valid is True
        assert result.preview is None
        assert result.preview_error == "Division by zero"

    @pytest.mark.parametrize(
        "formula",
        ["floor(1e308 * 10)", "ceil(1e308 * 10)", "sin(1e308 * 10)", "round(1, 1e308 * 10)"],
    )
    def test_preview_non_finite(self, formula):
        """Test that extreme values are reported on the preview, not raised."""
        result = validate_formula(formula, [], [])
        assert result.valid is True
        assert result.preview is None
        assert result.preview_error is not None

    @pytest.mark.parametrize(("formula", "expected"), [("round(5, -400)", 0.0), ("round(1, 400)", 1.0)])
    def test_preview_round_extreme_decimals(self, formula, expected):
        """Test round() previews with decimal places beyond a double's range."""
        result = validate_formula(formula, [], [])
        assert result.valid is True
        assert result.preview == expected

    def test_preview_disabled(self, validator, monkeypatch):
        """Test turning previews off."""
        monkeypatch.setattr(settings, "preview_enabled", False)
        result = validator.validate("width * height", {"width": 2, "height": 3})
        assert result.preview is None


class TestValidateFunction:
    """Tests for validate_function."""

    def test_valid_function(self, functions, materials):
        """Test a function over its parameters."""
        result = validate_function(functions[2], functions, materials)
        assert result.valid is True

    def test_body_uses_undeclared_name(self, functions, materials, make_function):
        """Test a body referencing something that is not a parameter."""
        result = validate_function(make_function("f", ["x"], "x * y"), functions, materials)
        assert result.error == ErrorKind.UNKNOWN_IDENTIFIER

    @pytest.mark.parametrize("name", ["2fast", "my-func", "sqrt", "pi"])
    def test_invalid_names(self, functions, materials, make_function, name):
        """Test malformed and reserved function names."""
        result = validate_function(make_function(name, ["x"], "x"), functions, materials)
        assert result.error == ErrorKind.INVALID_NAME

    def test_duplicate_parameter(self, functions, materials, make_function):
        """Test parameters must be unique."""
        result = validate_function(make_function("f", ["x", "x"], "x"), functions, materials)
        assert result.error == ErrorKind.INVALID_NAME

    def test_cycle_through_registry(self, materials, make_function):
        """Test an edit that would close a cycle in the registry."""
        registry = [make_function("a", ["x"], "b(x)"), make_function("b", ["x"], "x")]
        edited = make_function("b", ["x"], "a(x) + 1")
        result = validate_function(edited, registry, materials)
        assert result.error == ErrorKind.CIRCULAR_FUNCTION_REFERENCE
        assert "b → a → b" in result.message
