"""Unit tests for the quote calculation service."""

import logging

import pytest

from estimator.core.exceptions import ErrorKind
from estimator.schemas import CalculationModule, ComputedOutput, Field, QuoteModuleInstance
from estimator.services.quote_calculation import QuoteCalculator, calculate_quote


@pytest.fixture
def calculator(modules, materials, functions):
    return QuoteCalculator(modules, materials, functions)


def _by_id(results):
    return {r.instance_id: r for r in results}


class TestQuoteCalculation:
    """Tests for QuoteCalculator.calculate."""

    def test_costs_and_outputs(self, calculator, panel_instance, trim_instance):
        """Test calculating independent instances."""
        results = _by_id(calculator.calculate([panel_instance, trim_instance]))

        panel = results["inst-panel"]
        assert panel.error is None
        assert panel.outputs == {"out.area": 6.0, "out.perimeter": 10.0}
        assert panel.cost == pytest.approx(275.0)

        trim = results["inst-trim"]
        assert trim.cost == pytest.approx(48.0)
        assert trim.outputs == {"out.double_length": 8.0}

    def test_results_keep_instance_order(self, calculator, panel_instance, trim_instance):
        """Test one result per instance, in input order."""
        results = calculator.calculate([trim_instance, panel_instance])
        assert [r.instance_id for r in results] == ["inst-trim", "inst-panel"]

    def test_link_to_output(self, calculator, panel_instance, trim_instance, make_link):
        """Test a field mirroring another instance's computed output."""
        trim_instance.field_links["length"] = make_link("inst-panel", "out.area")
        results = _by_id(calculator.calculate([trim_instance, panel_instance]))

        trim = results["inst-trim"]
        assert trim.field_values["length"] == 6.0
        assert trim.cost == pytest.approx(72.0)
        assert trim.outputs["out.double_length"] == 12.0
        assert trim.link_issues == []

    def test_link_to_field(self, calculator, panel_instance, trim_instance, make_link):
        """Test a field mirroring another instance's field."""
        panel_instance.field_links["width"] = make_link("inst-trim", "length")
        results = _by_id(calculator.calculate([panel_instance, trim_instance]))
        assert results["inst-panel"].outputs["out.area"] == 12.0

    def test_cycle_through_outputs(self, calculator, panel_instance, trim_instance, make_link):
        """Test that a loop through computed outputs terminates and is flagged."""
        panel_instance.field_links["width"] = make_link("inst-trim", "out.double_length")
        trim_instance.field_links["length"] = make_link("inst-panel", "out.area")
        results = _by_id(calculator.calculate([panel_instance, trim_instance]))

        trim = results["inst-trim"]
        assert [i.kind for i in trim.link_issues] == [ErrorKind.CIRCULAR_LINK]
        assert trim.link_issues[0].field_name == "length"
        assert trim.field_values["length"] == 4

        panel = results["inst-panel"]
        assert panel.field_values["width"] == 8.0
        assert panel.link_issues == []

    def test_broken_link_uses_local_value(self, calculator, panel_instance, make_link):
        """Test a link to a deleted instance."""
        panel_instance.field_links["width"] = make_link("inst-deleted", "width")
        result = calculator.calculate([panel_instance])[0]
        assert result.field_values["width"] == 2
        assert result.link_issues[0].kind == ErrorKind.BROKEN_LINK
        assert result.cost == pytest.approx(275.0)


class TestCalculationFailures:
    """Tests for per-instance error isolation."""

    def test_failing_formula_is_isolated(
        self, materials, panel_module, trim_module, panel_instance, trim_instance, caplog
    ):
        """Test that one failing formula does not affect other instances."""
        broken = trim_module.model_copy(update={"formula": "length / glue"})
        calculator = QuoteCalculator([panel_module, broken], materials)
        with caplog.at_level(logging.WARNING):
            results = _by_id(calculator.calculate([panel_instance, trim_instance]))

        assert results["inst-trim"].error == ErrorKind.DIVISION_BY_ZERO
        assert results["inst-trim"].cost == 0.0
        assert results["inst-trim"].message == "Division by zero"
        assert results["inst-panel"].error is None
        assert results["inst-panel"].cost == pytest.approx(275.0)
        assert "Module formula evaluation failed" in caplog.text

    def test_missing_required_field(self, calculator, panel_instance):
        """Test required fields without values."""
        del panel_instance.field_values["height"]
        result = calculator.calculate([panel_instance])[0]
        assert result.error == ErrorKind.MISSING_VALUE
        assert result.missing_fields == ["height"]
        assert result.cost == 0.0
        assert result.message == "Missing required fields: height"

    def test_unknown_module(self, calculator):
        """Test an instance of a module that does not exist."""
        orphan = QuoteModuleInstance(id="inst-orphan", module_id="mod-nope", field_values={"x": 1})
        result = calculator.calculate([orphan])[0]
        assert result.error == ErrorKind.UNKNOWN_IDENTIFIER
        assert result.field_values == {"x": 1}

    def test_empty_formula(self, materials, trim_module, trim_instance):
        """Test a module without a cost formula."""
        module = trim_module.model_copy(update={"formula": "  "})
        result = calculate_quote([trim_instance], [module], materials)[0]
        assert result.error is None
        assert result.cost == 0.0
        assert result.outputs == {"out.double_length": 8.0}

    def test_output_errors_are_reported(self, materials, panel_module, panel_instance):
        """Test failing computed outputs surface on the result."""
        module = panel_module.model_copy(update={"formula": "1"})
        module.computed_outputs[0].expression = "width / 0"
        result = calculate_quote([panel_instance], [module], materials)[0]
        assert result.outputs["out.area"] == 0.0
        assert result.output_errors[0].error == ErrorKind.DIVISION_BY_ZERO
        assert result.cost == 1.0

    def test_calculator_is_reusable(self, calculator, panel_instance):
        """Test that state does not leak between calls."""
        first = calculator.calculate([panel_instance])[0]
        panel_instance.field_values["width"] = 4
        second = calculator.calculate([panel_instance])[0]
        assert first.outputs["out.area"] == 6.0
        assert second.outputs["out.area"] == 12.0

    def test_non_finite_formula_is_isolated(
        self, materials, panel_module, trim_module, panel_instance, trim_instance
    ):
        """Test that an overflowing built-in call fails only its own instance."""
        broken = trim_module.model_copy(update={"formula": "floor(length * 1e308 * 10)"})
        results = _by_id(
            calculate_quote([panel_instance, trim_instance], [panel_module, broken], materials)
        )
        assert results["inst-trim"].error == ErrorKind.NON_FINITE_RESULT
        assert results["inst-trim"].cost == 0.0
        assert results["inst-panel"].cost == pytest.approx(275.0)

    def test_non_finite_output_falls_back(self, materials, trim_module, trim_instance):
        """Test that an overflowing computed output is reported and set to zero."""
        module = trim_module.model_copy(update={"formula": "1"})
        module.computed_outputs[0].expression = "sin(length * 1e308 * 10)"
        result = calculate_quote([trim_instance], [module], materials)[0]
        assert result.outputs["out.double_length"] == 0.0
        assert result.output_errors[0].error == ErrorKind.NON_FINITE_RESULT
        assert result.cost == 1.0


class TestLinkedUnits:
    """Tests for links between fields with different display units."""

    @pytest.fixture
    def unit_modules(self):
        return [
            CalculationModule(
                id="mod-m",
                name="Metres",
                fields=[Field(id="f-w", variable_name="width", unit_symbol="m")],
                formula="width",
                computed_outputs=[ComputedOutput(id="o-w", variable_name="double", expression="width * 2")],
            ),
            CalculationModule(
                id="mod-mm",
                name="Millimetres",
                fields=[Field(id="f-w", variable_name="width", unit_symbol="mm")],
                formula="width",
            ),
        ]

    def test_field_link_converts_units(self, unit_modules, make_link):
        """Test an mm field mirroring an m field keeps the same length."""
        instances = [
            QuoteModuleInstance(id="a", module_id="mod-m", field_values={"width": 2}),
            QuoteModuleInstance(
                id="b",
                module_id="mod-mm",
                field_values={"width": 5},
                field_links={"width": make_link("a", "width")},
            ),
        ]
        results = _by_id(calculate_quote(instances, unit_modules, []))
        assert results["a"].cost == pytest.approx(2.0)
        assert results["b"].field_values["width"] == pytest.approx(2000.0)
        assert results["b"].cost == pytest.approx(2.0)

    def test_reverse_link_converts_units(self, unit_modules, make_link):
        """Test an m field mirroring an mm field."""
        instances = [
            QuoteModuleInstance(
                id="a",
                module_id="mod-m",
                field_values={"width": 9},
                field_links={"width": make_link("b", "width")},
            ),
            QuoteModuleInstance(id="b", module_id="mod-mm", field_values={"width": 500}),
        ]
        results = _by_id(calculate_quote(instances, unit_modules, []))
        assert results["a"].field_values["width"] == pytest.approx(0.5)
        assert results["a"].outputs["out.double"] == pytest.approx(1.0)
        assert results["b"].cost == pytest.approx(0.5)

    def test_output_link_converts_units(self, unit_modules, make_link):
        """Test an mm field mirroring a computed output held in base units."""
        instances = [
            QuoteModuleInstance(id="a", module_id="mod-m", field_values={"width": 2}),
            QuoteModuleInstance(id="b", module_id="mod-mm", field_links={"width": make_link("a", "out.double")}),
        ]
        results = _by_id(calculate_quote(instances, unit_modules, []))
        assert results["b"].field_values["width"] == pytest.approx(4000.0)
        assert results["b"].cost == pytest.approx(4.0)
