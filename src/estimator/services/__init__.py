"""Services orchestrating the formula and linking layers."""

from estimator.services.quote_calculation import QuoteCalculator, calculate_quote

__all__ = ["QuoteCalculator", "calculate_quote"]
