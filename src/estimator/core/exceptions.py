"""
Custom exceptions for the estimator engine.

Provides a hierarchy of exceptions that carry a machine-readable error kind
and structured error information. Every formula and link failure is a
recoverable condition: public entry points turn these into structured
results instead of letting them reach the host application.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Machine-readable error kinds surfaced to callers."""

    SYNTAX_ERROR = "SyntaxError"
    UNKNOWN_IDENTIFIER = "UnknownIdentifier"
    UNKNOWN_PROPERTY = "UnknownProperty"
    ARITY_MISMATCH = "ArityMismatch"
    DIVISION_BY_ZERO = "DivisionByZero"
    CIRCULAR_FUNCTION_REFERENCE = "CircularFunctionReference"
    EXCESSIVE_EXPANSION_DEPTH = "ExcessiveExpansionDepth"
    TYPE_MISMATCH = "TypeMismatch"
    CIRCULAR_LINK = "CircularLink"
    BROKEN_LINK = "BrokenLink"
    FORWARD_OUTPUT_REFERENCE = "ForwardOutputReference"
    UNIT_MISMATCH = "UnitMismatch"
    MISSING_VALUE = "MissingValue"
    NON_FINITE_RESULT = "NonFiniteResult"
    SELF_LINK = "SelfLink"
    INVALID_NAME = "InvalidName"


class EstimatorException(Exception):
    """
    Base exception for all estimator errors.

    All custom exceptions should inherit from this class.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize exception.

        Args:
            message: Human-readable error message
            code: Machine-readable error code
            details: Additional error details
        """
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for host consumption."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


class FormulaInternalError(EstimatorException):
    """Internal invariant violation (e.g. a malformed tree node). Not recoverable."""


# =============================================================================
# Formula Errors
# =============================================================================


class FormulaError(EstimatorException):
    """Base class for recoverable formula errors."""

    kind: ErrorKind = ErrorKind.SYNTAX_ERROR

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code=self.kind.value, details=details)


class FormulaSyntaxError(FormulaError):
    """Malformed token stream or unbalanced parentheses."""

    kind = ErrorKind.SYNTAX_ERROR


class UnknownIdentifierError(FormulaError):
    """Identifier does not resolve to a field, material, function or constant."""

    kind = ErrorKind.UNKNOWN_IDENTIFIER

    def __init__(self, name: str, message: str | None = None) -> None:
        super().__init__(
            message or f"Undefined variable: {name}",
            details={"name": name},
        )


class UnknownPropertyError(FormulaError):
    """Dotted reference names a property that does not exist."""

    kind = ErrorKind.UNKNOWN_PROPERTY

    def __init__(self, base: str, prop: str, message: str | None = None) -> None:
        super().__init__(
            message or f'Property "{prop}" not found on "{base}"',
            details={"base": base, "property": prop},
        )


class ArityMismatchError(FormulaError):
    """Function called with the wrong number of arguments."""

    kind = ErrorKind.ARITY_MISMATCH

    def __init__(self, name: str, expected: str, received: int) -> None:
        super().__init__(
            f"Function '{name}' expects {expected} argument(s), but got {received}",
            details={"function": name, "expected": expected, "received": received},
        )


class DivisionByZeroError(FormulaError):
    """Division with a zero divisor."""

    kind = ErrorKind.DIVISION_BY_ZERO

    def __init__(self, message: str = "Division by zero") -> None:
        super().__init__(message)


class CircularFunctionReferenceError(FormulaError):
    """User-defined function expands into itself."""

    kind = ErrorKind.CIRCULAR_FUNCTION_REFERENCE

    def __init__(self, chain: list[str]) -> None:
        super().__init__(
            f"Circular function reference: {' → '.join(chain)}",
            details={"chain": chain},
        )


class ExcessiveExpansionDepthError(FormulaError):
    """Function expansion exceeded the configured depth or size bound."""

    kind = ErrorKind.EXCESSIVE_EXPANSION_DEPTH


class TypeMismatchError(FormulaError):
    """Value or field type cannot be used where it appears."""

    kind = ErrorKind.TYPE_MISMATCH


class ForwardOutputReferenceError(FormulaError):
    """Computed output references itself or an output declared after it."""

    kind = ErrorKind.FORWARD_OUTPUT_REFERENCE

    def __init__(self, name: str) -> None:
        super().__init__(
            f"Computed output '{name}' is defined after this one or is the same output. "
            "Computed outputs can only reference previously defined computed outputs.",
            details={"output": name},
        )


class UnitMismatchError(FormulaError):
    """Operands carry incompatible unit categories."""

    kind = ErrorKind.UNIT_MISMATCH


class MissingValueError(FormulaError):
    """A known identifier has no value in the evaluation context."""

    kind = ErrorKind.MISSING_VALUE

    def __init__(self, name: str, message: str | None = None) -> None:
        super().__init__(
            message or f"Missing value for variable: {name}",
            details={"name": name},
        )


class NonFiniteResultError(FormulaError):
    """Evaluation produced NaN/infinity or left a function's domain."""

    kind = ErrorKind.NON_FINITE_RESULT


class InvalidNameError(FormulaError):
    """Variable, parameter or output name violates naming rules."""

    kind = ErrorKind.INVALID_NAME


# =============================================================================
# Link Errors
# =============================================================================


class LinkError(EstimatorException):
    """Base class for field link errors."""

    kind: ErrorKind = ErrorKind.BROKEN_LINK

    def __init__(self, message: str, path: list[str] | None = None) -> None:
        super().__init__(message=message, code=self.kind.value, details={"path": path or []})
        self.path = path or []


class CircularLinkError(LinkError):
    """Link chain returns to a node already on the current path."""

    kind = ErrorKind.CIRCULAR_LINK


class BrokenLinkError(LinkError):
    """Link target instance or field does not exist."""

    kind = ErrorKind.BROKEN_LINK


# =============================================================================
# Unit Errors
# =============================================================================


class UnitConversionError(EstimatorException):
    """Conversion requested between unknown symbols or across categories."""

    def __init__(self, message: str, from_unit: str, to_unit: str) -> None:
        super().__init__(
            message=message,
            code="UNIT_CONVERSION",
            details={"from_unit": from_unit, "to_unit": to_unit},
        )
