"""Formula parser for the estimator engine.

Parses formula strings into an AST using the Lark parser.
"""

from collections.abc import Iterator
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from lark import Lark, Transformer, v_args
from lark.exceptions import UnexpectedCharacters, UnexpectedEOF, UnexpectedInput, UnexpectedToken

from estimator.core.exceptions import FormulaInternalError, FormulaSyntaxError
from estimator.formula.grammar import FORMULA_GRAMMAR

OUTPUT_NAMESPACE = "out"


# AST Node types
@dataclass
class NumberNode:
    value: float


@dataclass
class VariableNode:
    name: str


@dataclass
class PropertyRefNode:
    base: str
    property: str

    @property
    def full(self) -> str:
        return f"{self.base}.{self.property}"


@dataclass
class OutputRefNode:
    name: str

    @property
    def full(self) -> str:
        return f"{OUTPUT_NAMESPACE}.{self.name}"


@dataclass
class FunctionCallNode:
    name: str
    arguments: list[Any]


@dataclass
class BinaryOpNode:
    operator: str
    left: Any
    right: Any


@dataclass
class UnaryOpNode:
    operator: str
    operand: Any


COMPARISON_OPERATORS = frozenset({"==", "!=", "<", ">", "<=", ">="})


class FormulaTransformer(Transformer):
    """Transform Lark parse tree into AST nodes."""

    @v_args(inline=True)
    def number(self, token):
        return NumberNode(float(token))

    @v_args(inline=True)
    def variable(self, token):
        return VariableNode(str(token))

    @v_args(inline=True)
    def property_ref(self, token):
        base, prop = str(token).split(".")
        if base == OUTPUT_NAMESPACE:
            return OutputRefNode(prop)
        return PropertyRefNode(base, prop)

    def function_call(self, items):
        name = str(items[0])
        args = list(items[1]) if len(items) > 1 and items[1] is not None else []
        return FunctionCallNode(name, args)

    def arguments(self, items):
        return list(items)

    # Binary operators
    @v_args(inline=True)
    def add(self, left, right):
        return BinaryOpNode("+", left, right)

    @v_args(inline=True)
    def sub(self, left, right):
        return BinaryOpNode("-", left, right)

    @v_args(inline=True)
    def mul(self, left, right):
        return BinaryOpNode("*", left, right)

    @v_args(inline=True)
    def div(self, left, right):
        return BinaryOpNode("/", left, right)

    # Comparison operators
    @v_args(inline=True)
    def eq(self, left, right):
        return BinaryOpNode("==", left, right)

    @v_args(inline=True)
    def ne(self, left, right):
        return BinaryOpNode("!=", left, right)

    @v_args(inline=True)
    def lt(self, left, right):
        return BinaryOpNode("<", left, right)

    @v_args(inline=True)
    def gt(self, left, right):
        return BinaryOpNode(">", left, right)

    @v_args(inline=True)
    def le(self, left, right):
        return BinaryOpNode("<=", left, right)

    @v_args(inline=True)
    def ge(self, left, right):
        return BinaryOpNode(">=", left, right)

    # Unary operators
    @v_args(inline=True)
    def neg(self, operand):
        return UnaryOpNode("-", operand)

    @v_args(inline=True)
    def pos(self, operand):
        return operand  # Positive is a no-op


def _context(formula: str, pos: int | None) -> str:
    """Snippet of the formula around a character position."""
    if pos is None or pos < 0 or pos >= len(formula):
        return ""
    start = max(0, pos - 10)
    end = min(len(formula), pos + 10)
    return f' near "{formula[start:end]}"'


def _translate_error(error: UnexpectedInput, formula: str) -> str:
    """Turn a Lark error into a message a formula author can act on."""
    context = _context(formula, getattr(error, "pos_in_stream", None))

    if isinstance(error, UnexpectedCharacters):
        return f'Syntax error{context}: Unexpected character "{formula[error.pos_in_stream]}".'

    if isinstance(error, UnexpectedEOF) or (
        isinstance(error, UnexpectedToken) and error.token.type == "$END"
    ):
        return "Formula is incomplete. Check for missing values or operators at the end."

    if isinstance(error, UnexpectedToken):
        token = error.token
        if token.type == "NUMBER":
            return (
                f"Syntax error{context}: Unexpected number. "
                "Check for missing operators (+, -, *, /) between values."
            )
        if token.type in ("IDENTIFIER", "DOTTED_NAME"):
            return (
                f"Syntax error{context}: Unexpected variable or function. "
                "Check for missing operators or invalid function names."
            )
        if token.type == "RPAR":
            return (
                f"Unexpected closing parenthesis{context}. "
                'Check for extra ")" or missing opening "(".'
            )
        return f'Syntax error{context}: Unexpected "{token}". Check your formula syntax.'

    return f"Formula syntax error{context}: {error}"


class FormulaParser:
    """
    Parser for estimator formulas.

    Parses formula strings into an AST that can be validated and evaluated.
    """

    def __init__(self):
        self._parser = Lark(
            FORMULA_GRAMMAR,
            parser="lalr",
            transformer=FormulaTransformer(),
        )

    def parse(self, formula: str) -> Any:
        """
        Parse a formula string into an AST.

        Args:
            formula: Formula string to parse

        Returns:
            AST root node

        Raises:
            FormulaSyntaxError: If formula syntax is invalid
        """
        if formula is None or not formula.strip():
            raise FormulaSyntaxError("Formula is empty")

        depth = 0
        for char in formula:
            if char == "(":
                depth += 1
            elif char == ")":
                depth -= 1
                if depth < 0:
                    raise FormulaSyntaxError(
                        'Unexpected closing parenthesis. Check for extra ")" or missing opening "(".'
                    )
        if depth > 0:
            raise FormulaSyntaxError(
                'Missing closing parenthesis. Check that all opening parentheses "(" '
                'have matching closing ones ")".'
            )

        try:
            return self._parser.parse(formula)
        except UnexpectedInput as e:
            raise FormulaSyntaxError(_translate_error(e, formula), details={"formula": formula})

    def validate(self, formula: str) -> tuple[bool, str | None]:
        """
        Validate formula syntax only.

        Args:
            formula: Formula string to validate

        Returns:
            Tuple of (is_valid, error_message)
        """
        try:
            self.parse(formula)
            return True, None
        except FormulaSyntaxError as e:
            return False, e.message


_parser: FormulaParser | None = None


def get_parser() -> FormulaParser:
    """Lazy load the shared parser; building LALR tables is not free."""
    global _parser
    if _parser is None:
        _parser = FormulaParser()
    return _parser


@lru_cache(maxsize=1024)
def parse_formula(formula: str) -> Any:
    """
    Parse a formula with the shared parser, caching trees by formula text.

    Returned trees are shared between callers and must not be mutated.
    """
    return get_parser().parse(formula)


def iter_nodes(node: Any) -> Iterator[Any]:
    """Yield every node of a tree, parents before children."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        if isinstance(current, BinaryOpNode):
            stack.append(current.right)
            stack.append(current.left)
        elif isinstance(current, UnaryOpNode):
            stack.append(current.operand)
        elif isinstance(current, FunctionCallNode):
            stack.extend(reversed(current.arguments))


_PRECEDENCE = {"==": 1, "!=": 1, "<": 1, ">": 1, "<=": 1, ">=": 1, "+": 2, "-": 2, "*": 3, "/": 3}


def format_expression(node: Any) -> str:
    """Render a tree back to formula text with minimal parentheses."""
    if isinstance(node, NumberNode):
        value = node.value
        return str(int(value)) if value.is_integer() and abs(value) < 1e15 else repr(value)
    if isinstance(node, VariableNode):
        return node.name
    if isinstance(node, (PropertyRefNode, OutputRefNode)):
        return node.full
    if isinstance(node, FunctionCallNode):
        return f"{node.name}({', '.join(format_expression(a) for a in node.arguments)})"
    if isinstance(node, UnaryOpNode):
        operand = format_expression(node.operand)
        if isinstance(node.operand, BinaryOpNode):
            operand = f"({operand})"
        return f"{node.operator}{operand}"
    if isinstance(node, BinaryOpNode):
        prec = _PRECEDENCE[node.operator]
        left = format_expression(node.left)
        right = format_expression(node.right)
        if isinstance(node.left, BinaryOpNode) and _PRECEDENCE[node.left.operator] < prec:
            left = f"({left})"
        # Right operand of a left-associative operator needs parens at equal precedence
        if isinstance(node.right, BinaryOpNode) and _PRECEDENCE[node.right.operator] <= prec:
            right = f"({right})"
        return f"{left} {node.operator} {right}"
    raise FormulaInternalError(f"Unknown node type: {type(node).__name__}")
