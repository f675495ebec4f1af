"""User-defined function expansion.

Calls to shared functions are expanded syntactically: the callee's formula is
parsed and each declared parameter is replaced by the caller's argument
sub-expression. Expansion is recursive, guarded by an explicit call stack
(cycles) and by depth and size limits (termination on pathological input).
"""

from collections.abc import Iterable, Mapping
from typing import Any

from estimator.core.config import settings
from estimator.core.exceptions import (
    ArityMismatchError,
    CircularFunctionReferenceError,
    ExcessiveExpansionDepthError,
    FormulaSyntaxError,
    UnknownIdentifierError,
)
from estimator.core.logging import get_logger
from estimator.formula.functions import is_builtin
from estimator.formula.parser import (
    BinaryOpNode,
    FunctionCallNode,
    UnaryOpNode,
    VariableNode,
    parse_formula,
)
from estimator.schemas.function import SharedFunction

logger = get_logger(__name__)


class FunctionResolver:
    """
    Expands shared-function calls into plain expression trees.

    The resolver holds no state between top-level expansions; the node
    budget is reset for every call to `expand` or `expand_tree`.
    """

    def __init__(
        self,
        functions: Iterable[SharedFunction] | Mapping[str, SharedFunction] | None = None,
        max_depth: int | None = None,
        max_nodes: int | None = None,
    ):
        if functions is None:
            self._functions: dict[str, SharedFunction] = {}
        elif isinstance(functions, Mapping):
            self._functions = dict(functions)
        else:
            self._functions = {f.name: f for f in functions}
        self.max_depth = settings.max_function_expansion_depth if max_depth is None else max_depth
        self.max_nodes = settings.max_expansion_nodes if max_nodes is None else max_nodes
        self._node_count = 0

    def is_user_function(self, name: str) -> bool:
        """Built-ins shadow shared functions of the same name."""
        return name in self._functions and not is_builtin(name)

    def get_function(self, name: str) -> SharedFunction | None:
        return self._functions.get(name)

    def expand(
        self,
        function_name: str,
        args: list[Any],
        call_stack: tuple[str, ...] = (),
    ) -> Any:
        """
        Expand one call to a shared function.

        Args:
            function_name: Name of the called function
            args: Argument sub-expressions from the call site (unevaluated)
            call_stack: Names of functions currently being expanded

        Returns:
            Expression tree equivalent to the call

        Raises:
            CircularFunctionReferenceError: If the function is already on the stack
            ExcessiveExpansionDepthError: If depth or size limits are exceeded
            ArityMismatchError: If the argument count does not match
            UnknownIdentifierError: If the function does not exist
        """
        if not call_stack:
            self._node_count = 0
        return self._expand_call(function_name, args, call_stack)

    def expand_tree(self, tree: Any, call_stack: tuple[str, ...] = ()) -> Any:
        """Expand every shared-function call in a tree."""
        self._node_count = 0
        return self._substitute(tree, {}, call_stack)

    def _expand_call(self, name: str, args: list[Any], call_stack: tuple[str, ...]) -> Any:
        if name in call_stack:
            chain = list(call_stack[call_stack.index(name):]) + [name]
            raise CircularFunctionReferenceError(chain)
        if len(call_stack) >= self.max_depth:
            raise ExcessiveExpansionDepthError(
                f"Function expansion exceeded maximum depth of {self.max_depth} "
                f"({' → '.join(call_stack + (name,))})",
                details={"depth": len(call_stack), "function": name},
            )

        func = self._functions.get(name)
        if func is None:
            raise UnknownIdentifierError(name, f"Function '{name}' not found")
        if len(args) != len(func.parameters):
            raise ArityMismatchError(name, str(len(func.parameters)), len(args))

        try:
            body = parse_formula(func.formula)
        except FormulaSyntaxError as e:
            raise FormulaSyntaxError(
                f"In function '{name}': {e.message}", details={"function": name}
            )

        bindings = dict(zip(func.parameter_names, args))
        logger.debug(
            "Expanding function call",
            extra={"function": name, "depth": len(call_stack) + 1},
        )
        return self._substitute(body, bindings, call_stack + (name,))

    def _count(self) -> None:
        self._node_count += 1
        if self._node_count > self.max_nodes:
            raise ExcessiveExpansionDepthError(
                f"Function expansion exceeded maximum size of {self.max_nodes} nodes",
                details={"max_nodes": self.max_nodes},
            )

    def _substitute(self, node: Any, bindings: dict[str, Any], call_stack: tuple[str, ...]) -> Any:
        """Rebuild a tree with parameters bound and shared calls expanded."""
        self._count()

        if isinstance(node, VariableNode):
            # Bound arguments belong to the caller's scope and are already expanded
            if node.name in bindings:
                return bindings[node.name]
            return node

        if isinstance(node, BinaryOpNode):
            return BinaryOpNode(
                node.operator,
                self._substitute(node.left, bindings, call_stack),
                self._substitute(node.right, bindings, call_stack),
            )

        if isinstance(node, UnaryOpNode):
            return UnaryOpNode(node.operator, self._substitute(node.operand, bindings, call_stack))

        if isinstance(node, FunctionCallNode):
            args = [self._substitute(arg, bindings, call_stack) for arg in node.arguments]
            if self.is_user_function(node.name):
                return self._expand_call(node.name, args, call_stack)
            return FunctionCallNode(node.name, args)

        return node
