"""Shared function dependency tracking.

Tracks which user-defined functions call which, for circular reference
detection and dependency-ordered validation.
"""

from collections import defaultdict, deque
from collections.abc import Iterable

from estimator.core.exceptions import FormulaSyntaxError
from estimator.formula.functions import is_builtin
from estimator.formula.parser import FunctionCallNode, iter_nodes, parse_formula
from estimator.schemas.function import SharedFunction


def collect_function_calls(formula: str, known: set[str] | None = None) -> set[str]:
    """
    Names of user-defined functions called by a formula.

    Args:
        formula: Formula text
        known: If given, only names in this set are returned

    Returns:
        Set of called function names (empty if the formula does not parse)
    """
    try:
        tree = parse_formula(formula)
    except FormulaSyntaxError:
        return set()
    calls = {
        node.name
        for node in iter_nodes(tree)
        if isinstance(node, FunctionCallNode) and not is_builtin(node.name)
    }
    if known is not None:
        calls &= known
    return calls


class FunctionDependencyGraph:
    """
    Track calls between shared functions.

    Maintains a bidirectional graph:
    - callers: function -> set of functions that call it
    - callees: function -> set of functions it calls
    """

    def __init__(self):
        """Initialize empty dependency graph."""
        # If function A changes, every function in callers[A] must be revalidated
        self.callers: dict[str, set[str]] = defaultdict(set)

        # To expand function A, every function in callees[A] must be expanded
        self.callees: dict[str, set[str]] = defaultdict(set)

    @classmethod
    def from_functions(cls, functions: Iterable[SharedFunction]) -> "FunctionDependencyGraph":
        """Build the graph for a function registry without rejecting cycles."""
        functions = list(functions)
        known = {f.name for f in functions}
        graph = cls()
        for func in functions:
            graph._set_calls(func.name, collect_function_calls(func.formula, known))
        return graph

    def _set_calls(self, name: str, calls: set[str]) -> None:
        for old in self.callees.get(name, set()):
            self.callers[old].discard(name)
        self.callees[name] = set(calls)
        for callee in calls:
            self.callers[callee].add(name)

    def add_function(self, name: str, calls: set[str]) -> tuple[bool, str | None]:
        """
        Add or replace a function in the graph.

        Args:
            name: Function name
            calls: Names of functions its formula calls

        Returns:
            Tuple of (success, error_message)
        """
        if self.detect_circular_reference(name, calls):
            return False, "Circular reference detected in function dependencies"
        self._set_calls(name, calls)
        return True, None

    def remove_function(self, name: str) -> None:
        """Remove a function from the graph."""
        if name in self.callees:
            for callee in self.callees[name]:
                self.callers[callee].discard(name)
            del self.callees[name]
        self.callers.pop(name, None)

    def get_affected_functions(self, changed: str) -> list[str]:
        """
        Functions that (transitively) call a changed function.

        Uses BFS over the callers mapping.
        """
        affected = []
        to_process = deque([changed])
        seen = set()

        while to_process:
            current = to_process.popleft()
            if current in seen:
                continue
            seen.add(current)
            for caller in sorted(self.callers[current]):
                if caller not in seen:
                    affected.append(caller)
                    to_process.append(caller)

        return affected

    def get_evaluation_order(self, names: set[str]) -> list[str]:
        """
        Order functions so every callee precedes its callers.

        Uses topological sort (Kahn's algorithm).

        Returns:
            Ordered list of names, or empty list if a cycle exists
        """
        in_degree = {name: 0 for name in names}
        for name in names:
            for callee in self.callees.get(name, set()):
                if callee in names:
                    in_degree[name] += 1

        queue = deque(sorted(n for n in names if in_degree[n] == 0))
        result = []
        while queue:
            name = queue.popleft()
            result.append(name)
            for caller in sorted(self.callers[name]):
                if caller in in_degree:
                    in_degree[caller] -= 1
                    if in_degree[caller] == 0:
                        queue.append(caller)

        if len(result) != len(names):
            return []
        return result

    def detect_circular_reference(self, name: str, calls: set[str]) -> bool:
        """
        Check if giving `name` these callees would create a cycle.

        Uses DFS over the callees mapping.
        """
        if not calls:
            return False
        if name in calls:
            return True

        visited = set()
        to_check = list(calls)
        while to_check:
            current = to_check.pop()
            if current == name:
                return True
            if current in visited:
                continue
            visited.add(current)
            to_check.extend(self.callees.get(current, set()))

        return False

    def find_cycle(self, start: str) -> list[str] | None:
        """
        Find a call chain from `start` back to itself.

        Returns:
            The chain including the repeated name at both ends, or None
        """
        path: list[str] = [start]
        on_path = {start}
        iterators = [iter(sorted(self.callees.get(start, set())))]
        visited: set[str] = set()

        while iterators:
            callee = next(iterators[-1], None)
            if callee is None:
                iterators.pop()
                done = path.pop()
                on_path.discard(done)
                visited.add(done)
                continue
            if callee == start:
                return path + [start]
            if callee in on_path or callee in visited:
                continue
            path.append(callee)
            on_path.add(callee)
            iterators.append(iter(sorted(self.callees.get(callee, set()))))

        return None

    def get_callees(self, name: str) -> set[str]:
        """Direct callees of a function."""
        return self.callees.get(name, set()).copy()

    def get_callers(self, name: str) -> set[str]:
        """Direct callers of a function."""
        return self.callers.get(name, set()).copy()

    def clear(self) -> None:
        """Clear all dependencies from the graph."""
        self.callers.clear()
        self.callees.clear()

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"FunctionDependencyGraph("
            f"functions={len(self.callees)}, "
            f"edges={sum(len(c) for c in self.callees.values())})"
        )
