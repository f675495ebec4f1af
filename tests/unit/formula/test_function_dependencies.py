"""Unit tests for shared function dependency tracking."""

from estimator.formula.dependencies import FunctionDependencyGraph, collect_function_calls


class TestCollectFunctionCalls:
    """Tests for collect_function_calls."""

    def test_collects_user_calls_only(self):
        """Test that built-in calls are ignored."""
        assert collect_function_calls("round(area(w, h)) + double(x)") == {"area", "double"}

    def test_filters_to_known_names(self):
        """Test restricting results to a registry."""
        assert collect_function_calls("area(w, h) + missing(1)", known={"area"}) == {"area"}

    def test_unparseable_formula(self):
        """Test that syntax errors yield no calls."""
        assert collect_function_calls("area(") == set()


class TestFunctionDependencyGraph:
    """Tests for FunctionDependencyGraph."""

    def test_from_functions(self, functions):
        """Test building the graph from a registry."""
        graph = FunctionDependencyGraph.from_functions(functions)
        assert graph.get_callees("panel_cost") == {"area"}
        assert graph.get_callers("area") == {"panel_cost"}
        assert graph.get_callees("double") == set()

    def test_add_function_rejects_cycle(self):
        """Test that adding a closing edge fails."""
        graph = FunctionDependencyGraph()
        assert graph.add_function("a", {"b"}) == (True, None)
        assert graph.add_function("b", {"c"}) == (True, None)
        success, error = graph.add_function("c", {"a"})
        assert success is False
        assert "Circular reference" in error
        assert graph.get_callees("c") == set()

    def test_add_function_rejects_self_call(self):
        """Test a function calling itself."""
        graph = FunctionDependencyGraph()
        success, _ = graph.add_function("a", {"a"})
        assert success is False

    def test_replacing_calls_updates_callers(self):
        """Test that re-adding a function drops stale edges."""
        graph = FunctionDependencyGraph()
        graph.add_function("a", {"b"})
        graph.add_function("a", {"c"})
        assert graph.get_callers("b") == set()
        assert graph.get_callers("c") == {"a"}

    def test_find_cycle(self, make_function):
        """Test reporting the call chain of a cycle."""
        graph = FunctionDependencyGraph.from_functions(
            [
                make_function("f", ["x"], "g(x)"),
                make_function("g", ["x"], "h(x) + 1"),
                make_function("h", ["x"], "f(x)"),
                make_function("k", ["x"], "x"),
            ]
        )
        assert graph.find_cycle("f") == ["f", "g", "h", "f"]
        assert graph.find_cycle("k") is None

    def test_find_cycle_ignores_cycles_not_through_start(self, make_function):
        """Test that a cycle reachable from start but not through it is not reported."""
        graph = FunctionDependencyGraph.from_functions(
            [
                make_function("top", ["x"], "a(x)"),
                make_function("a", ["x"], "b(x)"),
                make_function("b", ["x"], "a(x)"),
            ]
        )
        assert graph.find_cycle("top") is None
        assert graph.find_cycle("a") == ["a", "b", "a"]

    def test_evaluation_order(self, functions):
        """Test that callees precede callers."""
        graph = FunctionDependencyGraph.from_functions(functions)
        order = graph.get_evaluation_order({"area", "double", "panel_cost"})
        assert order.index("area") < order.index("panel_cost")
        assert set(order) == {"area", "double", "panel_cost"}

    def test_evaluation_order_with_cycle(self, make_function):
        """Test that cyclic graphs have no order."""
        graph = FunctionDependencyGraph.from_functions(
            [make_function("f", ["x"], "g(x)"), make_function("g", ["x"], "f(x)")]
        )
        assert graph.get_evaluation_order({"f", "g"}) == []

    def test_affected_functions(self, make_function):
        """Test transitive callers of a changed function."""
        graph = FunctionDependencyGraph.from_functions(
            [
                make_function("base", ["x"], "x"),
                make_function("mid", ["x"], "base(x)"),
                make_function("top", ["x"], "mid(x) + base(x)"),
            ]
        )
        assert graph.get_affected_functions("base") == ["mid", "top"]

    def test_remove_function(self, functions):
        """Test removing a function and its edges."""
        graph = FunctionDependencyGraph.from_functions(functions)
        graph.remove_function("panel_cost")
        assert graph.get_callers("area") == set()

    def test_clear(self, functions):
        """Test clearing the graph."""
        graph = FunctionDependencyGraph.from_functions(functions)
        graph.clear()
        assert repr(graph) == "FunctionDependencyGraph(functions=0, edges=0)"
