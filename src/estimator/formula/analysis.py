"""Formula introspection for tooling.

Reports which names a formula references and what each resolves to, without
evaluating it. Half-typed formulas that do not parse are scanned with a
tokenizing fallback so editors still get useful answers.
"""

import re
from collections.abc import Iterable
from typing import Any

from estimator.core.exceptions import FormulaSyntaxError
from estimator.formula.functions import CONSTANTS, is_builtin
from estimator.formula.parser import (
    FunctionCallNode,
    OutputRefNode,
    PropertyRefNode,
    VariableNode,
    format_expression,
    iter_nodes,
    parse_formula,
)
from estimator.schemas.field import Field
from estimator.schemas.function import SharedFunction
from estimator.schemas.material import Material
from estimator.schemas.module import OUTPUT_PREFIX
from estimator.schemas.results import (
    FieldPropertyRef,
    FormulaAnalysis,
    FunctionCallInfo,
    MaterialPropertyRef,
)

_TOKEN_PATTERN = re.compile(r"\b([a-zA-Z_][a-zA-Z0-9_]*(?:\.[a-zA-Z_][a-zA-Z0-9_]*)?)\b(\s*\()?")


def _unique(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def _try_parse(formula: str) -> Any | None:
    try:
        return parse_formula(formula)
    except FormulaSyntaxError:
        return None


class _Collector:
    """Sorts references into the analysis buckets."""

    def __init__(
        self,
        known_names: Iterable[str],
        materials: Iterable[Material],
        fields: Iterable[Field] | None,
        functions: Iterable[SharedFunction] | None,
    ):
        self.known = set(known_names) | {f.variable_name for f in fields or []}
        self.materials = {m.variable_name for m in materials}
        self.functions = {f.name for f in functions or []}
        self.result = FormulaAnalysis()

    def variable(self, name: str) -> None:
        if name in CONSTANTS:
            self.result.math_functions.append(name)
        elif name in self.functions or is_builtin(name):
            return
        elif name in self.known or name in self.materials:
            self.result.variables.append(name)
        else:
            self.result.unknown_variables.append(name)

    def output(self, full: str) -> None:
        if full in self.known:
            self.result.computed_outputs.append(full)
        else:
            self.result.unknown_variables.append(full)

    def property_ref(self, base: str, prop: str) -> None:
        full = f"{base}.{prop}"
        if base in self.known:
            self.result.field_property_refs.append(
                FieldPropertyRef(full=full, field_var=base, property=prop)
            )
        else:
            self.result.material_property_refs.append(
                MaterialPropertyRef(full=full, material_var=base, property=prop)
            )

    def call(self, name: str, arguments: list[str], full_match: str) -> None:
        if is_builtin(name):
            self.result.math_functions.append(name)
        else:
            self.result.function_calls.append(
                FunctionCallInfo(name=name, arguments=arguments, full_match=full_match)
            )

    def finish(self) -> FormulaAnalysis:
        r = self.result
        r.variables = _unique(r.variables)
        r.unknown_variables = _unique(r.unknown_variables)
        r.math_functions = _unique(r.math_functions)
        r.computed_outputs = _unique(r.computed_outputs)
        return r


def analyze_formula_variables(
    formula: str,
    known_names: Iterable[str],
    materials: Iterable[Material],
    fields: Iterable[Field] | None = None,
    functions: Iterable[SharedFunction] | None = None,
) -> FormulaAnalysis:
    """
    Classify every name a formula references.

    Args:
        formula: Formula text (may be incomplete)
        known_names: Field names in scope, plus `out.<name>` for available outputs
        materials: Material catalog
        fields: Field definitions
        functions: Shared function registry

    Returns:
        FormulaAnalysis
    """
    collector = _Collector(known_names, materials, fields, functions)
    tree = _try_parse(formula)

    if tree is not None:
        for node in iter_nodes(tree):
            if isinstance(node, VariableNode):
                collector.variable(node.name)
            elif isinstance(node, OutputRefNode):
                collector.output(node.full)
            elif isinstance(node, PropertyRefNode):
                collector.property_ref(node.base, node.property)
            elif isinstance(node, FunctionCallNode):
                collector.call(
                    node.name,
                    [format_expression(arg) for arg in node.arguments],
                    format_expression(node),
                )
        return collector.finish()

    for match in _TOKEN_PATTERN.finditer(formula):
        token, is_call = match.group(1), match.group(2)
        if token.startswith(OUTPUT_PREFIX):
            collector.output(token)
        elif "." in token:
            base, prop = token.split(".", 1)
            collector.property_ref(base, prop)
        elif is_call:
            # Arguments are unknown when the formula does not parse
            collector.call(token, [], match.group(0).rstrip("( \t"))
        else:
            collector.variable(token)
    return collector.finish()


def is_variable_in_formula(name: str, formula: str) -> bool:
    """Whether `name` appears as an identifier (not as a property part) in the formula."""
    tree = _try_parse(formula)
    if tree is None:
        return re.search(rf"(?<![\w.]){re.escape(name)}\b", formula) is not None

    for node in iter_nodes(tree):
        if isinstance(node, VariableNode) and node.name == name:
            return True
        if isinstance(node, PropertyRefNode) and node.base == name:
            return True
        if isinstance(node, OutputRefNode) and node.full == name:
            return True
        if isinstance(node, FunctionCallNode) and node.name == name:
            return True
    return False


def is_property_reference_in_formula(base: str, prop: str, formula: str) -> bool:
    """Whether the formula contains the dotted reference `base.prop`."""
    tree = _try_parse(formula)
    if tree is None:
        pattern = rf"(?<![\w.]){re.escape(base)}\.{re.escape(prop)}\b"
        return re.search(pattern, formula) is not None

    return any(
        isinstance(node, PropertyRefNode) and node.base == base and node.property == prop
        for node in iter_nodes(tree)
    )
