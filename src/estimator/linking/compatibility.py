"""Link compatibility: whether a prospective field link is legal."""

from collections.abc import Iterable

from estimator.core.exceptions import BrokenLinkError, CircularLinkError, ErrorKind, FormulaSyntaxError
from estimator.formula.parser import (
    OutputRefNode,
    PropertyRefNode,
    VariableNode,
    iter_nodes,
    parse_formula,
)
from estimator.linking.resolver import FieldLinkResolver, node_key
from estimator.schemas.field import DropdownMode, Field, FieldType
from estimator.schemas.instance import FieldLink, QuoteModuleInstance
from estimator.schemas.module import OUTPUT_PREFIX, CalculationModule
from estimator.schemas.results import LinkCheckResult


def are_types_compatible(source: Field, target: Field) -> bool:
    """
    Whether a field of type `source` may mirror a field of type `target`.

    Material fields never link. Numeric fields link regardless of unit
    category; values are normalized per field when evaluated.
    """
    if source.type == FieldType.MATERIAL or target.type == FieldType.MATERIAL:
        return False
    if source.type == FieldType.DROPDOWN and target.type == FieldType.DROPDOWN:
        return source.dropdown_mode == target.dropdown_mode
    return _base_type(source) == _base_type(target)


def _base_type(field: Field) -> str:
    if field.type == FieldType.DROPDOWN and field.dropdown_mode == DropdownMode.NUMERIC:
        return FieldType.NUMBER.value
    return field.type.value


def output_as_field(module: CalculationModule, name: str) -> Field | None:
    """A computed output seen as a read-only number field (`out.<name>`)."""
    output = module.get_output(name)
    if output is None:
        return None
    return Field(
        id=output.id,
        variable_name=output.reference,
        label=output.label,
        type=FieldType.NUMBER,
        unit_symbol=output.unit_symbol,
    )


def output_dependencies(module: CalculationModule, output_name: str) -> list[str]:
    """Fields and outputs (as `out.<name>`) an output's expression reads directly."""
    output = module.get_output(output_name)
    if output is None:
        return []
    try:
        tree = parse_formula(output.expression)
    except FormulaSyntaxError:
        return []

    field_names = {f.variable_name for f in module.fields}
    deps: list[str] = []
    for node in iter_nodes(tree):
        if isinstance(node, VariableNode) and node.name in field_names:
            deps.append(node.name)
        elif isinstance(node, PropertyRefNode) and node.base in field_names:
            deps.append(node.base)
        elif isinstance(node, OutputRefNode):
            deps.append(node.full)
    return list(dict.fromkeys(deps))


class _DependencyProbe:
    """
    Output provider that walks an output's inputs instead of computing it.

    Re-entering an output that is still being walked means the link graph
    loops through that output.
    """

    def __init__(self, instances: Iterable[QuoteModuleInstance], modules: Iterable[CalculationModule]):
        self._instances = {i.id: i for i in instances}
        self._modules = {m.id: m for m in modules}
        self._in_progress: set[str] = set()
        self.resolver: FieldLinkResolver | None = None

    def __call__(self, instance_id: str, output_name: str) -> float | None:
        key = node_key(instance_id, f"{OUTPUT_PREFIX}{output_name}")
        if key in self._in_progress:
            raise CircularLinkError(f"Circular reference through computed output {key}")

        instance = self._instances.get(instance_id)
        module = self._modules.get(instance.module_id) if instance is not None else None
        if module is None or module.get_output(output_name) is None:
            return None

        self._in_progress.add(key)
        try:
            for dep in output_dependencies(module, output_name):
                if dep.startswith(OUTPUT_PREFIX):
                    self(instance_id, dep.removeprefix(OUTPUT_PREFIX))
                    continue
                try:
                    self.resolver.follow(instance_id, dep)
                except BrokenLinkError:
                    # A dangling input is not a cycle
                    continue
        finally:
            self._in_progress.discard(key)
        return 0.0


def _invalid(kind: ErrorKind, message: str) -> LinkCheckResult:
    return LinkCheckResult(valid=False, error=kind, message=message)


def can_link_fields(
    instances: Iterable[QuoteModuleInstance],
    modules: Iterable[CalculationModule],
    source_instance_id: str,
    source_field: str,
    target_instance_id: str,
    target_field: str,
) -> LinkCheckResult:
    """
    Check whether `source_field` on one instance may link to `target_field`.

    Checks run in order: self link, instances, module definitions, fields,
    type compatibility, and finally cycles (the resolver is run with the
    candidate link added).

    Args:
        instances: Current module instances
        modules: Module definitions
        source_instance_id: Instance whose field would mirror the target
        source_field: Field that would mirror the target
        target_instance_id: Instance holding the mirrored value
        target_field: Field or `out.<name>` to mirror

    Returns:
        LinkCheckResult
    """
    instances = list(instances)
    modules = list(modules)

    if source_instance_id == target_instance_id and source_field == target_field:
        return _invalid(ErrorKind.SELF_LINK, "Cannot link field to itself")

    source_instance = next((i for i in instances if i.id == source_instance_id), None)
    target_instance = next((i for i in instances if i.id == target_instance_id), None)
    if source_instance is None:
        return _invalid(ErrorKind.UNKNOWN_IDENTIFIER, "Source module instance not found")
    if target_instance is None:
        return _invalid(ErrorKind.BROKEN_LINK, "Target module instance not found")

    source_module = next((m for m in modules if m.id == source_instance.module_id), None)
    target_module = next((m for m in modules if m.id == target_instance.module_id), None)
    if source_module is None or target_module is None:
        return _invalid(ErrorKind.UNKNOWN_IDENTIFIER, "Module definition not found")

    source_def = source_module.get_field(source_field)
    if target_field.startswith(OUTPUT_PREFIX):
        target_def = output_as_field(target_module, target_field)
    else:
        target_def = target_module.get_field(target_field)
    if source_def is None:
        return _invalid(ErrorKind.UNKNOWN_IDENTIFIER, "Source field not found")
    if target_def is None:
        return _invalid(ErrorKind.BROKEN_LINK, "Target field not found")

    if not are_types_compatible(source_def, target_def):
        return _invalid(
            ErrorKind.TYPE_MISMATCH,
            f"Cannot link {source_def.type.value} field to {target_def.type.value} field",
        )

    candidate = source_instance.model_copy(
        update={
            "field_links": {
                **source_instance.field_links,
                source_field: FieldLink(target_instance_id=target_instance_id, target_field=target_field),
            }
        }
    )
    hypothetical = [candidate if i.id == source_instance_id else i for i in instances]

    probe = _DependencyProbe(hypothetical, modules)
    resolver = FieldLinkResolver(hypothetical, output_provider=probe)
    probe.resolver = resolver
    try:
        resolver.follow(source_instance_id, source_field)
    except CircularLinkError as e:
        return _invalid(ErrorKind.CIRCULAR_LINK, f"Circular reference detected: {' → '.join(e.path)}")
    except BrokenLinkError:
        # Links further down the chain are already broken; not this link's fault
        pass

    return LinkCheckResult(valid=True)
