"""Field link graph resolution.

Every (instance, field) pair is a node; a field link is an edge to the node
it mirrors. Resolution follows edges until it reaches a field with a local
value, a computed output, a node already on the current path (cycle) or a
missing target (broken link). Any failure makes the starting field fall back
to its own local value and is reported as a `LinkIssue`.

Field values are kept in each field's display unit. When module definitions
are supplied, a numeric value reached through a link is passed through base
units and expressed in the display unit of the field that reads it; computed
outputs are already in base units.
"""

from collections.abc import Callable, Iterable, Mapping
from typing import Any

from estimator.core.exceptions import BrokenLinkError, CircularLinkError, LinkError
from estimator.core.logging import get_logger
from estimator.schemas.instance import QuoteModuleInstance
from estimator.schemas.module import OUTPUT_PREFIX, CalculationModule
from estimator.schemas.results import LinkIssue, LinkResolution
from estimator.units import convert_from_base, normalize_to_base

logger = get_logger(__name__)

# (instance_id, output_name) -> value, or None when the output does not exist
OutputProvider = Callable[[str, str], float | None]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def node_key(instance_id: str, field_name: str) -> str:
    return f"{instance_id}.{field_name}"


def instance_field_names(instance: QuoteModuleInstance) -> list[str]:
    """Fields of an instance in a stable order: valued fields, then link-only ones."""
    names = list(instance.field_values)
    names.extend(name for name in instance.field_links if name not in instance.field_values)
    return names


class FieldLinkResolver:
    """
    Resolves field links across a set of module instances.

    Holds no cache: build a new resolver (or call `resolve_all` again) after
    any instance, value or link change.
    """

    def __init__(
        self,
        instances: Iterable[QuoteModuleInstance],
        output_values: Mapping[str, Mapping[str, float]] | None = None,
        output_provider: OutputProvider | None = None,
        modules: Iterable[CalculationModule] | None = None,
    ):
        """
        Initialize resolver.

        Args:
            instances: Module instances, in workspace order
            output_values: Already computed outputs per instance (`out.<name>` keys)
            output_provider: Computes an instance's output on demand; may raise
                CircularLinkError when the output depends on the field being resolved
            modules: Module definitions, used to convert linked values between
                the display units of the linked fields
        """
        self.instances: list[QuoteModuleInstance] = list(instances)
        self._by_id: dict[str, QuoteModuleInstance] = {}
        for instance in self.instances:
            self._by_id.setdefault(instance.id, instance)
        self._output_values = output_values or {}
        self._output_provider = output_provider
        self._modules = {m.id: m for m in modules or []}

    def resolve_all(self) -> LinkResolution:
        """Resolve every field of every instance."""
        resolution = LinkResolution()
        for instance in self.instances:
            values = resolution.values.setdefault(instance.id, {})
            for field_name in instance_field_names(instance):
                value, issue = self.resolve_field(instance.id, field_name)
                values[field_name] = value
                if issue is not None:
                    resolution.issues.append(issue)
        return resolution

    def resolve_field(self, instance_id: str, field_name: str) -> tuple[Any, LinkIssue | None]:
        """
        Resolve one field.

        Returns:
            Tuple of (resolved value, issue or None)
        """
        instance = self._by_id.get(instance_id)
        local = instance.field_values.get(field_name) if instance is not None else None
        try:
            return self.follow(instance_id, field_name), None
        except LinkError as e:
            kind = e.kind
            logger.warning(
                "Field link could not be resolved, using local value",
                extra={
                    "instance_id": instance_id,
                    "field": field_name,
                    "error": kind.value,
                    "path": e.path,
                },
            )
            issue = LinkIssue(
                instance_id=instance_id,
                field_name=field_name,
                kind=kind,
                path=e.path,
                message=e.message,
            )
            return local, issue

    def follow(self, instance_id: str, field_name: str) -> Any:
        """
        Follow a field's links to the value it mirrors.

        Raises:
            CircularLinkError: If the chain revisits a node
            BrokenLinkError: If a link target does not exist
        """
        path: list[str] = []
        on_path: set[str] = set()
        start_instance_id, start_field = instance_id, field_name

        while True:
            key = node_key(instance_id, field_name)
            if key in on_path:
                cycle = path[path.index(key):] + [key]
                raise CircularLinkError(f"Circular reference: {' → '.join(cycle)}", path=cycle)
            path.append(key)
            on_path.add(key)

            instance = self._by_id.get(instance_id)
            if instance is None:
                raise BrokenLinkError(f"Instance {instance_id} not found", path=path)

            if field_name.startswith(OUTPUT_PREFIX):
                value = self._output(instance_id, field_name, path)
                return self._in_unit_of(start_instance_id, start_field, value)

            link = instance.field_links.get(field_name)
            if link is None:
                value = instance.field_values.get(field_name)
                if len(path) == 1:
                    return value
                base = self._to_base(instance_id, field_name, value)
                return self._in_unit_of(start_instance_id, start_field, base)

            target = self._by_id.get(link.target_instance_id)
            if target is None:
                raise BrokenLinkError(
                    f"Linked instance {link.target_instance_id} not found",
                    path=path + [node_key(link.target_instance_id, link.target_field)],
                )
            if not link.target_field.startswith(OUTPUT_PREFIX) and not target.has_field(link.target_field):
                raise BrokenLinkError(
                    f"Field '{link.target_field}' not found on instance {target.id}",
                    path=path + [node_key(target.id, link.target_field)],
                )

            instance_id, field_name = link.target_instance_id, link.target_field

    def _unit_symbol(self, instance_id: str, field_name: str) -> str | None:
        if field_name.startswith(OUTPUT_PREFIX):
            return None
        instance = self._by_id.get(instance_id)
        module = self._modules.get(instance.module_id) if instance is not None else None
        field = module.get_field(field_name) if module is not None else None
        return field.unit_symbol if field is not None else None

    def _to_base(self, instance_id: str, field_name: str, value: Any) -> Any:
        if not _is_number(value):
            return value
        return normalize_to_base(float(value), self._unit_symbol(instance_id, field_name))

    def _in_unit_of(self, instance_id: str, field_name: str, base_value: Any) -> Any:
        if not _is_number(base_value):
            return base_value
        return convert_from_base(float(base_value), self._unit_symbol(instance_id, field_name))

    def _output(self, instance_id: str, output_key: str, path: list[str]) -> float:
        computed = self._output_values.get(instance_id, {})
        if output_key in computed:
            return computed[output_key]
        if self._output_provider is not None:
            try:
                value = self._output_provider(instance_id, output_key.removeprefix(OUTPUT_PREFIX))
            except CircularLinkError as e:
                raise CircularLinkError(e.message, path=path + e.path)
            if value is not None:
                return value
        raise BrokenLinkError(
            f"Computed output '{output_key}' not available on instance {instance_id}", path=path
        )


def resolve_field_links(
    instances: Iterable[QuoteModuleInstance],
    output_values: Mapping[str, Mapping[str, float]] | None = None,
    output_provider: OutputProvider | None = None,
    modules: Iterable[CalculationModule] | None = None,
) -> LinkResolution:
    """
    Resolve every field of every instance through its links.

    Args:
        instances: Module instances
        output_values: Computed outputs per instance, for `out.<name>` link targets
        output_provider: On-demand output computation for `out.<name>` targets
        modules: Module definitions; when given, linked numeric values are
            converted to the display unit of the field reading them

    Returns:
        LinkResolution with values per instance and flagged issues
    """
    return FieldLinkResolver(instances, output_values, output_provider, modules).resolve_all()
