"""Legacy template link format.

Persisted templates store links with `__index_N__` placeholders instead of
instance IDs, where N is the target's position in the template's instance
list. Placeholders resolve positionally against the current instance order;
reordering a template without rewriting its links retargets them.
"""

import re
from collections.abc import Mapping, Sequence

from estimator.core.logging import get_logger
from estimator.schemas.instance import FieldLink, QuoteModuleInstance

logger = get_logger(__name__)

INDEX_PLACEHOLDER = re.compile(r"^__index_(\d+)__$")


def index_placeholder(index: int) -> str:
    return f"__index_{index}__"


def parse_index_placeholder(value: str) -> int | None:
    """Position encoded in a placeholder, or None for a plain instance ID."""
    match = INDEX_PLACEHOLDER.match(value)
    return int(match.group(1)) if match else None


def to_index_links(instances: Sequence[QuoteModuleInstance]) -> list[dict[str, FieldLink]]:
    """
    Convert each instance's links to the placeholder format.

    Links whose target is not in `instances` are dropped.

    Returns:
        One link map per instance, in the same order
    """
    positions = {instance.id: index for index, instance in enumerate(instances)}
    result: list[dict[str, FieldLink]] = []
    for instance in instances:
        converted: dict[str, FieldLink] = {}
        for field_name, link in instance.field_links.items():
            position = positions.get(link.target_instance_id)
            if position is None:
                logger.warning(
                    "Dropping link to unknown instance on save",
                    extra={
                        "instance_id": instance.id,
                        "field": field_name,
                        "target_instance_id": link.target_instance_id,
                    },
                )
                continue
            converted[field_name] = FieldLink(
                target_instance_id=index_placeholder(position),
                target_field=link.target_field,
            )
        result.append(converted)
    return result


def from_index_links(
    instances: Sequence[QuoteModuleInstance],
    index_links: Sequence[Mapping[str, FieldLink]],
) -> list[QuoteModuleInstance]:
    """
    Restore placeholder links onto freshly created instances.

    Args:
        instances: Instances in template order, with their new IDs
        index_links: Link maps from `to_index_links`, one per instance

    Returns:
        Copies of `instances` with canonical instance-ID links. Placeholders
        pointing past the end of the list are dropped; plain IDs are kept
        when they name one of the instances.
    """
    ids = [instance.id for instance in instances]
    known = set(ids)
    restored: list[QuoteModuleInstance] = []

    for position, instance in enumerate(instances):
        links = index_links[position] if position < len(index_links) else {}
        converted: dict[str, FieldLink] = {}
        for field_name, link in links.items():
            target_position = parse_index_placeholder(link.target_instance_id)
            if target_position is not None:
                target_id = ids[target_position] if target_position < len(ids) else None
            else:
                target_id = link.target_instance_id if link.target_instance_id in known else None

            if target_id is None:
                logger.warning(
                    "Dropping unresolvable template link",
                    extra={
                        "instance_id": instance.id,
                        "field": field_name,
                        "target": link.target_instance_id,
                    },
                )
                continue
            converted[field_name] = FieldLink(target_instance_id=target_id, target_field=link.target_field)

        restored.append(instance.model_copy(update={"field_links": converted}))
    return restored
