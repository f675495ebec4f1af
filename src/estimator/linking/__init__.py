"""Cross-instance field links: resolution, compatibility and legacy serialization."""

from estimator.linking.compatibility import are_types_compatible, can_link_fields
from estimator.linking.resolver import FieldLinkResolver, resolve_field_links
from estimator.linking.serialization import from_index_links, to_index_links

__all__ = [
    "FieldLinkResolver",
    "are_types_compatible",
    "can_link_fields",
    "from_index_links",
    "resolve_field_links",
    "to_index_links",
]
