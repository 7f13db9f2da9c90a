"""
Static registry of audited entity types.

Each app registers its entity types from AppConfig.ready(), mapping the
entity type name to a serialize(entity) callable producing a JSON-safe
snapshot of top-level fields. The audit recorder dispatches through this
table only; it never resolves models by name at request time.
"""

import json
from dataclasses import dataclass
from typing import Any, Callable

from django.core.serializers.json import DjangoJSONEncoder


@dataclass(frozen=True)
class AuditedEntity:
    entity_type: str
    serialize: Callable[[Any], dict]


_REGISTRY: dict[str, AuditedEntity] = {}


def register(entity_type: str, serialize: Callable) -> AuditedEntity:
    # Re-registration replaces the previous handler (ready() may run twice)
    entry = AuditedEntity(entity_type=entity_type, serialize=serialize)
    _REGISTRY[entity_type] = entry
    return entry


def get(entity_type: str) -> AuditedEntity:
    """Raise KeyError for unregistered types; that is a programming error."""
    return _REGISTRY[entity_type]


def registered_types() -> tuple[str, ...]:
    return tuple(sorted(_REGISTRY))


def to_json_safe(data: dict | None) -> dict | None:
    """Round-trip through DjangoJSONEncoder so Decimal/UUID/datetime become strings."""
    if data is None:
        return None
    return json.loads(json.dumps(data, cls=DjangoJSONEncoder))


def serialize(entity_type: str, entity: Any) -> dict | None:
    if entity is None:
        return None
    return to_json_safe(get(entity_type).serialize(entity))
