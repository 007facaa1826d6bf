#!/usr/bin/env python3
"""Ratgdo API - the catalog of entities discovered during a session.

Entity keys are assigned by the device and are only valid for the lifetime of
one connection, so collaborators address entities by a derived id (e.g.
'cover-door'), which is stable across reconnects.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .const import MessageType
from .fields import decode_fields

_LOGGER = logging.getLogger(__name__)

# fields of the ListEntities*Response messages (field 1 is the object_id)
_FIELD_KEY = 2
_FIELD_NAME = 3


def entity_id(type_: str, name: str) -> str:
    """Return the stable id of an entity, e.g. 'cover-garage_door'."""
    return f"{type_}-{name}".replace(" ", "_").lower()


@dataclass(frozen=True)
class Entity:
    """One controllable/observable unit on the device (a cover, a light, etc.)."""

    key: int
    name: str
    type: str

    @property
    def id(self) -> str:
        return entity_id(self.type, self.name)


def decode_list_entity(msg_type: MessageType, payload: bytes) -> Entity | None:
    """Decode a ListEntities*Response, returning None if it has no key or name."""
    fields = decode_fields(payload)

    if (key := fields.get_fixed32(_FIELD_KEY)) is None:
        return None
    if (name := fields.get_str(_FIELD_NAME)) is None:
        return None

    return Entity(key, name, msg_type.entity_label)


class EntityCatalog:
    """A session-scoped registry of id -> key, key -> name, and key -> type."""

    def __init__(self) -> None:
        self._entities: list[Entity] = []

        self._keys: dict[str, int] = {}
        self._names: dict[int, str] = {}
        self._types: dict[int, str] = {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(entities={len(self._entities)})"

    def __len__(self) -> int:
        return len(self._entities)

    def __contains__(self, id_: object) -> bool:
        return id_ in self._keys

    @property
    def entities(self) -> list[Entity]:
        """Return the entities, in the order they were discovered."""
        return list(self._entities)

    def clear(self) -> None:
        self._entities.clear()
        self._keys.clear()
        self._names.clear()
        self._types.clear()

    def register(self, key: int, name: str, type_: str) -> Entity:
        """Add an entity to the catalog (a later entity with the same id wins)."""
        ent = Entity(key, name, type_)

        self._keys[ent.id] = key
        self._names[key] = name
        self._types[key] = type_

        self._entities.append(ent)
        _LOGGER.debug("Registered entity: [%s] %s (%s)", key, name, type_)
        return ent

    def key_for(self, id_: str) -> int | None:
        return self._keys.get(id_)

    def name_for(self, key: int) -> str | None:
        return self._names.get(key)

    def type_for(self, key: int) -> str | None:
        return self._types.get(key)

    def has_entity(self, id_: str) -> bool:
        return id_ in self._keys

    def get_entity_by_id(self, id_: str) -> Entity | None:
        if (key := self._keys.get(id_)) is None:
            return None

        name = self._names.get(key)
        type_ = self._types.get(key)
        if name is None or type_ is None:
            return None
        return Entity(key, name, type_)

    def get_available_entity_ids(self) -> dict[str, list[str]]:
        """Return all known entity ids, grouped by entity type."""
        result: dict[str, list[str]] = {}
        for id_, key in self._keys.items():
            result.setdefault(self._types[key], []).append(id_)
        return result

    def get_entities_with_ids(self) -> list[tuple[str, Entity]]:
        return [(ent.id, ent) for ent in self._entities]
