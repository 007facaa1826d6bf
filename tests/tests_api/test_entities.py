#!/usr/bin/env python3
"""Test ratgdo_api/entities.py"""

import pytest

from ratgdo_api.const import (
    SZ_BINARY_SENSOR,
    SZ_BUTTON,
    SZ_COVER,
    SZ_LIGHT,
    SZ_LOCK,
    SZ_NUMBER,
    SZ_SENSOR,
    SZ_SWITCH,
    SZ_TEXT_SENSOR,
    MessageCategory,
    MessageType,
)
from ratgdo_api.entities import Entity, EntityCatalog, decode_list_entity, entity_id
from ratgdo_api.fields import ProtoField, encode_fields


def _list_entity(key: int | None, name: str | None) -> bytes:
    fields = [ProtoField.string(1, "object_id")]
    if key is not None:
        fields.append(ProtoField.fixed32(2, key))
    if name is not None:
        fields.append(ProtoField.string(3, name))
    return encode_fields(fields)


@pytest.mark.parametrize(
    "type_,name,expected",
    [
        ("cover", "Door", "cover-door"),
        ("cover", "Garage Door", "cover-garage_door"),
        ("lock", "Lock remotes", "lock-lock_remotes"),
        ("binary_sensor", "Motion", "binary_sensor-motion"),
    ],
)
def test_entity_id(type_: str, name: str, expected: str) -> None:
    assert entity_id(type_, name) == expected


@pytest.mark.parametrize(
    "msg_type,label",
    [
        (MessageType.LIST_ENTITIES_BINARY_SENSOR_RESPONSE, SZ_BINARY_SENSOR),
        (MessageType.LIST_ENTITIES_COVER_RESPONSE, SZ_COVER),
        (MessageType.LIST_ENTITIES_NUMBER_RESPONSE, SZ_NUMBER),
        (MessageType.LIST_ENTITIES_SENSOR_RESPONSE, SZ_SENSOR),
        (MessageType.LIST_ENTITIES_SWITCH_RESPONSE, SZ_SWITCH),
        (MessageType.LIST_ENTITIES_TEXT_SENSOR_RESPONSE, SZ_TEXT_SENSOR),
        (MessageType.LIGHT_STATE, SZ_LIGHT),
        (MessageType.LOCK_STATE, SZ_LOCK),
        (MessageType.TEXT_SENSOR_STATE, SZ_TEXT_SENSOR),
        (MessageType.BUTTON_COMMAND_REQUEST, SZ_BUTTON),
    ],
)
def test_message_type_labels(msg_type: MessageType, label: str) -> None:
    assert msg_type.entity_label == label


@pytest.mark.parametrize("msg_type", list(MessageType))
def test_message_type_is_classified(msg_type: MessageType) -> None:
    assert isinstance(msg_type.category, MessageCategory)


def test_decode_list_entity() -> None:
    ent = decode_list_entity(
        MessageType.LIST_ENTITIES_COVER_RESPONSE, _list_entity(0xDEADBEEF, "Door")
    )
    assert ent == Entity(0xDEADBEEF, "Door", "cover")
    assert ent.id == "cover-door"


def test_decode_list_entity_without_key_or_name() -> None:
    msg_type = MessageType.LIST_ENTITIES_LIGHT_RESPONSE

    assert decode_list_entity(msg_type, _list_entity(None, "Light")) is None
    assert decode_list_entity(msg_type, _list_entity(1, None)) is None


def test_catalog_register_and_lookup() -> None:
    catalog = EntityCatalog()
    catalog.register(1, "Door", "cover")
    catalog.register(2, "Light", "light")
    catalog.register(3, "Motion", "binary_sensor")
    catalog.register(4, "Obstruction", "binary_sensor")

    assert len(catalog) == 4
    assert "cover-door" in catalog
    assert catalog.key_for("light-light") == 2
    assert catalog.name_for(3) == "Motion"
    assert catalog.type_for(4) == "binary_sensor"
    assert catalog.get_entity_by_id("cover-door") == Entity(1, "Door", "cover")

    assert catalog.get_available_entity_ids() == {
        "cover": ["cover-door"],
        "light": ["light-light"],
        "binary_sensor": ["binary_sensor-motion", "binary_sensor-obstruction"],
    }
    assert [id_ for id_, _ in catalog.get_entities_with_ids()] == [
        "cover-door",
        "light-light",
        "binary_sensor-motion",
        "binary_sensor-obstruction",
    ]


def test_catalog_unknown() -> None:
    catalog = EntityCatalog()

    assert catalog.key_for("switch-nonexistent") is None
    assert catalog.get_entity_by_id("switch-nonexistent") is None
    assert not catalog.has_entity("switch-nonexistent")


def test_catalog_clear() -> None:
    catalog = EntityCatalog()
    catalog.register(1, "Door", "cover")
    catalog.clear()

    assert len(catalog) == 0
    assert catalog.entities == []
    assert catalog.name_for(1) is None
