#!/usr/bin/env python3
"""Ratgdo API - constants for the ESPHome native API (the subset Ratgdo uses)."""

from __future__ import annotations

import re
from enum import EnumCheck, IntEnum, StrEnum, verify
from typing import Final

DEFAULT_PORT: Final[int] = 6053
DEFAULT_CLIENT_INFO: Final[str] = "ratgdo-api"
DEFAULT_CONNECT_TIMEOUT: Final[float] = 10.0

API_VERSION_MAJOR: Final[int] = 1
API_VERSION_MINOR: Final[int] = 10

# the Ratgdo firmware reboots after 15 mins without a native API connection
HEARTBEAT_INTERVAL: Final[int] = 300  # secs

FRAME_SENTINEL: Final[int] = 0x00
MIN_FRAME_SIZE: Final[int] = 3  # sentinel, length varint, type varint
FIXED32_SIZE: Final[int] = 4
FIXED64_SIZE: Final[int] = 8

DEFAULT_MQTT_TOPIC: Final[str] = "ratgdo"

# event names, as emitted by the client
SZ_CONNECT: Final = "connect"
SZ_DISCONNECT: Final = "disconnect"
SZ_ENTITIES: Final = "entities"
SZ_HEARTBEAT: Final = "heartbeat"
SZ_MESSAGE: Final = "message"
SZ_TELEMETRY: Final = "telemetry"
SZ_TIME: Final = "time"

# entity type labels
SZ_BINARY_SENSOR: Final = "binary_sensor"
SZ_BUTTON: Final = "button"
SZ_COVER: Final = "cover"
SZ_LIGHT: Final = "light"
SZ_LOCK: Final = "lock"
SZ_NUMBER: Final = "number"
SZ_SENSOR: Final = "sensor"
SZ_SWITCH: Final = "switch"
SZ_TEXT_SENSOR: Final = "text_sensor"

# config keys
SZ_HOST: Final = "host"
SZ_PORT: Final = "port"
SZ_CLIENT_INFO: Final = "client_info"
SZ_HEARTBEAT_INTERVAL: Final = "heartbeat_interval"
SZ_MQTT: Final = "mqtt"
SZ_URL: Final = "url"
SZ_TOPIC: Final = "topic"


@verify(EnumCheck.UNIQUE)
class WireType(IntEnum):
    VARINT = 0
    FIXED64 = 1
    LENGTH_DELIMITED = 2
    FIXED32 = 5


class MessageCategory(StrEnum):
    """How an inbound message of a given type is to be routed."""

    HANDSHAKE = "handshake"
    DISCONNECT = "disconnect"
    KEEPALIVE = "keepalive"
    DEVICE_INFO = "device_info"
    LIST_ENTITY = "list_entity"
    LIST_DONE = "list_done"
    STATE = "state"
    TIME = "time"
    REQUEST = "request"  # client-to-device only


_LABEL_REGEX = re.compile(r"^LIST_ENTITIES_|_RESPONSE$|_STATE$|_COMMAND_REQUEST$")


@verify(EnumCheck.UNIQUE)
class MessageType(IntEnum):
    """The message type codes of the ESPHome native API."""

    HELLO_REQUEST = 1
    HELLO_RESPONSE = 2
    CONNECT_REQUEST = 3
    CONNECT_RESPONSE = 4
    DISCONNECT_REQUEST = 5
    DISCONNECT_RESPONSE = 6
    PING_REQUEST = 7
    PING_RESPONSE = 8
    DEVICE_INFO_REQUEST = 9
    DEVICE_INFO_RESPONSE = 10
    LIST_ENTITIES_REQUEST = 11
    LIST_ENTITIES_BINARY_SENSOR_RESPONSE = 12
    LIST_ENTITIES_COVER_RESPONSE = 13
    LIST_ENTITIES_LIGHT_RESPONSE = 15
    LIST_ENTITIES_SENSOR_RESPONSE = 16
    LIST_ENTITIES_SWITCH_RESPONSE = 17
    LIST_ENTITIES_TEXT_SENSOR_RESPONSE = 18
    LIST_ENTITIES_DONE_RESPONSE = 19
    SUBSCRIBE_STATES_REQUEST = 20
    BINARY_SENSOR_STATE = 21
    COVER_STATE = 22
    LIGHT_STATE = 24
    SENSOR_STATE = 25
    SWITCH_STATE = 26
    TEXT_SENSOR_STATE = 27
    COVER_COMMAND_REQUEST = 30
    FAN_COMMAND_REQUEST = 31
    LIGHT_COMMAND_REQUEST = 32
    SWITCH_COMMAND_REQUEST = 33
    GET_TIME_REQUEST = 36
    GET_TIME_RESPONSE = 37
    LIST_ENTITIES_SERVICES_RESPONSE = 41
    LIST_ENTITIES_NUMBER_RESPONSE = 49
    NUMBER_STATE = 50
    LIST_ENTITIES_LOCK_RESPONSE = 58
    LOCK_STATE = 59
    LOCK_COMMAND_REQUEST = 60
    LIST_ENTITIES_BUTTON_RESPONSE = 61
    BUTTON_COMMAND_REQUEST = 62

    @classmethod
    def lookup(cls, value: int) -> MessageType | None:
        """Return the MessageType for a wire code, or None if it isn't known."""
        try:
            return cls(value)
        except ValueError:
            return None

    @property
    def category(self) -> MessageCategory:
        return _MSG_CATEGORIES[self]

    @property
    def is_list_entities_response(self) -> bool:
        return self.category is MessageCategory.LIST_ENTITY

    @property
    def is_state_update(self) -> bool:
        return self.category is MessageCategory.STATE

    @property
    def entity_label(self) -> str:
        """Return the entity type label, e.g. LIST_ENTITIES_COVER_RESPONSE -> cover."""
        return _LABEL_REGEX.sub("", self.name).lower()


_MSG_CATEGORIES: Final[dict[MessageType, MessageCategory]] = {
    MessageType.HELLO_REQUEST: MessageCategory.REQUEST,
    MessageType.HELLO_RESPONSE: MessageCategory.HANDSHAKE,
    MessageType.CONNECT_REQUEST: MessageCategory.REQUEST,
    MessageType.CONNECT_RESPONSE: MessageCategory.HANDSHAKE,
    MessageType.DISCONNECT_REQUEST: MessageCategory.DISCONNECT,
    MessageType.DISCONNECT_RESPONSE: MessageCategory.DISCONNECT,
    MessageType.PING_REQUEST: MessageCategory.KEEPALIVE,
    MessageType.PING_RESPONSE: MessageCategory.KEEPALIVE,
    MessageType.DEVICE_INFO_REQUEST: MessageCategory.REQUEST,
    MessageType.DEVICE_INFO_RESPONSE: MessageCategory.DEVICE_INFO,
    MessageType.LIST_ENTITIES_REQUEST: MessageCategory.REQUEST,
    MessageType.LIST_ENTITIES_BINARY_SENSOR_RESPONSE: MessageCategory.LIST_ENTITY,
    MessageType.LIST_ENTITIES_COVER_RESPONSE: MessageCategory.LIST_ENTITY,
    MessageType.LIST_ENTITIES_LIGHT_RESPONSE: MessageCategory.LIST_ENTITY,
    MessageType.LIST_ENTITIES_SENSOR_RESPONSE: MessageCategory.LIST_ENTITY,
    MessageType.LIST_ENTITIES_SWITCH_RESPONSE: MessageCategory.LIST_ENTITY,
    MessageType.LIST_ENTITIES_TEXT_SENSOR_RESPONSE: MessageCategory.LIST_ENTITY,
    MessageType.LIST_ENTITIES_DONE_RESPONSE: MessageCategory.LIST_DONE,
    MessageType.SUBSCRIBE_STATES_REQUEST: MessageCategory.REQUEST,
    MessageType.BINARY_SENSOR_STATE: MessageCategory.STATE,
    MessageType.COVER_STATE: MessageCategory.STATE,
    MessageType.LIGHT_STATE: MessageCategory.STATE,
    MessageType.SENSOR_STATE: MessageCategory.STATE,
    MessageType.SWITCH_STATE: MessageCategory.STATE,
    MessageType.TEXT_SENSOR_STATE: MessageCategory.STATE,
    MessageType.COVER_COMMAND_REQUEST: MessageCategory.REQUEST,
    MessageType.FAN_COMMAND_REQUEST: MessageCategory.REQUEST,
    MessageType.LIGHT_COMMAND_REQUEST: MessageCategory.REQUEST,
    MessageType.SWITCH_COMMAND_REQUEST: MessageCategory.REQUEST,
    MessageType.GET_TIME_REQUEST: MessageCategory.TIME,
    MessageType.GET_TIME_RESPONSE: MessageCategory.TIME,
    MessageType.LIST_ENTITIES_SERVICES_RESPONSE: MessageCategory.LIST_ENTITY,
    MessageType.LIST_ENTITIES_NUMBER_RESPONSE: MessageCategory.LIST_ENTITY,
    MessageType.NUMBER_STATE: MessageCategory.STATE,
    MessageType.LIST_ENTITIES_LOCK_RESPONSE: MessageCategory.LIST_ENTITY,
    MessageType.LOCK_STATE: MessageCategory.STATE,
    MessageType.LOCK_COMMAND_REQUEST: MessageCategory.REQUEST,
    MessageType.LIST_ENTITIES_BUTTON_RESPONSE: MessageCategory.LIST_ENTITY,
    # the device echoes button presses, so treat these as a state update
    MessageType.BUTTON_COMMAND_REQUEST: MessageCategory.STATE,
}

if _unclassified := set(MessageType) - set(_MSG_CATEGORIES):
    raise RuntimeError(f"Unclassified message types: {sorted(_unclassified)}")


class CoverOperation(IntEnum):
    IDLE = 0
    OPENING = 1  # IS_OPENING
    CLOSING = 2  # IS_CLOSING


class CoverState(IntEnum):
    """The legacy cover state (there is no 'stopped' on the wire)."""

    OPEN = 0
    CLOSED = 1


class CoverCommand(IntEnum):
    OPEN = 0
    CLOSE = 1
    STOP = 2


class LockCommand(IntEnum):
    UNLOCK = 0
    LOCK = 1


class DoorState(StrEnum):
    """The human door-state labels (cf. the Ratgdo MQTT/HomeKit vocabulary)."""

    OPEN = "open"
    CLOSED = "closed"
    OPENING = "opening"
    CLOSING = "closing"
    STOPPED = "stopped"
