#!/usr/bin/env python3
"""Ratgdo API - a client for the ESPHome native API of Ratgdo door openers."""

from __future__ import annotations

from .client import RatgdoClient
from .command import Command
from .const import DEFAULT_PORT, CoverOperation, CoverState, DoorState, MessageType
from .device_info import DeviceInfo
from .entities import Entity, EntityCatalog, entity_id
from .exceptions import (
    CommandInvalid,
    ConfigInvalid,
    EntityNotFound,
    ProtocolError,
    RatgdoException,
    TransportError,
)
from .protocol import ConnectionState, RatgdoProtocol
from .telemetry import (
    CoverStateEvent,
    RatgdoUpdate,
    TelemetryEvent,
    door_state_label,
    parse_state_event,
)

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_PORT",
    "Command",
    "CommandInvalid",
    "ConfigInvalid",
    "ConnectionState",
    "CoverOperation",
    "CoverState",
    "CoverStateEvent",
    "DeviceInfo",
    "DoorState",
    "Entity",
    "EntityCatalog",
    "EntityNotFound",
    "MessageType",
    "ProtocolError",
    "RatgdoClient",
    "RatgdoException",
    "RatgdoProtocol",
    "RatgdoUpdate",
    "TelemetryEvent",
    "TransportError",
    "door_state_label",
    "entity_id",
    "parse_state_event",
]
