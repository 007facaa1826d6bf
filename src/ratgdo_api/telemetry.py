#!/usr/bin/env python3
"""Ratgdo API - translate state updates into telemetry events.

Most state messages carry a key (field 1) and a single value (field 2). Cover
state is richer, and the device has no explicit 'stopped' state: it is inferred
when the door is idle at a partial position (a best-effort heuristic).
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from typing import Any, Final

from .const import CoverOperation, CoverState, DoorState, MessageType
from .entities import EntityCatalog
from .fields import FieldMap, decode_fields

_LOGGER = logging.getLogger(__name__)

_FIELD_KEY: Final = 1
_FIELD_VALUE: Final = 2

# fields of the CoverStateResponse
_FIELD_LEGACY_STATE: Final = 2
_FIELD_POSITION: Final = 3
_FIELD_TILT: Final = 4
_FIELD_CURRENT_OPERATION: Final = 5
_FIELD_DEVICE_ID: Final = 6


@dataclass(frozen=True)
class TelemetryEvent:
    """A state update of a (non-cover) entity."""

    entity: str
    type: str
    value: int | float | str | None
    key: int | None = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CoverStateEvent:
    """A state update of a cover (i.e. the garage door)."""

    entity: str
    type: str
    key: int | None = None
    legacy_state: int | None = None
    position: float | None = None
    tilt: float | None = None
    current_operation: int | None = None
    device_id: int | None = None

    @property
    def state(self) -> CoverState | None:
        """Return the reported (open/closed) state of the cover."""
        if self.legacy_state is None:  # absent on the wire, i.e. the default
            return CoverState.OPEN
        return _as_state(self.legacy_state)

    @property
    def door_state(self) -> DoorState | None:
        if (state := self.state) is None:
            return None
        operation = self.current_operation or CoverOperation.IDLE
        return door_state_label(operation, state, self.position)

    @property
    def value(self) -> str | None:
        return None if (state := self.door_state) is None else str(state)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self) | {"door_state": self.value}


TelemetryT = TelemetryEvent | CoverStateEvent


def _as_operation(value: CoverOperation | int | str) -> CoverOperation | None:
    try:
        if isinstance(value, str):
            return CoverOperation[value.upper().removeprefix("IS_")]
        return CoverOperation(value)
    except (KeyError, ValueError):
        return None


def _as_state(value: CoverState | int | str) -> CoverState | None:
    try:
        if isinstance(value, str):
            return CoverState[value.upper()]
        return CoverState(value)
    except (KeyError, ValueError):
        return None


def door_state_label(
    current_operation: CoverOperation | int | str,
    state: CoverState | int | str,
    position: float | None = None,
) -> DoorState | None:
    """Return the door state, inferring 'stopped' from idleness at a partial position.

    In order of priority:
     - if the door is moving, it is 'opening' or 'closing'
     - if it is idle, but open and 0 < position < 1, it is 'stopped'
     - otherwise it is 'open' or 'closed', as reported

    Returns None if the operation (or state) is not recognised.
    """
    if (operation := _as_operation(current_operation)) is None:
        return None

    if operation == CoverOperation.OPENING:
        return DoorState.OPENING
    if operation == CoverOperation.CLOSING:
        return DoorState.CLOSING

    if (cover_state := _as_state(state)) is None:
        return None

    if cover_state == CoverState.OPEN and position is not None and 0 < position < 1:
        return DoorState.STOPPED
    return DoorState(cover_state.name.lower())


def _translate_cover(
    fields: FieldMap, entity: str, type_: str, key: int
) -> CoverStateEvent:
    return CoverStateEvent(
        entity=entity,
        type=type_,
        key=key,
        legacy_state=fields.get_int(_FIELD_LEGACY_STATE),
        position=fields.get_float32(_FIELD_POSITION),
        tilt=fields.get_float32(_FIELD_TILT),
        current_operation=fields.get_int(_FIELD_CURRENT_OPERATION),
        device_id=fields.get_int(_FIELD_DEVICE_ID),
    )


def translate_state(
    msg_type: MessageType, payload: bytes, catalog: EntityCatalog
) -> TelemetryT | None:
    """Decode a state update, and resolve its entity via the catalog.

    Returns None if the message has no entity key.
    """
    fields = decode_fields(payload)

    if (key := fields.get_entity_key(_FIELD_KEY)) is None:
        _LOGGER.debug("%s has no entity key: %s", msg_type.name, payload.hex())
        return None

    name = catalog.name_for(key) or f"unknown({key})"
    type_ = (catalog.type_for(key) or msg_type.entity_label).lower()

    event: TelemetryT
    if msg_type == MessageType.COVER_STATE:
        event = _translate_cover(fields, name, type_, key)
    else:
        event = TelemetryEvent(
            entity=name,
            type=type_,
            value=fields.get_telemetry_value(_FIELD_VALUE),
            key=key,
        )

    _LOGGER.debug("TYPE: %s | data: %s", type_, event)
    return event


########################################################################################
# The plain-text (JSON) event channel, e.g. the device's /events web stream


@dataclass(frozen=True)
class RatgdoUpdate:
    """A state change of the opener, in the Ratgdo vocabulary (e.g. door/stopped)."""

    event: str
    state: str
    position: float | None = None  # percent (0-100)


def _door_update(event: dict[str, Any]) -> RatgdoUpdate | None:
    position = event.get("position")

    if position is not None and (
        isinstance(position, bool) or not isinstance(position, int | float)
    ):
        _LOGGER.error("Invalid door position detected: %s.", position)
        return None

    if (operation := event.get("current_operation")) is None:
        _LOGGER.error("Unknown door operation detected: %s.", operation)
        return None

    state = door_state_label(operation, event.get("state", ""), position)
    if state is None:
        _LOGGER.error("Unknown door state detected: %s/%s.", operation, event)
        return None

    return RatgdoUpdate(
        "door", str(state), None if position is None else position * 100
    )


def parse_state_event(text: str) -> RatgdoUpdate | None:
    """Parse a JSON state event, returning None if it is to be ignored.

    Malformed messages are logged and dropped, without affecting later messages.
    """
    if not text:  # the device occasionally sends empty updates
        return None

    try:
        event = json.loads(text)
    except json.JSONDecodeError:
        _LOGGER.error('Unable to parse state message: "%s". Invalid JSON.', text)
        return None

    if not isinstance(event, dict):
        _LOGGER.error('Unable to parse state message: "%s". Not an object.', text)
        return None

    state = event.get("state")
    id_ = event.get("id")

    if id_ == "binary_sensor-motion":
        return RatgdoUpdate("motion", "clear" if state == "OFF" else "detected")
    if id_ == "binary_sensor-obstruction":
        return RatgdoUpdate("obstruction", "clear" if state == "OFF" else "obstructed")
    if id_ == "cover-door":
        return _door_update(event)
    if id_ == "light-light":
        return RatgdoUpdate("light", "off" if state == "OFF" else "on")
    if id_ == "lock-lock_remotes":
        return RatgdoUpdate("lock", "locked" if state == "LOCKED" else "unlocked")

    return None
