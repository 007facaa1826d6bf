#!/usr/bin/env python3
"""Ratgdo API - construct outbound messages (commands & requests) for the device.

Entity commands address an entity by its (session-scoped) numeric key, which is
always field 1, as a fixed32.
"""

from __future__ import annotations

from typing import Final, Literal

from .const import (
    API_VERSION_MAJOR,
    API_VERSION_MINOR,
    DEFAULT_CLIENT_INFO,
    CoverCommand,
    LockCommand,
    MessageType,
)
from .exceptions import CommandInvalid
from .fields import ProtoField, encode_fields
from .frame import encode_frame

CoverCommandT = Literal["open", "close", "stop"]
LockCommandT = Literal["lock", "unlock"]

_FIELD_KEY: Final = 1


class Command:
    """An outbound message: a message type, and an ordered list of fields."""

    def __init__(
        self, msg_type: MessageType, fields: list[ProtoField] | None = None
    ) -> None:
        self.msg_type = msg_type
        self.fields: list[ProtoField] = fields or []

        self._payload: bytes | None = None

    def __repr__(self) -> str:
        return f"{self.msg_type.name}({self.payload.hex()})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Command):
            return NotImplemented
        return (self.msg_type, self.payload) == (other.msg_type, other.payload)

    def __hash__(self) -> int:
        return hash((self.msg_type, self.payload))

    @property
    def payload(self) -> bytes:
        """Return the encoded fields of the message."""
        if self._payload is None:
            self._payload = encode_fields(self.fields)
        return self._payload

    @property
    def frame(self) -> bytes:
        """Return the message, framed and ready to be written to the socket."""
        return encode_frame(self.msg_type, self.payload)

    @staticmethod
    def _key(key: int) -> ProtoField:
        return ProtoField.fixed32(_FIELD_KEY, key)

    # requests/responses of the connection itself (no entity key)

    @classmethod
    def hello(cls, client_info: str = DEFAULT_CLIENT_INFO) -> Command:
        """Construct a HelloRequest (client info, and the API version we speak)."""
        return cls(
            MessageType.HELLO_REQUEST,
            [
                ProtoField.string(1, client_info),
                ProtoField.varint(2, API_VERSION_MAJOR),
                ProtoField.varint(3, API_VERSION_MINOR),
            ],
        )

    @classmethod
    def connect(cls) -> Command:
        return cls(MessageType.CONNECT_REQUEST)

    @classmethod
    def disconnect_request(cls) -> Command:
        return cls(MessageType.DISCONNECT_REQUEST)

    @classmethod
    def disconnect_response(cls) -> Command:
        return cls(MessageType.DISCONNECT_RESPONSE)

    @classmethod
    def ping_request(cls) -> Command:
        return cls(MessageType.PING_REQUEST)

    @classmethod
    def ping_response(cls) -> Command:
        return cls(MessageType.PING_RESPONSE)

    @classmethod
    def device_info_request(cls) -> Command:
        return cls(MessageType.DEVICE_INFO_REQUEST)

    @classmethod
    def list_entities_request(cls) -> Command:
        return cls(MessageType.LIST_ENTITIES_REQUEST)

    @classmethod
    def subscribe_states_request(cls) -> Command:
        return cls(MessageType.SUBSCRIBE_STATES_REQUEST)

    @classmethod
    def get_time_response(cls, epoch_seconds: int) -> Command:
        """Construct a GetTimeResponse (epoch seconds, as a fixed32)."""
        return cls(
            MessageType.GET_TIME_RESPONSE,
            [ProtoField.fixed32(1, epoch_seconds & 0xFFFFFFFF)],
        )

    # entity commands

    @classmethod
    def switch(cls, key: int, state: bool) -> Command:
        """Construct a SwitchCommandRequest (on/off)."""
        return cls(
            MessageType.SWITCH_COMMAND_REQUEST,
            [cls._key(key), ProtoField.varint(2, state)],
        )

    @classmethod
    def button(cls, key: int) -> Command:
        """Construct a ButtonCommandRequest (a momentary press)."""
        return cls(MessageType.BUTTON_COMMAND_REQUEST, [cls._key(key)])

    @classmethod
    def cover(
        cls,
        key: int,
        /,
        *,
        command: CoverCommandT | CoverCommand | None = None,
        position: float | None = None,
        tilt: float | None = None,
    ) -> Command:
        """Construct a CoverCommandRequest.

        At least one of command (open/close/stop), position (0.0 is closed, 1.0
        is open), or tilt must be given, else CommandInvalid is raised.
        """
        if command is None and position is None and tilt is None:
            raise CommandInvalid(
                "A cover command requires at least one of: command, position, tilt"
            )

        fields = [cls._key(key)]

        if command is not None:
            if isinstance(command, str):
                try:
                    command = CoverCommand[command.upper()]
                except KeyError as err:
                    raise CommandInvalid(f"Invalid cover command: {command}") from err
            fields += [
                ProtoField.varint(2, True),  # has_legacy_command
                ProtoField.varint(3, command),  # legacy_command
            ]

        if position is not None:
            fields += [ProtoField.varint(4, True), ProtoField.float32(5, position)]

        if tilt is not None:
            fields += [ProtoField.varint(6, True), ProtoField.float32(7, tilt)]

        return cls(MessageType.COVER_COMMAND_REQUEST, fields)

    @classmethod
    def light(
        cls,
        key: int,
        /,
        *,
        state: bool | None = None,
        brightness: float | None = None,
    ) -> Command:
        """Construct a LightCommandRequest (on/off, and/or brightness 0.0-1.0)."""
        fields = [cls._key(key)]

        if state is not None:
            fields += [ProtoField.varint(2, True), ProtoField.varint(3, state)]

        if brightness is not None:
            fields += [ProtoField.varint(4, True), ProtoField.float32(5, brightness)]

        return cls(MessageType.LIGHT_COMMAND_REQUEST, fields)

    @classmethod
    def lock(
        cls,
        key: int,
        command: LockCommandT | LockCommand,
        /,
        code: str | None = None,
    ) -> Command:
        """Construct a LockCommandRequest, with an optional (unlock) code."""
        if isinstance(command, str):
            try:
                command = LockCommand[command.upper()]
            except KeyError as err:
                raise CommandInvalid(f"Invalid lock command: {command}") from err

        fields = [cls._key(key), ProtoField.varint(2, command)]
        if code is not None:
            fields.append(ProtoField.string(3, code))

        return cls(MessageType.LOCK_COMMAND_REQUEST, fields)
