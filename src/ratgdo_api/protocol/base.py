#!/usr/bin/env python3
"""Ratgdo API - the native API protocol (an asyncio.Protocol over TCP).

The protocol owns everything that is scoped to one session: the receive buffer,
the entity catalog, and the device info. All of it is discarded when the
connection is lost.
"""

from __future__ import annotations

import asyncio
import errno
import logging
import time
from collections.abc import Callable
from typing import Any, Final, TypeAlias

from ..command import Command
from ..const import (
    DEFAULT_CLIENT_INFO,
    SZ_CONNECT,
    SZ_DISCONNECT,
    SZ_ENTITIES,
    SZ_HEARTBEAT,
    SZ_MESSAGE,
    SZ_TELEMETRY,
    SZ_TIME,
    MessageCategory,
    MessageType,
)
from ..device_info import DeviceInfo, decode_device_info
from ..entities import EntityCatalog, decode_list_entity
from ..exceptions import SocketError, UnhandledMessageType
from ..fields import decode_fields
from ..frame import Frame, FrameBuffer
from ..telemetry import translate_state
from .fsm import ConnectionState, ProtocolContext

# an event handler is invoked as: handler(event_name, *args)
EventHandlerT: TypeAlias = Callable[..., None]

_LOGGER = logging.getLogger(__name__)

_SOCKET_ERRORS: Final[dict[int, str]] = {
    errno.ECONNRESET: "Connection reset.",
    errno.EHOSTDOWN: "Ratgdo unreachable.",
    errno.EHOSTUNREACH: "Ratgdo unreachable.",
    errno.ETIMEDOUT: "Connection timed out.",
}


def socket_error(err: BaseException) -> SocketError:
    """Return a SocketError with a human-readable message for a transport error."""
    code = getattr(err, "errno", None)

    if code in _SOCKET_ERRORS:
        return SocketError(_SOCKET_ERRORS[code])
    if isinstance(err, TimeoutError):  # e.g. from asyncio.wait_for()
        return SocketError(_SOCKET_ERRORS[errno.ETIMEDOUT])
    if code is not None:
        return SocketError(f"Socket error: {errno.errorcode.get(code, code)}: {err}")
    return SocketError(f"Socket error: {err!r}")


class RatgdoProtocol(asyncio.Protocol):
    """Drive one session of the native API: handshake, discovery, then state."""

    def __init__(
        self,
        event_handler: EventHandlerT,
        /,
        *,
        client_info: str = DEFAULT_CLIENT_INFO,
        logger: logging.Logger | None = None,
    ) -> None:
        self._event_handler = event_handler
        self._client_info = client_info
        self._logger = logger or _LOGGER

        self._transport: asyncio.Transport | None = None

        self._context = ProtocolContext(self._logger)
        self._buffer = FrameBuffer(self._logger)
        self._catalog = EntityCatalog()
        self._device_info: DeviceInfo | None = None

        self._handlers: dict[MessageCategory, Callable[[MessageType, bytes], None]] = {
            MessageCategory.HANDSHAKE: self._handle_handshake,
            MessageCategory.DISCONNECT: self._handle_disconnect,
            MessageCategory.KEEPALIVE: self._handle_keepalive,
            MessageCategory.DEVICE_INFO: self._handle_device_info,
            MessageCategory.LIST_ENTITY: self._handle_list_entity,
            MessageCategory.LIST_DONE: self._handle_list_done,
            MessageCategory.STATE: self._handle_state,
            MessageCategory.TIME: self._handle_time,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(state={self._context.state})"

    @property
    def context(self) -> ProtocolContext:
        return self._context

    @property
    def state(self) -> ConnectionState:
        return self._context.state

    @property
    def catalog(self) -> EntityCatalog:
        return self._catalog

    @property
    def device_info(self) -> DeviceInfo | None:
        return self._device_info

    @property
    def is_connected(self) -> bool:
        return self._transport is not None and not self._transport.is_closing()

    def _emit(self, event: str, *args: Any) -> None:
        """Pass an event to the handler, never letting its exceptions escape."""
        try:
            self._event_handler(event, *args)
        except Exception:  # noqa: BLE001
            self._logger.exception("Event handler failed for: %s", event)

    def send(self, cmd: Command) -> bool:
        """Write a command to the transport (fire-and-forget).

        Returns False (and writes nothing) if there is no connection.
        """
        if not self.is_connected:
            self._logger.debug("Not connected, unable to send: %r", cmd)
            return False

        self._logger.debug("Sending: %r", cmd)
        self._transport.write(cmd.frame)  # type: ignore[union-attr]
        return True

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        """Start the handshake as soon as the TCP connection is established."""
        self._transport = transport  # type: ignore[assignment]
        self._buffer.clear()

        self._logger.info("Connected to: %s", transport.get_extra_info("peername"))
        self._context.connection_made()
        self.send(Command.hello(self._client_info))

    def connection_lost(self, exc: Exception | None) -> None:
        """Tear down the session, logging the (categorised) reason, if any."""
        if exc is not None:
            self._logger.error("%s", socket_error(exc))
        else:
            self._logger.info("Socket closed.")
        self._teardown()

    def disconnect(self) -> None:
        """Close the connection, and tear down the session."""
        if self._transport is not None:
            self._transport.close()
        self._teardown()

    def _teardown(self) -> None:
        """Discard the session, and emit a disconnect event (once)."""
        was_active = self._transport is not None

        self._transport = None
        self._buffer.clear()
        self._catalog.clear()
        self._device_info = None

        if self._context.state != ConnectionState.DISCONNECTED:
            self._context.connection_lost()
        if was_active:
            self._emit(SZ_DISCONNECT)

    def data_received(self, data: bytes) -> None:
        """Process every frame that is now complete, in the order received."""
        for frame in self._buffer.feed(data):
            self._frame_received(frame)
            if self._transport is None:  # the frame caused a disconnect
                break

    def _frame_received(self, frame: Frame) -> None:
        self._emit(SZ_MESSAGE, frame.msg_type, frame.payload)

        msg_type = MessageType.lookup(frame.msg_type)
        handler = None if msg_type is None else self._handlers.get(msg_type.category)

        if msg_type is None or handler is None:
            name = frame.msg_type if msg_type is None else msg_type.name
            self._logger.warning(
                "%s",
                UnhandledMessageType(
                    f"Unhandled message type: {name} | payload: {frame.payload.hex()}"
                ),
            )
            return

        handler(msg_type, frame.payload)

    def _handle_handshake(self, msg_type: MessageType, payload: bytes) -> None:
        self._context.msg_received(msg_type)

        if msg_type == MessageType.HELLO_RESPONSE:
            self._logger.debug("Hello response received")
            self.send(Command.connect())

        else:  # MessageType.CONNECT_RESPONSE
            self._logger.debug("Connect response received")
            self.send(Command.device_info_request())
            self.send(Command.list_entities_request())

    def _handle_disconnect(self, msg_type: MessageType, payload: bytes) -> None:
        if msg_type == MessageType.DISCONNECT_REQUEST:
            self._logger.info("Disconnect requested by the device")
            self.send(Command.disconnect_response())
        self.disconnect()

    def _handle_keepalive(self, msg_type: MessageType, payload: bytes) -> None:
        if msg_type == MessageType.PING_REQUEST:
            self.send(Command.ping_response())
        self._emit(SZ_HEARTBEAT)

    def _handle_device_info(self, msg_type: MessageType, payload: bytes) -> None:
        self._device_info = decode_device_info(payload)
        self._logger.info(
            "Device info: %s (%s)",
            self._device_info.name,
            self._device_info.esphome_version,
        )
        self._emit(SZ_CONNECT, self._device_info)

    def _handle_list_entity(self, msg_type: MessageType, payload: bytes) -> None:
        if (ent := decode_list_entity(msg_type, payload)) is None:
            self._logger.warning(
                "Skipping %s without a key or name: %s", msg_type.name, payload.hex()
            )
            return
        self._catalog.register(ent.key, ent.name, ent.type)

    def _handle_list_done(self, msg_type: MessageType, payload: bytes) -> None:
        self._logger.info("Discovered %s entities", len(self._catalog))
        self._emit(SZ_ENTITIES, self._catalog.entities)

        self._context.msg_received(msg_type)
        self.send(Command.subscribe_states_request())

    def _handle_state(self, msg_type: MessageType, payload: bytes) -> None:
        if (event := translate_state(msg_type, payload, self._catalog)) is None:
            return
        self._emit(SZ_TELEMETRY, event)
        self._emit(event.type, event)

    def _handle_time(self, msg_type: MessageType, payload: bytes) -> None:
        if msg_type == MessageType.GET_TIME_REQUEST:
            self.send(Command.get_time_response(int(time.time())))
            return

        epoch = decode_fields(payload, self._logger).get_fixed32(1)
        if epoch is None:
            self._logger.warning("Time response without a timestamp: %s", payload.hex())
            return
        self._emit(SZ_TIME, epoch)
