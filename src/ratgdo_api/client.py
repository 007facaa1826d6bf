#!/usr/bin/env python3
"""Ratgdo API - the client, i.e. the surface used by collaborators.

A client wraps one RatgdoProtocol per connection. Entity keys, device info and
the receive buffer belong to that connection; listeners belong to the client.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from .command import Command, CoverCommandT, LockCommandT
from .const import (
    DEFAULT_CLIENT_INFO,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_PORT,
    SZ_BUTTON,
    SZ_COVER,
    SZ_LIGHT,
    SZ_LOCK,
    SZ_SWITCH,
)
from .device_info import DeviceInfo
from .entities import Entity
from .exceptions import CommandInvalid, EntityNotFound, TransportError
from .protocol import ConnectionState, RatgdoProtocol, socket_error

ListenerT = Callable[..., Any]

_LOGGER = logging.getLogger(__name__)


class RatgdoClient:
    """A client for the ESPHome native API of a Ratgdo garage door opener."""

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_PORT,
        /,
        *,
        client_info: str = DEFAULT_CLIENT_INFO,
        logger: logging.Logger | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """Initialize the client.

        :param host: The hostname (or IP address) of the device.
        :type host: str
        :param port: The port of the device's native API, defaults to 6053.
        :type port: int
        :param client_info: How the client identifies itself in the HelloRequest.
        :type client_info: str
        :param logger: The logger to use, defaults to the module's logger.
        :type logger: logging.Logger | None
        :param loop: The event loop to use, defaults to the running loop.
        :type loop: asyncio.AbstractEventLoop | None
        """
        self.host = host
        self.port = port
        self.client_info = client_info

        self._logger = logger or _LOGGER
        self._loop = loop

        self._protocol: RatgdoProtocol | None = None
        self._listeners: dict[str, list[ListenerT]] = {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.host}:{self.port}, {self.state})"

    @property
    def state(self) -> ConnectionState:
        if self._protocol is None:
            return ConnectionState.DISCONNECTED
        return self._protocol.state

    @property
    def is_connected(self) -> bool:
        return self._protocol is not None and self._protocol.is_connected

    # connection management

    async def connect(self, timeout: float = DEFAULT_CONNECT_TIMEOUT) -> None:
        """Open the TCP connection; the handshake then proceeds in the background.

        Any existing connection is closed first. Will raise TransportError (after
        logging the reason) if the connection can't be made.
        """
        if self._protocol is not None:
            self.disconnect()

        loop = self._loop or asyncio.get_running_loop()
        protocol = RatgdoProtocol(
            self._dispatch, client_info=self.client_info, logger=self._logger
        )
        self._protocol = protocol

        self._logger.info("Connecting to %s:%s", self.host, self.port)
        protocol.context.connecting()

        try:
            await asyncio.wait_for(
                loop.create_connection(lambda: protocol, self.host, self.port),
                timeout,
            )
        except (OSError, TimeoutError) as err:
            exc = socket_error(err)
            self._logger.error("%s", exc)
            protocol.context.connection_lost()
            self._protocol = None
            raise exc from err

    def disconnect(self) -> None:
        """Close the connection (if any), discarding all session state."""
        if self._protocol is None:
            return
        protocol, self._protocol = self._protocol, None
        protocol.disconnect()

    async def wait_for_entities(self, timeout: float = DEFAULT_CONNECT_TIMEOUT) -> None:
        """A courtesy function to wait until entity discovery has completed.

        Will raise TransportError if that doesn't happen within timeout seconds.
        """
        if self._protocol is None:
            raise TransportError("Not connected: call connect() first")
        await self._protocol.context.wait_for_state(ConnectionState.SUBSCRIBED, timeout)

    # events

    def add_listener(self, event: str, callback: ListenerT) -> Callable[[], None]:
        """Add a callback for an event (e.g. 'telemetry', 'cover', 'disconnect').

        Returns a callable that can be used to subsequently remove the callback.
        """
        callbacks = self._listeners.setdefault(event, [])
        if callback not in callbacks:
            callbacks.append(callback)

        def del_listener() -> None:
            self.remove_listener(event, callback)

        return del_listener

    def remove_listener(self, event: str, callback: ListenerT) -> None:
        if callback in (callbacks := self._listeners.get(event, [])):
            callbacks.remove(callback)

    def _dispatch(self, event: str, *args: Any) -> None:
        for callback in list(self._listeners.get(event, [])):
            try:
                callback(*args)
            except Exception:  # noqa: BLE001
                self._logger.exception("Listener failed for event: %s", event)

    # queries

    def device_info(self) -> DeviceInfo | None:
        """Return the device info of the current session (immutable), if any."""
        return None if self._protocol is None else self._protocol.device_info

    def has_entity(self, id_: str) -> bool:
        return self._protocol is not None and self._protocol.catalog.has_entity(id_)

    def get_entity_by_id(self, id_: str) -> Entity | None:
        if self._protocol is None:
            return None
        return self._protocol.catalog.get_entity_by_id(id_)

    def get_entity_key(self, id_: str) -> int:
        """Return the (session-scoped) key of an entity.

        Will raise EntityNotFound if the id isn't in the catalog.
        """
        if self._protocol is None or (
            (key := self._protocol.catalog.key_for(id_)) is None
        ):
            raise EntityNotFound(f"Unknown entity: {id_}")
        return key

    def get_available_entity_ids(self) -> dict[str, list[str]]:
        if self._protocol is None:
            return {}
        return self._protocol.catalog.get_available_entity_ids()

    def get_entities_with_ids(self) -> list[tuple[str, Entity]]:
        if self._protocol is None:
            return []
        return self._protocol.catalog.get_entities_with_ids()

    def log_all_entity_ids(self) -> None:
        for type_, ids in self.get_available_entity_ids().items():
            self._logger.info("%s: %s", type_, ", ".join(ids))

    # commands

    def _send_entity_command(
        self, id_: str, type_: str, build: Callable[[int], Command]
    ) -> bool:
        """Resolve an entity id to its key, then build and send the command.

        An unknown id (or an invalid command) is logged, and nothing is sent.
        """
        try:
            key = self.get_entity_key(id_)
        except EntityNotFound as err:
            self._logger.warning("Unable to send %s command: %s", type_, err)
            return False

        try:
            cmd = build(key)
        except CommandInvalid as err:
            self._logger.warning("Unable to send %s command: %s", type_, err)
            return False

        assert self._protocol is not None  # mypy
        return self._protocol.send(cmd)

    def send_switch_command(self, id_: str, state: bool) -> bool:
        return self._send_entity_command(
            id_, SZ_SWITCH, lambda key: Command.switch(key, state)
        )

    def send_button_command(self, id_: str) -> bool:
        return self._send_entity_command(id_, SZ_BUTTON, Command.button)

    def send_cover_command(
        self,
        id_: str,
        /,
        *,
        command: CoverCommandT | None = None,
        position: float | None = None,
        tilt: float | None = None,
    ) -> bool:
        """Send a command to a cover (e.g. command='open', or position=0.5)."""
        return self._send_entity_command(
            id_,
            SZ_COVER,
            lambda key: Command.cover(
                key, command=command, position=position, tilt=tilt
            ),
        )

    def send_light_command(
        self,
        id_: str,
        /,
        *,
        state: bool | None = None,
        brightness: float | None = None,
    ) -> bool:
        return self._send_entity_command(
            id_,
            SZ_LIGHT,
            lambda key: Command.light(key, state=state, brightness=brightness),
        )

    def send_lock_command(
        self, id_: str, command: LockCommandT, /, code: str | None = None
    ) -> bool:
        return self._send_entity_command(
            id_, SZ_LOCK, lambda key: Command.lock(key, command, code=code)
        )

    def send_ping(self) -> bool:
        """Send a PingRequest (the device replies with a PingResponse)."""
        if self._protocol is None:
            self._logger.debug("Not connected, unable to send a ping")
            return False
        return self._protocol.send(Command.ping_request())
