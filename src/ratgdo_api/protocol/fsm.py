#!/usr/bin/env python3
"""Ratgdo API - the connection finite state machine.

The handshake is a strict sequence (hello, connect, device info, enumerate,
subscribe), after which the connection stays subscribed until it is lost.
"""

from __future__ import annotations

import asyncio
import logging
from enum import StrEnum
from typing import Final

from ..const import MessageType
from ..exceptions import ProtocolFsmError, TransportError

_DBG_USE_STRICT_TRANSITIONS: Final[bool] = False

_LOGGER = logging.getLogger(__name__)


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_HELLO = "awaiting_hello"  # HelloRequest sent
    AWAITING_CONNECT = "awaiting_connect"  # ConnectRequest sent
    ENUMERATING = "enumerating"  # DeviceInfoRequest & ListEntitiesRequest sent
    SUBSCRIBED = "subscribed"  # SubscribeStatesRequest sent


_DISCONNECTED = ConnectionState.DISCONNECTED

_TRANSITIONS: Final[dict[ConnectionState, frozenset[ConnectionState]]] = {
    ConnectionState.DISCONNECTED: frozenset({ConnectionState.CONNECTING}),
    ConnectionState.CONNECTING: frozenset(
        {ConnectionState.AWAITING_HELLO, _DISCONNECTED}
    ),
    ConnectionState.AWAITING_HELLO: frozenset(
        {ConnectionState.AWAITING_CONNECT, _DISCONNECTED}
    ),
    ConnectionState.AWAITING_CONNECT: frozenset(
        {ConnectionState.ENUMERATING, _DISCONNECTED}
    ),
    ConnectionState.ENUMERATING: frozenset({ConnectionState.SUBSCRIBED, _DISCONNECTED}),
    ConnectionState.SUBSCRIBED: frozenset({_DISCONNECTED}),
}

# the inbound messages that advance the handshake
_HANDSHAKE_STEPS: Final[dict[MessageType, ConnectionState]] = {
    MessageType.HELLO_RESPONSE: ConnectionState.AWAITING_CONNECT,
    MessageType.CONNECT_RESPONSE: ConnectionState.ENUMERATING,
    MessageType.LIST_ENTITIES_DONE_RESPONSE: ConnectionState.SUBSCRIBED,
}


class ProtocolContext:
    """The context for the connection state machine."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or _LOGGER

        self._state = ConnectionState.DISCONNECTED
        self._waiters: list[tuple[ConnectionState, asyncio.Future[None]]] = []

    def __repr__(self) -> str:
        return f"<ProtocolContext state={self._state}>"

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state not in (
            ConnectionState.DISCONNECTED,
            ConnectionState.CONNECTING,
        )

    def set_state(self, state: ConnectionState) -> None:
        """Transition the state machine to a new state.

        An unexpected transition is logged (or raises ProtocolFsmError, if strict),
        but is made anyway: the device, not the client, drives the handshake.
        """
        if state == self._state:
            return

        transition = f"{self._state}->{state}"

        if state not in _TRANSITIONS[self._state]:
            if _DBG_USE_STRICT_TRANSITIONS:
                raise ProtocolFsmError(f"Invalid FSM state transition: {transition}")
            self._logger.warning("Unexpected FSM state transition: %s", transition)
        else:
            self._logger.debug("FSM state changed %s", transition)

        self._state = state
        self._wake_waiters()

    def connecting(self) -> None:
        self.set_state(ConnectionState.CONNECTING)

    def connection_made(self) -> None:
        self.set_state(ConnectionState.AWAITING_HELLO)

    def connection_lost(self) -> None:
        self.set_state(ConnectionState.DISCONNECTED)

    def msg_received(self, msg_type: MessageType) -> None:
        """Advance the handshake, if the message is one of its steps."""
        if (state := _HANDSHAKE_STEPS.get(msg_type)) is not None:
            self.set_state(state)

    def _wake_waiters(self) -> None:
        for entry in list(self._waiters):
            target, fut = entry
            if fut.done():
                self._waiters.remove(entry)
            elif self._state == target:
                fut.set_result(None)
                self._waiters.remove(entry)
            elif self._state == ConnectionState.DISCONNECTED:
                fut.set_exception(
                    TransportError(f"Connection lost before reaching: {target}")
                )
                self._waiters.remove(entry)

    async def wait_for_state(
        self, state: ConnectionState, timeout: float | None = None
    ) -> None:
        """A courtesy function to wait until the FSM reaches a given state.

        Will raise TransportError if the connection is lost beforehand, or if the
        state isn't reached within timeout seconds.
        """
        if self._state == state:
            return

        fut: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        entry = (state, fut)
        self._waiters.append(entry)

        try:
            await asyncio.wait_for(fut, timeout)
        except TimeoutError as err:
            raise TransportError(
                f"FSM did not reach {state} within {timeout} secs (is {self._state})"
            ) from err
        finally:
            if entry in self._waiters:
                self._waiters.remove(entry)
