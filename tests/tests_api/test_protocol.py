#!/usr/bin/env python3
"""Test the connection state machine of ratgdo_api/protocol."""

import asyncio
import errno
import logging
from unittest.mock import Mock, patch

import pytest

from ratgdo_api.command import Command
from ratgdo_api.const import MessageType
from ratgdo_api.device_info import DeviceInfo
from ratgdo_api.entities import Entity
from ratgdo_api.exceptions import TransportError
from ratgdo_api.fields import ProtoField, encode_fields
from ratgdo_api.frame import encode_frame
from ratgdo_api.protocol import ConnectionState, RatgdoProtocol, socket_error
from ratgdo_api.protocol.fsm import ProtocolContext

DOOR_KEY = 0xAABBCCDD


def _frame(msg_type: int, fields: list[ProtoField] | None = None) -> bytes:
    return encode_frame(msg_type, encode_fields(fields or []))


LIST_DOOR = _frame(
    MessageType.LIST_ENTITIES_COVER_RESPONSE,
    [
        ProtoField.string(1, "door"),
        ProtoField.fixed32(2, DOOR_KEY),
        ProtoField.string(3, "Door"),
    ],
)
DEVICE_INFO = _frame(
    MessageType.DEVICE_INFO_RESPONSE,
    [ProtoField.string(2, "ratgdo"), ProtoField.string(3, "AA:BB:CC:DD:EE:FF")],
)


@pytest.fixture
def transport() -> Mock:
    transport = Mock()
    transport.is_closing.return_value = False
    transport.get_extra_info.return_value = ("192.168.1.20", 6053)
    return transport


@pytest.fixture
def handler() -> Mock:
    return Mock()


@pytest.fixture
def protocol(handler: Mock, transport: Mock) -> RatgdoProtocol:
    protocol = RatgdoProtocol(handler)
    protocol.context.connecting()
    protocol.connection_made(transport)
    return protocol


def _written(transport: Mock) -> list[bytes]:
    return [c.args[0] for c in transport.write.call_args_list]


def _events(handler: Mock, name: str) -> list[tuple]:
    return [c.args[1:] for c in handler.call_args_list if c.args[0] == name]


def _subscribe(protocol: RatgdoProtocol) -> None:
    protocol.data_received(
        _frame(MessageType.HELLO_RESPONSE)
        + _frame(MessageType.CONNECT_RESPONSE)
        + DEVICE_INFO
        + LIST_DOOR
        + _frame(MessageType.LIST_ENTITIES_DONE_RESPONSE)
    )


def test_hello_on_connect(protocol: RatgdoProtocol, transport: Mock) -> None:
    assert _written(transport) == [Command.hello().frame]
    assert protocol.state == ConnectionState.AWAITING_HELLO


def test_handshake(protocol: RatgdoProtocol, transport: Mock, handler: Mock) -> None:
    protocol.data_received(_frame(MessageType.HELLO_RESPONSE))
    assert protocol.state == ConnectionState.AWAITING_CONNECT
    assert _written(transport)[-1] == Command.connect().frame

    protocol.data_received(_frame(MessageType.CONNECT_RESPONSE))
    assert protocol.state == ConnectionState.ENUMERATING
    assert _written(transport)[-2:] == [
        Command.device_info_request().frame,
        Command.list_entities_request().frame,
    ]

    protocol.data_received(DEVICE_INFO + LIST_DOOR)
    assert protocol.state == ConnectionState.ENUMERATING
    assert protocol.device_info == DeviceInfo(
        uses_password=False,
        name="ratgdo",
        mac_address="AA:BB:CC:DD:EE:FF",
        has_deep_sleep=False,
    )
    assert _events(handler, "connect") == [(protocol.device_info,)]

    protocol.data_received(_frame(MessageType.LIST_ENTITIES_DONE_RESPONSE))
    assert protocol.state == ConnectionState.SUBSCRIBED
    assert _written(transport)[-1] == Command.subscribe_states_request().frame
    assert _events(handler, "entities") == [([Entity(DOOR_KEY, "Door", "cover")],)]


def test_handshake_in_one_byte_chunks(
    protocol: RatgdoProtocol, transport: Mock
) -> None:
    data = _frame(MessageType.HELLO_RESPONSE) + _frame(MessageType.CONNECT_RESPONSE)
    for idx in range(len(data)):
        protocol.data_received(data[idx : idx + 1])

    assert protocol.state == ConnectionState.ENUMERATING
    assert len(_written(transport)) == 4  # hello, connect, device info, list


def test_every_frame_is_a_message_event(
    protocol: RatgdoProtocol, handler: Mock
) -> None:
    protocol.data_received(_frame(MessageType.PING_RESPONSE) + _frame(99, []))

    assert _events(handler, "message") == [(8, b""), (99, b"")]


def test_state_update_events(protocol: RatgdoProtocol, handler: Mock) -> None:
    _subscribe(protocol)
    protocol.data_received(
        _frame(
            MessageType.COVER_STATE,
            [
                ProtoField.fixed32(1, DOOR_KEY),
                ProtoField.float32(3, 0.5),
                ProtoField.varint(5, 0),
            ],
        )
    )

    (telemetry,) = _events(handler, "telemetry")
    assert telemetry[0].entity == "Door"
    assert telemetry[0].value == "stopped"
    assert _events(handler, "cover") == [telemetry]


def test_ping_request(protocol: RatgdoProtocol, transport: Mock, handler: Mock) -> None:
    protocol.data_received(_frame(MessageType.PING_REQUEST))

    assert _written(transport)[-1] == Command.ping_response().frame
    assert _events(handler, "heartbeat") == [()]


def test_ping_response(
    protocol: RatgdoProtocol, transport: Mock, handler: Mock
) -> None:
    protocol.data_received(_frame(MessageType.PING_RESPONSE))

    assert len(_written(transport)) == 1  # only the hello
    assert _events(handler, "heartbeat") == [()]


def test_get_time_request(protocol: RatgdoProtocol, transport: Mock) -> None:
    with patch("ratgdo_api.protocol.base.time") as mock_time:
        mock_time.time.return_value = 1_700_000_000.9
        protocol.data_received(_frame(MessageType.GET_TIME_REQUEST))

    assert _written(transport)[-1] == Command.get_time_response(1_700_000_000).frame


def test_get_time_response(protocol: RatgdoProtocol, handler: Mock) -> None:
    protocol.data_received(
        _frame(MessageType.GET_TIME_RESPONSE, [ProtoField.fixed32(1, 1_700_000_000)])
    )
    assert _events(handler, "time") == [(1_700_000_000,)]


def test_disconnect_request(
    protocol: RatgdoProtocol, transport: Mock, handler: Mock
) -> None:
    _subscribe(protocol)
    protocol.data_received(_frame(MessageType.DISCONNECT_REQUEST))

    assert _written(transport)[-1] == Command.disconnect_response().frame
    transport.close.assert_called_once()
    assert protocol.state == ConnectionState.DISCONNECTED
    assert _events(handler, "disconnect") == [()]


def test_frames_after_a_disconnect_are_ignored(
    protocol: RatgdoProtocol, handler: Mock
) -> None:
    protocol.data_received(
        _frame(MessageType.DISCONNECT_RESPONSE) + _frame(MessageType.PING_REQUEST)
    )
    assert _events(handler, "heartbeat") == []


def test_connection_lost_clears_session(
    protocol: RatgdoProtocol, handler: Mock, caplog: pytest.LogCaptureFixture
) -> None:
    _subscribe(protocol)
    protocol.data_received(b"\x00\x0e")  # a partial frame
    assert len(protocol.catalog) == 1

    with caplog.at_level(logging.ERROR):
        protocol.connection_lost(ConnectionResetError(errno.ECONNRESET, "reset"))

    assert "Connection reset." in caplog.text
    assert protocol.state == ConnectionState.DISCONNECTED
    assert len(protocol.catalog) == 0
    assert protocol.device_info is None
    assert _events(handler, "disconnect") == [()]


def test_disconnect_is_emitted_once(
    protocol: RatgdoProtocol, transport: Mock, handler: Mock
) -> None:
    protocol.disconnect()
    protocol.connection_lost(None)  # as invoked by the transport, after close()

    assert _events(handler, "disconnect") == [()]


def test_send_when_not_connected(handler: Mock) -> None:
    protocol = RatgdoProtocol(handler)
    assert protocol.send(Command.ping_request()) is False


def test_unhandled_message_type(
    protocol: RatgdoProtocol, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.WARNING):
        protocol.data_received(encode_frame(99, b"\x01\x02"))
        protocol.data_received(_frame(MessageType.HELLO_REQUEST))

    assert "Unhandled message type: 99 | payload: 0102" in caplog.text
    assert "Unhandled message type: HELLO_REQUEST" in caplog.text


def test_list_entity_without_name_is_skipped(
    protocol: RatgdoProtocol, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.WARNING):
        protocol.data_received(
            _frame(
                MessageType.LIST_ENTITIES_LIGHT_RESPONSE, [ProtoField.fixed32(2, 1)]
            )
        )

    assert len(protocol.catalog) == 0
    assert "Skipping LIST_ENTITIES_LIGHT_RESPONSE" in caplog.text


def test_garbage_is_skipped(protocol: RatgdoProtocol, handler: Mock) -> None:
    protocol.data_received(b"\xde\xad" + _frame(MessageType.PING_RESPONSE))
    assert _events(handler, "heartbeat") == [()]


def test_handler_exceptions_are_contained(
    transport: Mock, caplog: pytest.LogCaptureFixture
) -> None:
    handler = Mock(side_effect=RuntimeError("oops"))
    protocol = RatgdoProtocol(handler)
    protocol.connection_made(transport)

    with caplog.at_level(logging.ERROR):
        protocol.data_received(_frame(MessageType.PING_REQUEST))

    assert "Event handler failed for: message" in caplog.text
    assert _written(transport)[-1] == Command.ping_response().frame


@pytest.mark.parametrize(
    "err,msg",
    [
        (ConnectionResetError(errno.ECONNRESET, "reset"), "Connection reset."),
        (OSError(errno.EHOSTUNREACH, "No route to host"), "Ratgdo unreachable."),
        (OSError(errno.EHOSTDOWN, "Host is down"), "Ratgdo unreachable."),
        (TimeoutError(errno.ETIMEDOUT, "timed out"), "Connection timed out."),
        (TimeoutError(), "Connection timed out."),
        (ConnectionRefusedError(errno.ECONNREFUSED, "refused"), "Socket error: "),
    ],
)
def test_socket_error(err: Exception, msg: str) -> None:
    assert str(socket_error(err)).startswith(msg)


def test_fsm_transitions(caplog: pytest.LogCaptureFixture) -> None:
    context = ProtocolContext()
    assert context.state == ConnectionState.DISCONNECTED

    context.connecting()
    context.connection_made()
    context.msg_received(MessageType.PING_REQUEST)  # not a step of the handshake
    assert context.state == ConnectionState.AWAITING_HELLO

    with caplog.at_level(logging.WARNING):
        context.msg_received(MessageType.LIST_ENTITIES_DONE_RESPONSE)  # out of order

    assert context.state == ConnectionState.SUBSCRIBED
    assert "Unexpected FSM state transition" in caplog.text

    context.connection_lost()
    assert not context.is_connected


async def test_wait_for_state() -> None:
    context = ProtocolContext()
    context.connecting()
    context.connection_made()

    with pytest.raises(TransportError):
        await context.wait_for_state(ConnectionState.SUBSCRIBED, timeout=0.01)

    await context.wait_for_state(ConnectionState.AWAITING_HELLO, timeout=0.01)


async def test_wait_for_state_connection_lost() -> None:
    context = ProtocolContext()
    context.connecting()

    task = asyncio.create_task(
        context.wait_for_state(ConnectionState.SUBSCRIBED, timeout=1)
    )
    await asyncio.sleep(0)
    context.connection_lost()

    with pytest.raises(TransportError, match="Connection lost"):
        await task
