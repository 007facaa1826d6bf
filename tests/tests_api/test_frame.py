#!/usr/bin/env python3
"""Test ratgdo_api/frame.py"""

import logging

import pytest

from ratgdo_api.const import MessageType
from ratgdo_api.frame import Frame, FrameBuffer, encode_frame

PAYLOAD = bytes.fromhex("0d0403020110011d0000003f2800")


def test_encode_frame() -> None:
    assert encode_frame(MessageType.HELLO_RESPONSE, b"") == b"\x00\x00\x02"
    assert encode_frame(MessageType.COVER_STATE, PAYLOAD) == b"\x00\x0e\x16" + PAYLOAD


def test_encode_frame_long_payload() -> None:
    payload = bytes(200)  # length needs a 2-byte varint
    assert encode_frame(7, payload)[:4] == bytes.fromhex("00c80107")


def test_feed_whole() -> None:
    buffer = FrameBuffer()
    frames = buffer.feed(encode_frame(MessageType.COVER_STATE, PAYLOAD))

    assert frames == [Frame(MessageType.COVER_STATE, PAYLOAD)]
    assert len(buffer) == 0


def test_feed_one_byte_at_a_time() -> None:
    """Partial delivery yields exactly one message, identical to whole delivery."""
    data = encode_frame(MessageType.COVER_STATE, PAYLOAD)
    buffer = FrameBuffer()

    frames: list[Frame] = []
    for idx in range(len(data)):
        frames += buffer.feed(data[idx : idx + 1])

    assert frames == FrameBuffer().feed(data)
    assert len(frames) == 1


def test_feed_many_frames() -> None:
    data = b"".join(
        encode_frame(t, p)
        for t, p in (
            (MessageType.PING_REQUEST, b""),
            (MessageType.COVER_STATE, PAYLOAD),
            (MessageType.PING_RESPONSE, b""),
        )
    )
    frames = FrameBuffer().feed(data + b"\x00\x0e")  # + an incomplete frame

    assert [f.msg_type for f in frames] == [7, 22, 8]


def test_incomplete_frame_is_kept() -> None:
    buffer = FrameBuffer()
    data = encode_frame(MessageType.COVER_STATE, PAYLOAD)

    assert buffer.feed(data[:-1]) == []
    assert len(buffer) == len(data) - 1
    assert buffer.feed(data[-1:]) == [Frame(MessageType.COVER_STATE, PAYLOAD)]


def test_resync_after_garbage(caplog: pytest.LogCaptureFixture) -> None:
    """Garbage before a valid frame is dropped, and the frame still decodes."""
    buffer = FrameBuffer()

    with caplog.at_level(logging.ERROR):
        frames = buffer.feed(
            b"\xff\xfe\xfd" + encode_frame(MessageType.COVER_STATE, PAYLOAD)
        )

    assert frames == [Frame(MessageType.COVER_STATE, PAYLOAD)]
    assert buffer.framing_errors == 1
    assert "missing 0x00 (3 bytes dropped)" in caplog.text


def test_resync_without_sentinel() -> None:
    buffer = FrameBuffer()

    assert buffer.feed(b"\x01\x02\x03\x04") == []
    assert len(buffer) == 0
    assert buffer.framing_errors == 1


def test_clear() -> None:
    buffer = FrameBuffer()
    buffer.feed(b"\x00\x0e\x16\x0d")
    buffer.clear()

    assert len(buffer) == 0
    assert buffer.feed(encode_frame(8, b"")) == [Frame(8, b"")]
