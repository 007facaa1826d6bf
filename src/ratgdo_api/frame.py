#!/usr/bin/env python3
"""Ratgdo API - framing of messages on the TCP stream.

Each frame is: 0x00 | varint(len(payload)) | varint(msg_type) | payload
"""

from __future__ import annotations

import logging
from typing import NamedTuple

from .const import FRAME_SENTINEL, MIN_FRAME_SIZE
from .exceptions import FramingError
from .varint import decode_varint, encode_varint

_LOGGER = logging.getLogger(__name__)


class Frame(NamedTuple):
    """A message, as unwrapped from its frame."""

    msg_type: int
    payload: bytes


def encode_frame(msg_type: int, payload: bytes) -> bytes:
    """Wrap a payload in a frame, ready to be written to the socket."""
    return b"".join(
        (
            bytes((FRAME_SENTINEL,)),
            encode_varint(len(payload)),
            encode_varint(msg_type),
            payload,
        )
    )


class FrameBuffer:
    """The receive buffer: accumulates stream chunks and yields complete frames.

    Bytes are only discarded once a complete frame has been consumed, or when
    resynchronising to the next sentinel after a framing error.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._buf = bytearray()
        self._logger = logger or _LOGGER

        self.framing_errors = 0

    def __len__(self) -> int:
        return len(self._buf)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(buffered={len(self._buf)})"

    def clear(self) -> None:
        """Discard any buffered bytes (e.g. a partial frame at disconnect)."""
        self._buf.clear()

    def feed(self, data: bytes) -> list[Frame]:
        """Append a chunk of the stream, and return any frames now complete."""
        self._buf.extend(data)

        frames: list[Frame] = []
        while (frame := self._next_frame()) is not None:
            frames.append(frame)
        return frames

    def _resync(self) -> None:
        """Drop bytes up to the next sentinel (or all of them, if there is none)."""
        self.framing_errors += 1

        idx = self._buf.find(FRAME_SENTINEL)
        dropped = len(self._buf) if idx < 0 else idx
        self._logger.error(
            "%s", FramingError(f"Framing error: missing 0x00 ({dropped} bytes dropped)")
        )

        if idx < 0:
            self._buf.clear()
        else:
            del self._buf[:idx]

    def _next_frame(self) -> Frame | None:
        """Consume and return the next frame, or None if none is yet complete."""
        while len(self._buf) >= MIN_FRAME_SIZE:
            if self._buf[0] != FRAME_SENTINEL:
                self._resync()
                continue

            if (length := decode_varint(self._buf, 1)) is None:
                return None
            msg_len, len_bytes = length

            if (type_ := decode_varint(self._buf, 1 + len_bytes)) is None:
                return None
            msg_type, type_bytes = type_

            header_size = 1 + len_bytes + type_bytes
            if len(self._buf) < header_size + msg_len:
                return None

            payload = bytes(self._buf[header_size : header_size + msg_len])
            del self._buf[: header_size + msg_len]
            return Frame(msg_type, payload)

        return None
