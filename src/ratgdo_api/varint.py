#!/usr/bin/env python3
"""Ratgdo API - base-128 variable-length integers (varints).

Each byte holds 7 value bits, least significant group first; the high bit of
every byte but the last is set as a continuation flag.
"""

from __future__ import annotations

from typing import TypeAlias

BufferT: TypeAlias = bytes | bytearray | memoryview


def encode_varint(value: int) -> bytes:
    """Return the minimal varint encoding of a non-negative integer."""
    if value < 0:
        raise ValueError(f"Varints must be non-negative: {value}")

    result = bytearray()
    while value > 0x7F:
        result.append((value & 0x7F) | 0x80)
        value >>= 7
    result.append(value)
    return bytes(result)


def decode_varint(data: BufferT, offset: int = 0) -> tuple[int, int] | None:
    """Decode a varint from data, starting at offset.

    Returns a tuple of (value, bytes_read), or None if data is exhausted before
    the final byte of the varint (i.e. more data is needed). Never raises at a
    stream boundary.
    """
    result = 0
    shift = 0

    for idx in range(offset, len(data)):
        byte = data[idx]
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, idx - offset + 1
        shift += 7

    return None
