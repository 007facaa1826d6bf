#!/usr/bin/env python3
"""Ratgdo API - a minimal, schema-less decoder/encoder for protobuf-style fields.

Only the four wire types used by the device protocol are supported, and there
are no nested messages: a payload decodes to a map of field number to the list of
values seen for that field (a repeated field simply has more than one value).

The caller decides how to interpret a value (e.g. a FIXED32 field may be a uint32
or a float32, a LENGTH_DELIMITED field may be text or raw bytes).
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import Final, NamedTuple

from .const import FIXED32_SIZE, FIXED64_SIZE, WireType
from .exceptions import ProtocolError, UnsupportedWireType
from .varint import decode_varint, encode_varint

_LOGGER = logging.getLogger(__name__)

_FLOAT32: Final = struct.Struct("<f")
_FLOAT64: Final = struct.Struct("<d")
_UINT32: Final = struct.Struct("<I")


class FieldValue(NamedTuple):
    """A decoded field value, tagged by its wire type.

    VARINT -> int, FIXED64 -> float, LENGTH_DELIMITED -> bytes, FIXED32 -> 4 bytes
    """

    wire_type: WireType
    value: int | float | bytes


class FieldMap(dict[int, list[FieldValue]]):
    """The fields of a decoded message, with typed accessors.

    Each accessor looks at the first value of a field only, and returns None if
    the field is absent or has an incompatible wire type.
    """

    def first(self, field_num: int) -> FieldValue | None:
        values = self.get(field_num)
        return values[0] if values else None

    def get_int(self, field_num: int) -> int | None:
        """Return a VARINT field as an integer."""
        if (fld := self.first(field_num)) is None or fld.wire_type != WireType.VARINT:
            return None
        return fld.value  # type: ignore[return-value]

    def get_bool(self, field_num: int) -> bool | None:
        value = self.get_int(field_num)
        return None if value is None else value == 1

    def get_bytes(self, field_num: int) -> bytes | None:
        """Return the raw bytes of a LENGTH_DELIMITED (or FIXED32) field."""
        if (fld := self.first(field_num)) is None or not isinstance(fld.value, bytes):
            return None
        return fld.value

    def get_str(self, field_num: int) -> str | None:
        """Return a LENGTH_DELIMITED field as (UTF-8) text."""
        if (raw := self.get_bytes(field_num)) is None:
            return None
        return raw.decode("utf-8", errors="replace")

    def get_fixed32(self, field_num: int) -> int | None:
        """Return a 4-byte field as a little-endian uint32."""
        if (raw := self.get_bytes(field_num)) is None or len(raw) != FIXED32_SIZE:
            return None
        return int(_UINT32.unpack(raw)[0])

    def get_float32(self, field_num: int) -> float | None:
        """Return a 4-byte field as a little-endian float32."""
        if (raw := self.get_bytes(field_num)) is None or len(raw) != FIXED32_SIZE:
            return None
        return float(_FLOAT32.unpack(raw)[0])

    def get_entity_key(self, field_num: int = 1) -> int | None:
        """Return an entity key, which is usually a fixed32 (but allow a varint)."""
        if (fld := self.first(field_num)) is None:
            return None
        if fld.wire_type == WireType.VARINT:
            return fld.value  # type: ignore[return-value]
        return self.get_fixed32(field_num)

    def get_telemetry_value(self, field_num: int) -> int | float | str | None:
        """Return a state value: 4 bytes are a float32, other bytes are text."""
        if (fld := self.first(field_num)) is None:
            return None
        if not isinstance(fld.value, bytes):
            return fld.value
        if len(fld.value) == FIXED32_SIZE:
            return float(_FLOAT32.unpack(fld.value)[0])
        return fld.value.decode("utf-8", errors="replace")


def decode_fields(payload: bytes, logger: logging.Logger | None = None) -> FieldMap:
    """Decode a message payload into a map of field number -> [values].

    Decoding stops at an unsupported wire type (or a truncated field), returning
    the fields decoded so far, as that error only affects the current message.
    """
    logger = logger or _LOGGER
    fields = FieldMap()

    offset = 0
    while offset < len(payload):
        try:
            value, offset, field_num = _decode_field(payload, offset)
        except UnsupportedWireType as err:
            logger.warning("%s", err)
            return fields
        except ProtocolError as err:
            logger.warning("Truncated message (%s): %s", err, payload.hex())
            return fields

        fields.setdefault(field_num, []).append(value)

    return fields


def _decode_field(payload: bytes, offset: int) -> tuple[FieldValue, int, int]:
    """Decode the field at offset, returning (value, next_offset, field_num)."""

    if (res := decode_varint(payload, offset)) is None:
        raise ProtocolError(f"incomplete tag at offset {offset}")
    tag, tag_len = res
    offset += tag_len

    field_num, wire_type = tag >> 3, tag & 0x07

    if wire_type == WireType.VARINT:
        if (res := decode_varint(payload, offset)) is None:
            raise ProtocolError(f"incomplete varint for field {field_num}")
        return FieldValue(WireType.VARINT, res[0]), offset + res[1], field_num

    if wire_type == WireType.FIXED64:
        end = offset + FIXED64_SIZE
        if end > len(payload):
            raise ProtocolError(f"incomplete fixed64 for field {field_num}")
        value = float(_FLOAT64.unpack_from(payload, offset)[0])
        return FieldValue(WireType.FIXED64, value), end, field_num

    if wire_type == WireType.LENGTH_DELIMITED:
        if (res := decode_varint(payload, offset)) is None:
            raise ProtocolError(f"incomplete length for field {field_num}")
        start = offset + res[1]
        end = start + res[0]
        if end > len(payload):
            raise ProtocolError(f"incomplete bytes for field {field_num}")
        return FieldValue(WireType.LENGTH_DELIMITED, payload[start:end]), end, field_num

    if wire_type == WireType.FIXED32:
        end = offset + FIXED32_SIZE
        if end > len(payload):
            raise ProtocolError(f"incomplete fixed32 for field {field_num}")
        return FieldValue(WireType.FIXED32, payload[offset:end]), end, field_num

    raise UnsupportedWireType(f"Unsupported wire type {wire_type}.")


@dataclass(frozen=True)
class ProtoField:
    """A field of an outbound message."""

    field_number: int
    wire_type: WireType
    value: int | bytes

    @classmethod
    def varint(cls, field_number: int, value: int | bool) -> ProtoField:
        return cls(field_number, WireType.VARINT, int(value))

    @classmethod
    def fixed32(cls, field_number: int, value: int | bytes) -> ProtoField:
        return cls(field_number, WireType.FIXED32, value)

    @classmethod
    def float32(cls, field_number: int, value: float) -> ProtoField:
        return cls(field_number, WireType.FIXED32, float32(value))

    @classmethod
    def string(cls, field_number: int, value: str) -> ProtoField:
        return cls(field_number, WireType.LENGTH_DELIMITED, value.encode("utf-8"))


def float32(value: float) -> bytes:
    """Pack a float as a little-endian float32."""
    return _FLOAT32.pack(value)


def encode_fields(fields: list[ProtoField]) -> bytes:
    """Encode an (ordered) list of fields as a message payload."""
    parts: list[bytes] = []

    for fld in fields:
        parts.append(encode_varint((fld.field_number << 3) | fld.wire_type))

        if fld.wire_type == WireType.VARINT:
            assert isinstance(fld.value, int)
            parts.append(encode_varint(fld.value))

        elif fld.wire_type == WireType.LENGTH_DELIMITED:
            assert isinstance(fld.value, bytes)
            parts.append(encode_varint(len(fld.value)))
            parts.append(fld.value)

        elif fld.wire_type == WireType.FIXED32:
            if isinstance(fld.value, int):
                parts.append(_UINT32.pack(fld.value))
            else:  # copied into a fresh 4-byte buffer
                parts.append(fld.value[:FIXED32_SIZE].ljust(FIXED32_SIZE, b"\x00"))

        else:
            raise UnsupportedWireType(f"Unsupported wire type {fld.wire_type}.")

    return b"".join(parts)
