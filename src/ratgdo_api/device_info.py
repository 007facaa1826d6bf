#!/usr/bin/env python3
"""Ratgdo API - the DeviceInfoResponse of the remote device."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from .fields import decode_fields


@dataclass(frozen=True)
class DeviceInfo:
    """Information about the device, as received once per session."""

    uses_password: bool | None = None  # 1
    name: str | None = None  # 2
    mac_address: str | None = None  # 3
    esphome_version: str | None = None  # 4
    compilation_time: str | None = None  # 5
    model: str | None = None  # 6
    has_deep_sleep: bool | None = None  # 7
    project_name: str | None = None  # 8
    project_version: str | None = None  # 9
    webserver_port: int | None = None  # 10
    legacy_bluetooth_proxy_version: int | None = None  # 11
    bluetooth_proxy_feature_flags: int | None = None  # 12

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def decode_device_info(payload: bytes) -> DeviceInfo:
    """Decode a DeviceInfoResponse payload."""
    fields = decode_fields(payload)

    return DeviceInfo(
        uses_password=fields.get_int(1) == 1,
        name=fields.get_str(2),
        mac_address=fields.get_str(3),
        esphome_version=fields.get_str(4),
        compilation_time=fields.get_str(5),
        model=fields.get_str(6),
        has_deep_sleep=fields.get_int(7) == 1,
        project_name=fields.get_str(8),
        project_version=fields.get_str(9),
        webserver_port=fields.get_int(10),
        legacy_bluetooth_proxy_version=fields.get_int(11),
        bluetooth_proxy_feature_flags=fields.get_int(12),
    )
