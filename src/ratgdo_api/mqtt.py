#!/usr/bin/env python3
"""Ratgdo API - an MQTT bridge for the client's telemetry and commands.

Telemetry is published as JSON to <topic>/<device>/<entity_id>, and the door
state (e.g. 'stopped') is also published as plain text to <topic>/<device>/door.

Commands are received from <topic>/<device>/<entity_id>/set, for example:
    ratgdo/aabbccddeeff/cover-door/set      open | close | stop | 0-100
    ratgdo/aabbccddeeff/light-light/set     on | off
    ratgdo/aabbccddeeff/lock-lock_remotes/set  lock | unlock
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any, Final
from urllib.parse import unquote, urlparse

from paho.mqtt import MQTTException, client as mqtt
from paho.mqtt.enums import CallbackAPIVersion

from .client import RatgdoClient
from .const import (
    DEFAULT_MQTT_TOPIC,
    SZ_BUTTON,
    SZ_CONNECT,
    SZ_COVER,
    SZ_LIGHT,
    SZ_LOCK,
    SZ_SWITCH,
    SZ_TELEMETRY,
)
from .device_info import DeviceInfo
from .entities import entity_id
from .telemetry import CoverStateEvent, TelemetryT

_LOGGER = logging.getLogger(__name__)

MQTT_RECONNECT_INTERVAL: Final[int] = 60  # secs

_SZ_DOOR: Final = "door"
_SZ_SET: Final = "set"

_TRUE_VALUES: Final = ("on", "true", "1")
_FALSE_VALUES: Final = ("off", "false", "0")


def redact_url(url: str) -> str:
    """Return the URL with any password redacted, i.e. safe for logging."""
    parsed = urlparse(url)
    if not parsed.password:
        return url
    netloc = parsed.netloc.replace(f":{parsed.password}@", ":REDACTED@", 1)
    return parsed._replace(netloc=netloc).geturl()


def _as_bool(value: str) -> bool | None:
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    return None


def _as_fraction(value: str) -> float | None:
    """Convert a percentage (0-100) to a fraction (0.0-1.0)."""
    try:
        pct = float(value)
    except ValueError:
        return None
    return pct / 100 if 0 <= pct <= 100 else None


class MqttBridge:
    """Pass telemetry to, and commands from, an MQTT broker."""

    def __init__(
        self,
        client: RatgdoClient,
        broker_url: str,
        /,
        *,
        topic: str = DEFAULT_MQTT_TOPIC,
        device_id: str | None = None,
        mqtt_client: mqtt.Client | None = None,
    ) -> None:
        self._client = client
        self._broker_url = urlparse(broker_url)
        self._url = broker_url
        self._topic = topic.strip("/")
        self._device_id = device_id

        self._loop: asyncio.AbstractEventLoop | None = None
        self._removers: list[Callable[[], None]] = []
        self._connected = False

        if mqtt_client is None:
            mqtt_client = mqtt.Client(
                protocol=mqtt.MQTTv5, callback_api_version=CallbackAPIVersion.VERSION2
            )
        self.mqtt = mqtt_client

        self.mqtt.on_connect = self._on_connect
        self.mqtt.on_disconnect = self._on_disconnect
        self.mqtt.on_message = self._on_message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({redact_url(self._url)}, {self._topic})"

    @property
    def device_id(self) -> str:
        """Return the device segment of the topics (by default, the MAC address)."""
        if self._device_id:
            return self._device_id
        if (info := self._client.device_info()) and info.mac_address:
            return info.mac_address.replace(":", "").lower()
        return self._client.host

    @property
    def base_topic(self) -> str:
        return f"{self._topic}/{self.device_id}"

    def start(self) -> None:
        """Connect to the broker, and start passing telemetry (must be in a loop)."""
        self._loop = asyncio.get_running_loop()

        self._removers = [
            self._client.add_listener(SZ_CONNECT, self._on_device_connect),
            self._client.add_listener(SZ_TELEMETRY, self.publish_telemetry),
        ]

        self.mqtt.username_pw_set(
            unquote(self._broker_url.username or ""),
            unquote(self._broker_url.password or ""),
        )
        tls = self._broker_url.scheme == "mqtts"
        if tls:
            self.mqtt.tls_set()
        self.mqtt.reconnect_delay_set(max_delay=MQTT_RECONNECT_INTERVAL)

        host = str(self._broker_url.hostname or "localhost")
        port = self._broker_url.port or (8883 if tls else 1883)

        _LOGGER.info("Connecting to MQTT broker: %s", redact_url(self._url))
        try:
            self.mqtt.connect_async(host, port, 60)
        except (OSError, ValueError) as err:
            _LOGGER.error("MQTT Broker: %s (url: %s)", err, redact_url(self._url))
            return
        self.mqtt.loop_start()

    def stop(self) -> None:
        """Stop passing telemetry, and disconnect from the broker."""
        for remover in self._removers:
            remover()
        self._removers = []

        try:
            self.mqtt.disconnect()
            self.mqtt.loop_stop()
        except MQTTException as err:
            _LOGGER.debug("Error during MQTT cleanup: %s", err)
        self._connected = False

    # paho callbacks, which are invoked from paho's network thread

    def _on_connect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any | None = None,
    ) -> None:
        if reason_code.is_failure:
            _LOGGER.error("MQTT connection failed: %s", reason_code.getName())
            return

        self._connected = True
        _LOGGER.info(
            "Connected to MQTT broker: %s (topic: %s)",
            redact_url(self._url),
            self._topic,
        )
        self.mqtt.subscribe(f"{self._topic}/+/+/{_SZ_SET}")

    def _on_disconnect(
        self, client: mqtt.Client, userdata: Any, *args: Any, **kwargs: Any
    ) -> None:
        if self._connected:
            _LOGGER.info("Disconnected from MQTT broker: %s", redact_url(self._url))
        self._connected = False

    def _on_message(
        self, client: mqtt.Client, userdata: Any, msg: mqtt.MQTTMessage
    ) -> None:
        payload = msg.payload.decode("utf-8", errors="replace")

        if self._loop is None:
            _LOGGER.warning("Dropping MQTT message (bridge not started): %s", msg.topic)
            return
        self._loop.call_soon_threadsafe(self.handle_set, msg.topic, payload)

    # inbound (commands)

    def handle_set(self, topic: str, payload: str) -> bool:
        """Route a <topic>/<device>/<entity_id>/set message to a client command.

        Returns True if a command was sent.
        """
        parts = topic.split("/")
        if len(parts) < 3 or parts[-1] != _SZ_SET:
            _LOGGER.debug("Ignoring MQTT topic: %s", topic)
            return False
        if f"{self._topic}/{parts[-3]}" != self.base_topic:
            _LOGGER.debug("Ignoring MQTT topic (for another device): %s", topic)
            return False

        id_ = parts[-2]
        type_ = id_.split("-", 1)[0]
        value = payload.strip().lower()

        _LOGGER.debug("MQTT set: %s = %s", id_, value)

        if type_ == SZ_BUTTON:
            return self._client.send_button_command(id_)

        if type_ == SZ_SWITCH:
            if (state := _as_bool(value)) is not None:
                return self._client.send_switch_command(id_, state)

        elif type_ == SZ_LIGHT:
            if (state := _as_bool(value)) is not None:
                return self._client.send_light_command(id_, state=state)
            if (brightness := _as_fraction(value)) is not None:
                return self._client.send_light_command(id_, brightness=brightness)

        elif type_ == SZ_COVER:
            if value in ("open", "close", "stop"):
                return self._client.send_cover_command(id_, command=value)  # type: ignore[arg-type]
            if (position := _as_fraction(value)) is not None:
                return self._client.send_cover_command(id_, position=position)

        elif type_ == SZ_LOCK:
            if value in ("lock", "unlock"):
                return self._client.send_lock_command(id_, value)  # type: ignore[arg-type]

        else:
            _LOGGER.warning("MQTT: unsupported entity type: %s", id_)
            return False

        _LOGGER.warning("MQTT: invalid value for %s: %s", id_, payload)
        return False

    # outbound (telemetry)

    def _on_device_connect(self, info: DeviceInfo) -> None:
        _LOGGER.info("MQTT: publishing as %s", self.base_topic)

    def publish_telemetry(self, event: TelemetryT) -> None:
        self._publish(
            f"{self.base_topic}/{entity_id(event.type, event.entity)}",
            json.dumps(event.as_dict()),
        )
        if isinstance(event, CoverStateEvent) and event.value is not None:
            self._publish(f"{self.base_topic}/{_SZ_DOOR}", event.value)

    def _publish(self, topic: str, payload: str) -> None:
        if not self._connected:
            _LOGGER.debug("Cannot publish - MQTT not connected: %s", topic)
            return

        _LOGGER.debug("MQTT publish: %s Message: %s", topic, payload)
        info = self.mqtt.publish(topic, payload=payload)

        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            _LOGGER.warning("MQTT publish failed with code: %s", info.rc)
