#!/usr/bin/env python3
"""Ratgdo CLI - a client for the ratgdo_api library.

Commands:
    monitor  connect to a device, and print its events (optionally via MQTT)
    execute  connect to a device, and send it one or more commands
    parse    decode a (hex-encoded) capture of the native API stream
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Iterable
from typing import Any, Final, TextIO

import click

from ratgdo_api import RatgdoClient
from ratgdo_api.const import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_MQTT_TOPIC,
    DEFAULT_PORT,
    HEARTBEAT_INTERVAL,
    SZ_CONNECT,
    SZ_DISCONNECT,
    SZ_ENTITIES,
    SZ_HEARTBEAT,
    SZ_HEARTBEAT_INTERVAL,
    SZ_HOST,
    SZ_MQTT,
    SZ_PORT,
    SZ_TELEMETRY,
    SZ_TIME,
    SZ_TOPIC,
    SZ_URL,
    MessageCategory,
    MessageType,
)
from ratgdo_api.device_info import DeviceInfo, decode_device_info
from ratgdo_api.entities import Entity, EntityCatalog, decode_list_entity
from ratgdo_api.exceptions import ConfigInvalid, RatgdoException
from ratgdo_api.fields import decode_fields
from ratgdo_api.frame import FrameBuffer
from ratgdo_api.mqtt import MqttBridge
from ratgdo_api.schemas import load_config
from ratgdo_api.telemetry import TelemetryT, translate_state

EXECUTE: Final = "execute"
MONITOR: Final = "monitor"
PARSE: Final = "parse"

SZ_DEBUG: Final = "debug"

DEFAULT_FMT: Final = "%(asctime)s.%(msecs)03d %(levelname)-8s %(name)s: %(message)s"
DEFAULT_DATEFMT: Final = "%H:%M:%S"

CONTEXT_SETTINGS: Final = {"help_option_names": ["-h", "--help"]}

_LOGGER = logging.getLogger(__name__)


#
# 1/4: The top-level command group
@click.group(context_settings=CONTEXT_SETTINGS)
@click.option("-z", "--debug", is_flag=True, help="enable debug logging")
@click.pass_context
def cli(ctx: click.Context, debug: bool = False) -> None:
    """A CLI for the ratgdo_api library."""
    ctx.obj = {SZ_DEBUG: debug}


def _host_options(fnc: Any) -> Any:
    fnc = click.option(
        "-p", "--port", type=int, default=DEFAULT_PORT, help="native API port"
    )(fnc)
    fnc = click.argument("host")(fnc)
    return fnc


#
# 2/4: The monitor command
@cli.command()
@_host_options
@click.option(
    "-i",
    "--heartbeat-interval",
    type=int,
    default=HEARTBEAT_INTERVAL,
    help="seconds between pings",
)
@click.option("--mqtt-url", help="bridge to an MQTT broker, e.g. mqtt://host:1883")
@click.option("--mqtt-topic", default=DEFAULT_MQTT_TOPIC, help="MQTT base topic")
@click.pass_obj
def monitor(obj: dict[str, Any], host: str, **kwargs: Any) -> Any:
    """Connect to a device, and print its events until it disconnects."""
    config: dict[str, Any] = {
        SZ_HOST: host,
        SZ_PORT: kwargs["port"],
        SZ_HEARTBEAT_INTERVAL: kwargs["heartbeat_interval"],
    }
    if kwargs["mqtt_url"]:
        config[SZ_MQTT] = {SZ_URL: kwargs["mqtt_url"], SZ_TOPIC: kwargs["mqtt_topic"]}
    return MONITOR, obj, {"config": config}


#
# 3/4: The execute command
@cli.command()
@_host_options
@click.option("--switch", nargs=2, help="ID on|off, e.g. switch-learn off")
@click.option("--button", help="ID, e.g. button-toggle_door")
@click.option("--cover", nargs=2, help="ID open|close|stop|<0-100>")
@click.option("--light", nargs=2, help="ID on|off, e.g. light-light on")
@click.option("--lock", nargs=2, help="ID lock|unlock, e.g. lock-lock_remotes lock")
@click.option(
    "-t", "--timeout", type=float, default=DEFAULT_CONNECT_TIMEOUT, help="seconds"
)
@click.pass_obj
def execute(obj: dict[str, Any], host: str, **kwargs: Any) -> Any:
    """Connect to a device, send it one or more commands, then disconnect."""
    commands = {
        k: kwargs[k]
        for k in ("switch", "button", "cover", "light", "lock")
        if kwargs[k] is not None
    }
    if not commands:
        raise click.UsageError("At least one command is required")

    config = {SZ_HOST: host, SZ_PORT: kwargs["port"]}
    return EXECUTE, obj, {"config": config, "commands": commands, **kwargs}


#
# 4/4: The parse command
@cli.command()
@click.argument("input_file", type=click.File("r"))
@click.pass_obj
def parse(obj: dict[str, Any], input_file: TextIO) -> Any:
    """Decode a hex-encoded capture of the native API stream (- for stdin)."""
    return PARSE, obj, {"input_file": input_file}


def parse_stream(text: str) -> list[str]:
    """Decode a hex-encoded stream, returning one line of output per message.

    Whitespace is ignored, so each chunk of the stream can be on its own line.
    Entities that are listed in the stream are used to name later state updates.
    """
    data = bytes.fromhex("".join(text.split()))

    catalog = EntityCatalog()
    lines: list[str] = []

    for frame in FrameBuffer().feed(data):
        msg_type = MessageType.lookup(frame.msg_type)

        if msg_type is None:
            lines.append(f"UNKNOWN({frame.msg_type}): {frame.payload.hex()}")
            continue

        if msg_type.category == MessageCategory.DEVICE_INFO:
            detail: Any = decode_device_info(frame.payload).as_dict()
        elif msg_type.category == MessageCategory.LIST_ENTITY and (
            ent := decode_list_entity(msg_type, frame.payload)
        ):
            detail = catalog.register(ent.key, ent.name, ent.type)
        elif msg_type.category == MessageCategory.STATE:
            detail = translate_state(msg_type, frame.payload, catalog)
        else:
            detail = {
                k: [v.value for v in vals]
                for k, vals in decode_fields(frame.payload).items()
            }

        lines.append(f"{msg_type.name}: {detail}")

    return lines


def _print_entities(entities: Iterable[Entity]) -> None:
    for ent in entities:
        click.echo(f"  {ent.id} (key={ent.key})")


async def _monitor(client: RatgdoClient, heartbeat_interval: int) -> None:
    """Print events until the connection is lost."""
    lost = asyncio.Event()

    def on_connect(info: DeviceInfo) -> None:
        click.echo(f"Connected to: {info.name} ({info.model}, {info.esphome_version})")

    def on_entities(entities: list[Entity]) -> None:
        click.echo(f"Discovered {len(entities)} entities:")
        _print_entities(entities)

    def on_telemetry(event: TelemetryT) -> None:
        click.echo(f"{event.type}: {event.entity} = {event.value}")

    client.add_listener(SZ_CONNECT, on_connect)
    client.add_listener(SZ_DISCONNECT, lost.set)
    client.add_listener(SZ_ENTITIES, on_entities)
    client.add_listener(SZ_HEARTBEAT, lambda: _LOGGER.debug("Heartbeat"))
    client.add_listener(SZ_TELEMETRY, on_telemetry)
    client.add_listener(SZ_TIME, lambda epoch: _LOGGER.debug("Time: %s", epoch))

    await client.connect()

    while not lost.is_set():
        try:
            await asyncio.wait_for(lost.wait(), heartbeat_interval)
        except TimeoutError:
            client.send_ping()

    click.echo("Disconnected.")


async def _execute(
    client: RatgdoClient, commands: dict[str, Any], timeout: float
) -> bool:
    """Send each command, returning True only if all of them were sent."""
    await client.connect(timeout=timeout)
    try:
        await client.wait_for_entities(timeout=timeout)
        return all([_send(client, type_, args) for type_, args in commands.items()])
    finally:
        client.disconnect()


def _send(client: RatgdoClient, type_: str, args: Any) -> bool:
    """Send one command, returning True if it was sent."""
    if type_ == "button":
        return client.send_button_command(args)

    id_, value = args
    value = value.lower()

    if type_ == "switch":
        return client.send_switch_command(id_, value == "on")
    if type_ == "light":
        return client.send_light_command(id_, state=value == "on")
    if type_ == "lock":
        return client.send_lock_command(id_, value)

    if value in ("open", "close", "stop"):  # cover
        return client.send_cover_command(id_, command=value)
    try:
        position = float(value) / 100
    except ValueError as err:
        raise click.BadParameter(f"invalid cover value: {value}") from err
    return client.send_cover_command(id_, position=position)


async def async_main(command: str, obj: dict[str, Any], **kwargs: Any) -> None:
    """Run the command (the CLI's options having been parsed)."""

    if command == PARSE:
        try:
            lines = parse_stream(kwargs["input_file"].read())
        except ValueError as err:
            raise click.BadParameter(f"input is not hex-encoded: {err}") from err
        for line in lines:
            click.echo(line)
        return

    try:
        client_config, mqtt_config = load_config(kwargs["config"])
    except ConfigInvalid as err:
        raise click.BadParameter(str(err)) from err

    client = RatgdoClient(client_config.host, client_config.port)

    if command == EXECUTE:
        if not await _execute(client, kwargs["commands"], kwargs["timeout"]):
            raise click.ClickException("One or more commands were not sent")
        return

    bridge = None
    if mqtt_config is not None:
        bridge = MqttBridge(client, mqtt_config.url, topic=mqtt_config.topic)
        bridge.start()

    try:
        await _monitor(client, client_config.heartbeat_interval)
    finally:
        if bridge is not None:
            bridge.stop()
        client.disconnect()


def main() -> None:
    try:
        result = cli(standalone_mode=False)
    except click.ClickException as err:
        err.show()
        sys.exit(err.exit_code)
    except click.Abort:
        sys.exit(1)

    if not isinstance(result, tuple):  # e.g. --help
        return

    command, obj, kwargs = result

    logging.basicConfig(
        level=logging.DEBUG if obj[SZ_DEBUG] else logging.INFO,
        format=DEFAULT_FMT,
        datefmt=DEFAULT_DATEFMT,
    )

    try:
        asyncio.run(async_main(command, obj, **kwargs))
    except click.ClickException as err:
        err.show()
        sys.exit(err.exit_code)
    except RatgdoException as err:
        click.echo(f"Error: {err}", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo(" - exiting via keyboard interrupt")


if __name__ == "__main__":
    main()
