#!/usr/bin/env python3
"""Ratgdo API - exceptions within the frame/protocol/transport layer."""

from __future__ import annotations


class _RatgdoBaseException(Exception):
    """Base class for all ratgdo_api exceptions."""

    HINT: str | None = None

    def __str__(self) -> str:
        if self.HINT:
            return f"{super().__str__()} (hint: {self.HINT})"
        return super().__str__()


class RatgdoException(_RatgdoBaseException):
    """Base class for all ratgdo_api exceptions."""


########################################################################################
# Errors at/below the protocol layer, incl. framing & field decoding


class ProtocolError(RatgdoException):
    """An error occurred when parsing/processing a message from the device."""


class FramingError(ProtocolError):
    """The receive buffer did not start with the frame sentinel (0x00)."""

    HINT = "the stream will resynchronise to the next sentinel"


class UnsupportedWireType(ProtocolError):
    """A field used a wire type that the field decoder does not support."""


class UnhandledMessageType(ProtocolError):
    """The message type is not one that this client handles."""


class ProtocolFsmError(ProtocolError):
    """The connection state machine was asked to make an invalid transition."""


########################################################################################
# Errors at/below the transport layer


class TransportError(RatgdoException):
    """An error when sending or receiving frames (bytes)."""


class SocketError(TransportError):
    """The TCP connection to the device failed, or was lost."""

    HINT = "check the host/port, and that the device is reachable"


########################################################################################
# Errors above the protocol layer, incl. commands & configuration


class CommandInvalid(RatgdoException):
    """The command is malformed (e.g. a cover command without any action)."""

    HINT = "check the options given for the entity type"


class EntityNotFound(RatgdoException):
    """The entity id is not in the catalog of the current session."""

    HINT = "entity keys are only valid once entity discovery has completed"


class ConfigInvalid(RatgdoException):
    """The configuration failed validation."""
