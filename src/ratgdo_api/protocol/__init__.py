#!/usr/bin/env python3
"""Ratgdo API - native API protocol package."""

from __future__ import annotations

from .base import EventHandlerT, RatgdoProtocol, socket_error
from .fsm import ConnectionState, ProtocolContext

__all__ = [
    "ConnectionState",
    "EventHandlerT",
    "ProtocolContext",
    "RatgdoProtocol",
    "socket_error",
]
