#!/usr/bin/env python3
"""Ratgdo CLI - a command-line utility for the ratgdo_api client."""
