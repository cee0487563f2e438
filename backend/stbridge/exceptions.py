"""Exceptions raised by the bridge."""

from __future__ import annotations


class BridgeError(Exception):
    """Base exception for the bridge."""


class ConfigError(BridgeError):
    """config.yml is missing, unreadable or invalid."""


class SnapshotError(BridgeError):
    """The persisted state file exists but cannot be read or parsed."""


class BrokerUnavailableError(BridgeError):
    """The MQTT broker is not connected or rejected the request."""
