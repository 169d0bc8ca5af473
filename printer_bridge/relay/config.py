"""Relay service settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

import voluptuous as vol

from printer_bridge.const import (
    DEFAULT_RELAY_HOST,
    DEFAULT_RELAY_PORT,
    DISCOVERY_CONCURRENCY,
    DISCOVERY_PROBE_TIMEOUT,
    RELAY_CONNECT_TIMEOUT,
    RELAY_IDLE_TIMEOUT,
    RELAY_MAX_SESSIONS,
    RELAY_MAX_WAITING,
)

_POSITIVE_INT = vol.All(vol.Coerce(int), vol.Range(min=1))
_POSITIVE_FLOAT = vol.All(vol.Coerce(float), vol.Range(min=0.001))

ENV_SCHEMA = vol.Schema(
    {
        vol.Optional("RELAY_HOST", default=DEFAULT_RELAY_HOST): vol.All(str, vol.Strip),
        vol.Optional("RELAY_PORT", default=DEFAULT_RELAY_PORT): vol.All(
            vol.Coerce(int), vol.Range(min=0, max=65535)
        ),
        vol.Optional("RELAY_MAX_SESSIONS", default=RELAY_MAX_SESSIONS): _POSITIVE_INT,
        vol.Optional("RELAY_MAX_WAITING", default=RELAY_MAX_WAITING): vol.All(
            vol.Coerce(int), vol.Range(min=0)
        ),
        vol.Optional("RELAY_CONNECT_TIMEOUT", default=RELAY_CONNECT_TIMEOUT): _POSITIVE_FLOAT,
        vol.Optional("RELAY_IDLE_TIMEOUT", default=RELAY_IDLE_TIMEOUT): _POSITIVE_FLOAT,
        vol.Optional(
            "RELAY_DISCOVERY_CONCURRENCY", default=DISCOVERY_CONCURRENCY
        ): _POSITIVE_INT,
        vol.Optional(
            "RELAY_DISCOVERY_TIMEOUT", default=DISCOVERY_PROBE_TIMEOUT
        ): _POSITIVE_FLOAT,
    },
    extra=vol.REMOVE_EXTRA,
)


@dataclass(frozen=True)
class RelayConfig:
    """
    Settings of one relay service instance.

    Attributes:
        host: Address to listen on.
        port: Port to listen on; 0 picks a free port.
        max_sessions: Concurrent TCP sessions to printers.
        max_waiting: Requests allowed to queue for a session slot.
        connect_timeout: Default printer connect timeout in seconds.
        idle_timeout: Default printer idle timeout in seconds.
        discovery_concurrency: Concurrent probes during a subnet scan.
        discovery_timeout: Per-probe timeout of a subnet scan in seconds.

    """

    host: str = DEFAULT_RELAY_HOST
    port: int = DEFAULT_RELAY_PORT
    max_sessions: int = RELAY_MAX_SESSIONS
    max_waiting: int = RELAY_MAX_WAITING
    connect_timeout: float = RELAY_CONNECT_TIMEOUT
    idle_timeout: float = RELAY_IDLE_TIMEOUT
    discovery_concurrency: int = DISCOVERY_CONCURRENCY
    discovery_timeout: float = DISCOVERY_PROBE_TIMEOUT

    @classmethod
    def from_env(cls, environ: dict[str, Any] | None = None) -> RelayConfig:
        """
        Build the settings from ``RELAY_*`` environment variables.

        Raises:
            vol.Invalid: If a variable holds an invalid value.

        """
        source = os.environ if environ is None else environ
        env = ENV_SCHEMA({key: value for key, value in source.items() if key.startswith("RELAY_")})
        return cls(
            host=env["RELAY_HOST"],
            port=env["RELAY_PORT"],
            max_sessions=env["RELAY_MAX_SESSIONS"],
            max_waiting=env["RELAY_MAX_WAITING"],
            connect_timeout=env["RELAY_CONNECT_TIMEOUT"],
            idle_timeout=env["RELAY_IDLE_TIMEOUT"],
            discovery_concurrency=env["RELAY_DISCOVERY_CONCURRENCY"],
            discovery_timeout=env["RELAY_DISCOVERY_TIMEOUT"],
        )
