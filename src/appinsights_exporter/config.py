# Copyright 2026 appinsights-exporter Contributors
# SPDX-License-Identifier: Apache-2.0

"""Exporter configuration loaded from environment variables.

Configuration is read from the standard Application Insights variables plus
APPINSIGHTS_EXPORTER_* variables, with sensible defaults. The config singleton
is initialized once and reused for the exporter lifecycle.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

DEFAULT_INGESTION_ENDPOINT = "https://dc.services.visualstudio.com"
TRACK_PATH = "/v2/track"

logger = logging.getLogger("appinsights_exporter")


def _flag(key: str) -> bool:
    """True only when ``key`` is set to true, 1 or yes (any case)."""
    return os.environ.get(key, "").strip().lower() in ("true", "1", "yes")


def _positive_int(key: str, default: int) -> int:
    """Integer value of ``key``; unset, non-numeric or below 1 gives ``default``."""
    raw = os.environ.get(key, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer", key, raw)
        return default
    if value < 1:
        logger.warning("Ignoring %s=%d: must be at least 1", key, value)
        return default
    return value


def parse_connection_string(connection_string: str) -> tuple[str, str]:
    """Resolve the track endpoint and instrumentation key from a connection string.

    The connection string is a ``;``-separated list of ``key=value`` pairs.
    Keys are case-insensitive; values are kept as written and may contain ``=``.

    Endpoint resolution:
        1. ``IngestionEndpoint`` when present
        2. ``https://{Location}dc.{EndpointSuffix}`` when a suffix is given
        3. the public ingestion host otherwise

    Returns:
        ``(endpoint, instrumentation_key)``; the endpoint always ends in
        ``/v2/track`` and the key is empty when none was given.
    """
    values: dict[str, str] = {}
    for pair in connection_string.split(";"):
        key, sep, value = pair.partition("=")
        if sep:
            values[key.strip().lower()] = value.strip()

    endpoint = values.get("ingestionendpoint", "")
    if not endpoint:
        suffix = values.get("endpointsuffix", "")
        if suffix:
            endpoint = f"https://{values.get('location', '')}dc.{suffix}"
        else:
            endpoint = DEFAULT_INGESTION_ENDPOINT

    endpoint = endpoint.rstrip(" /") + TRACK_PATH
    return endpoint, values.get("instrumentationkey", "")


@dataclass(frozen=True)
class ExporterConfig:
    """Immutable exporter configuration read from environment variables.

    Attributes:
        connection_string: Application Insights connection string.
        instrumentation_key: Key used when the connection string carries none.
        endpoint: Explicit track URL; overrides the connection string endpoint.
        service_name: Logical service name reported as the cloud role.
        timeout_ms: HTTP request timeout in milliseconds.
        retry_buffer_size: Maximum envelopes held for retransmission.
        log_level: Python logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        debug: Enable verbose stderr logging for exporter internals.
    """

    connection_string: str = ""
    instrumentation_key: str = ""
    endpoint: str = ""
    service_name: str = "unknown_service"
    timeout_ms: int = 10000
    retry_buffer_size: int = 2048
    log_level: str = "INFO"
    debug: bool = False

    @classmethod
    def from_env(cls) -> ExporterConfig:
        """Create a config by reading environment variables.

        Environment Variables:
            APPLICATIONINSIGHTS_CONNECTION_STRING: Connection string.
            APPINSIGHTS_INSTRUMENTATIONKEY: Fallback instrumentation key.
            APPINSIGHTS_EXPORTER_ENDPOINT: Explicit track URL.
            APPINSIGHTS_EXPORTER_SERVICE_NAME: Default "unknown_service".
            APPINSIGHTS_EXPORTER_TIMEOUT: Default 10000. Milliseconds.
            APPINSIGHTS_EXPORTER_RETRY_BUFFER_SIZE: Default 2048.
            APPINSIGHTS_EXPORTER_LOG_LEVEL: Default "INFO".
            APPINSIGHTS_EXPORTER_DEBUG: Default "false".
        """
        env = os.environ
        return cls(
            connection_string=env.get("APPLICATIONINSIGHTS_CONNECTION_STRING", ""),
            instrumentation_key=env.get("APPINSIGHTS_INSTRUMENTATIONKEY", ""),
            endpoint=env.get("APPINSIGHTS_EXPORTER_ENDPOINT", ""),
            service_name=env.get("APPINSIGHTS_EXPORTER_SERVICE_NAME") or cls.service_name,
            timeout_ms=_positive_int("APPINSIGHTS_EXPORTER_TIMEOUT", cls.timeout_ms),
            retry_buffer_size=_positive_int("APPINSIGHTS_EXPORTER_RETRY_BUFFER_SIZE", cls.retry_buffer_size),
            log_level=env.get("APPINSIGHTS_EXPORTER_LOG_LEVEL") or cls.log_level,
            debug=_flag("APPINSIGHTS_EXPORTER_DEBUG"),
        )

    def resolve_target(self) -> tuple[str, str]:
        """Return the ``(endpoint, instrumentation_key)`` this config points at."""
        endpoint, key = parse_connection_string(self.connection_string)
        return self.endpoint or endpoint, key or self.instrumentation_key


_config: ExporterConfig | None = None


def get_config() -> ExporterConfig:
    """Process-wide config, read from the environment on first use."""
    global _config
    if _config is None:
        _config = ExporterConfig.from_env()
    return _config


def reset_config() -> None:
    """Forget the cached config so the next get_config() rereads the environment."""
    global _config
    _config = None
