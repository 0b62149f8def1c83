# Copyright 2026 appinsights-exporter Contributors
# SPDX-License-Identifier: Apache-2.0

"""appinsights-exporter: ship tracing spans to Azure Application Insights.

Converts generic spans into Application Insights envelopes (RequestData for
inbound spans, RemoteDependencyData for everything else) and uploads them to
the ingestion endpoint, buffering rejected items for a later retry.

Quick Start:
    from appinsights_exporter import new_exporter

    exporter = new_exporter(
        connection_string="InstrumentationKey=...;IngestionEndpoint=https://...",
        service_name="checkout",
    )
    exporter.export(spans)
    exporter.shutdown()

Public API:
    - new_exporter: Build an exporter from environment config plus overrides
    - map_spans: Map a batch of spans to envelopes without sending them
    - AppInsightsExporter: Export coordinator with retry buffering
    - parse_connection_string: Resolve endpoint and key from a connection string
"""

from __future__ import annotations

__version__ = "0.1.0"
__all__ = [
    "new_exporter",
    "configure_logging",
    "map_spans",
    "parse_connection_string",
    "AppInsightsExporter",
    "ErrorKind",
    "Process",
    "Span",
    "SpanKind",
    "StatusCode",
    "__version__",
]

import logging

from appinsights_exporter._internal.buffer import RetryBuffer
from appinsights_exporter._internal.transport import HttpTransmitter
from appinsights_exporter.config import ExporterConfig, get_config, parse_connection_string
from appinsights_exporter.exporter import AppInsightsExporter
from appinsights_exporter.mapper import map_spans
from appinsights_exporter.models import ErrorKind, Process, Span, SpanKind, StatusCode


def configure_logging(config: ExporterConfig | None = None) -> None:
    """Apply the configured log level to the package logger.

    In debug mode a stderr handler is attached so exporter internals are
    visible without any application logging setup.
    """
    config = config or get_config()
    log_level = logging.DEBUG if config.debug else getattr(logging, config.log_level.upper(), logging.INFO)
    package_logger = logging.getLogger("appinsights_exporter")
    package_logger.setLevel(log_level)

    if config.debug and not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("[appinsights_exporter] %(levelname)s %(name)s: %(message)s")
        )
        package_logger.addHandler(handler)


def new_exporter(
    *,
    connection_string: str | None = None,
    instrumentation_key: str | None = None,
    endpoint: str | None = None,
    service_name: str | None = None,
    process: Process | None = None,
    timeout_s: float | None = None,
    retry_buffer_size: int | None = None,
) -> AppInsightsExporter:
    """Build an AppInsightsExporter from environment config and overrides.

    Any provided argument overrides the corresponding environment setting.
    A connection string supplies both endpoint and key; ``endpoint`` and
    ``instrumentation_key`` win over whatever it resolves to.

    Args:
        connection_string: Overrides APPLICATIONINSIGHTS_CONNECTION_STRING.
        instrumentation_key: Explicit instrumentation key.
        endpoint: Explicit full track URL.
        service_name: Cloud role name, used when ``process`` is not given.
        process: Explicit process descriptor (detected from the host if None).
        timeout_s: HTTP timeout in seconds.
        retry_buffer_size: Capacity of the retry buffer.
    """
    config = get_config()
    configure_logging(config)

    if connection_string is not None:
        resolved_endpoint, resolved_key = parse_connection_string(connection_string)
        resolved_key = resolved_key or config.instrumentation_key
    else:
        resolved_endpoint, resolved_key = config.resolve_target()

    transmitter = HttpTransmitter(
        endpoint=endpoint or resolved_endpoint,
        timeout_s=timeout_s if timeout_s is not None else config.timeout_ms / 1000.0,
    )
    return AppInsightsExporter(
        transmitter=transmitter,
        instrumentation_key=instrumentation_key or resolved_key,
        process=process or Process.detect(service_name or config.service_name),
        retry_buffer=RetryBuffer(
            capacity=retry_buffer_size if retry_buffer_size is not None else config.retry_buffer_size
        ),
    )
