# Copyright 2026 appinsights-exporter Contributors
# SPDX-License-Identifier: Apache-2.0

"""Span normalization: maps generic spans onto Application Insights envelopes.

Server and consumer spans become ``RequestData`` telemetry. Every other kind
becomes ``RemoteDependencyData``; client and producer spans carrying an HTTP
URL are upgraded to HTTP dependencies.

Usage:
    process = Process.detect("checkout")
    envelopes = map_spans(spans, process, instrumentation_key="...")
"""

from __future__ import annotations

from typing import Sequence
from urllib.parse import SplitResult, urlsplit

from appinsights_exporter._internal.clock import format_duration, format_timestamp
from appinsights_exporter.attributes import (
    HttpAttributes,
    attributes_to_properties,
    extract_http_attributes,
)
from appinsights_exporter.models import (
    Envelope,
    Process,
    RemoteDependencyData,
    RemoteDependencyEnvelopeData,
    RequestData,
    RequestEnvelopeData,
    Span,
    SpanKind,
    StatusCode,
)

REQUEST_ENVELOPE_NAME = "Microsoft.ApplicationInsights.Request"
REMOTE_DEPENDENCY_ENVELOPE_NAME = "Microsoft.ApplicationInsights.RemoteDependency"

DEPENDENCY_TYPE_HTTP = "HTTP"
DEPENDENCY_TYPE_INPROC = "InProc"

# ── Envelope Tag Keys ────────────────────────────────────────────────

TAG_OPERATION_ID = "ai.operation.id"
TAG_OPERATION_PARENT_ID = "ai.operation.parentId"
TAG_OPERATION_NAME = "ai.operation.name"
TAG_CLOUD_ROLE = "ai.cloud.role"
TAG_CLOUD_ROLE_INSTANCE = "ai.cloud.roleInstance"
TAG_DEVICE_ID = "ai.device.id"
TAG_DEVICE_OS_VERSION = "ai.device.osVersion"

_INBOUND_KINDS = frozenset({SpanKind.SERVER, SpanKind.CONSUMER})
_OUTBOUND_KINDS = frozenset({SpanKind.CLIENT, SpanKind.PRODUCER})


def _is_valid_span_id(span_id: str | None) -> bool:
    # All-zero ids are the OpenTelemetry "invalid" sentinel.
    return bool(span_id) and span_id.strip("0") != ""


def _http_success(status: int) -> bool:
    return 200 <= status < 400


def _parse_url(raw: str) -> SplitResult | None:
    if not raw:
        return None
    try:
        parts = urlsplit(raw)
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    return parts


def _url_host(parts: SplitResult) -> str:
    """Host and port of a URL, without any userinfo."""
    return parts.netloc.rpartition("@")[2]


def _base_tags(span: Span, process: Process) -> dict[str, str]:
    tags = {
        TAG_CLOUD_ROLE: process.service_name,
        TAG_CLOUD_ROLE_INSTANCE: process.host,
        TAG_DEVICE_ID: process.host,
        TAG_DEVICE_OS_VERSION: process.platform,
        TAG_OPERATION_ID: span.trace_id,
    }
    if _is_valid_span_id(span.parent_span_id):
        tags[TAG_OPERATION_PARENT_ID] = span.parent_span_id
    return tags


def _request_data(span: Span, tags: dict[str, str]) -> RequestEnvelopeData:
    http: HttpAttributes = extract_http_attributes(span.attributes)
    props = attributes_to_properties(span.attributes)

    name = span.name
    if http.method:
        name = http.method
        target = http.route or http.path
        if target:
            name = f"{http.method} {target}"
            tags[TAG_OPERATION_NAME] = name
        props["request.name"] = name

    url = http.url
    if not url and http.scheme and http.host and http.path:
        url = f"{http.scheme}://{http.host}/{http.path.lstrip('/')}"
    if url:
        props["request.url"] = url

    response_code = str(int(span.status_code))
    success = span.status_code == StatusCode.OK
    if http.has_status:
        response_code = str(http.status_code)
        success = _http_success(http.status_code)

    data = RequestData(
        id=span.span_id,
        name=name,
        duration=format_duration(span.end_time - span.start_time),
        response_code=response_code,
        success=success,
        url=url,
        properties=props or None,
    )
    return RequestEnvelopeData(base_data=data)


def _remote_dependency_data(span: Span) -> RemoteDependencyEnvelopeData:
    props = attributes_to_properties(span.attributes)
    data = RemoteDependencyData(
        id=span.span_id,
        name=span.name,
        result_code=str(int(span.status_code)),
        duration=format_duration(span.end_time - span.start_time),
        success=span.status_code == StatusCode.OK,
        type=DEPENDENCY_TYPE_INPROC,
    )

    if span.kind in _OUTBOUND_KINDS:
        http = extract_http_attributes(span.attributes)
        parts = _parse_url(http.url)
        if parts is not None:
            host = _url_host(parts)
            data.type = DEPENDENCY_TYPE_HTTP
            data.data = http.url
            data.target = host
            if http.method:
                data.name = f"{http.method} {parts.scheme}://{host}{parts.path}"
            if http.has_status:
                data.result_code = str(http.status_code)
                data.success = _http_success(http.status_code)

    data.properties = props or None
    return RemoteDependencyEnvelopeData(base_data=data)


def map_span(span: Span, process: Process) -> Envelope:
    """Map one span onto an envelope.

    Deterministic for a given span and process; the span is never modified.
    The returned envelope has an empty ``iKey`` until the caller assigns one.
    """
    tags = _base_tags(span, process)
    if span.kind in _INBOUND_KINDS:
        name = REQUEST_ENVELOPE_NAME
        payload = _request_data(span, tags)
    else:
        name = REMOTE_DEPENDENCY_ENVELOPE_NAME
        payload = _remote_dependency_data(span)

    return Envelope(
        name=name,
        time=format_timestamp(span.start_time),
        tags=tags,
        data=payload,
    )


def map_spans(
    spans: Sequence[Span],
    process: Process,
    instrumentation_key: str,
) -> list[Envelope]:
    """Map a batch of spans, keeping envelope order identical to span order."""
    envelopes = []
    for span in spans:
        envelope = map_span(span, process)
        envelope.ikey = instrumentation_key
        envelopes.append(envelope)
    return envelopes
