# Copyright 2026 appinsights-exporter Contributors
# SPDX-License-Identifier: Apache-2.0

"""Tests for span to envelope mapping."""

import pytest

from appinsights_exporter.mapper import (
    REMOTE_DEPENDENCY_ENVELOPE_NAME,
    REQUEST_ENVELOPE_NAME,
    map_span,
    map_spans,
)
from appinsights_exporter.models import (
    Envelope,
    RemoteDependencyData,
    RequestData,
    SpanKind,
    StatusCode,
)


@pytest.mark.parametrize("kind", [SpanKind.SERVER, SpanKind.CONSUMER])
def test_inbound_spans_become_requests(make_span, process, kind):
    envelope = map_span(make_span(kind=kind), process)

    assert envelope.name == REQUEST_ENVELOPE_NAME
    assert envelope.data.base_type == "RequestData"
    assert isinstance(envelope.data.base_data, RequestData)
    assert envelope.data.base_data.id == "00f067aa0ba902b7"


@pytest.mark.parametrize(
    "kind", [SpanKind.CLIENT, SpanKind.PRODUCER, SpanKind.INTERNAL]
)
def test_other_spans_become_dependencies(make_span, process, kind):
    envelope = map_span(make_span(kind=kind), process)

    assert envelope.name == REMOTE_DEPENDENCY_ENVELOPE_NAME
    assert envelope.data.base_type == "RemoteDependencyData"
    data = envelope.data.base_data
    assert isinstance(data, RemoteDependencyData)
    assert data.type == "InProc"
    assert data.name == "test.span"


def test_envelope_shell(make_span, process):
    envelope = map_span(make_span(), process)

    assert envelope.ver == 1
    assert envelope.time == "2021-03-04T05:06:07.123456Z"
    assert envelope.tags == {
        "ai.cloud.role": "test-service",
        "ai.cloud.roleInstance": "test-host",
        "ai.device.id": "test-host",
        "ai.device.osVersion": "linux",
        "ai.operation.id": "4bf92f3577b34da6a3ce929d0e0e4736",
        "ai.operation.parentId": "53995c3f42cd8ad8",
    }
    assert envelope.data.base_data.duration == "0.00:00:01.500000"


@pytest.mark.parametrize("parent", [None, "", "0000000000000000"])
def test_missing_or_invalid_parent_is_omitted(make_span, process, parent):
    envelope = map_span(make_span(parent_span_id=parent), process)
    assert "ai.operation.parentId" not in envelope.tags


def test_span_status_drives_success_without_http(make_span, process):
    ok = map_span(make_span(kind=SpanKind.SERVER), process).data.base_data
    err = map_span(
        make_span(kind=SpanKind.SERVER, status_code=StatusCode.ERROR), process
    ).data.base_data

    assert ok.success is True
    assert ok.response_code == "2"
    assert err.success is False
    assert err.response_code == "1"


def test_request_name_prefers_route(make_span, process):
    span = make_span(
        kind=SpanKind.SERVER,
        attributes={"http.method": "GET", "http.route": "/users/{id}", "http.target": "/users/42"},
    )
    envelope = map_span(span, process)
    data = envelope.data.base_data

    assert data.name == "GET /users/{id}"
    assert envelope.tags["ai.operation.name"] == "GET /users/{id}"
    assert data.properties["request.name"] == "GET /users/{id}"


def test_request_name_falls_back_to_path(make_span, process):
    span = make_span(
        kind=SpanKind.SERVER,
        attributes={"http.method": "POST", "http.target": "/orders"},
    )
    envelope = map_span(span, process)

    assert envelope.data.base_data.name == "POST /orders"
    assert envelope.tags["ai.operation.name"] == "POST /orders"


def test_request_name_method_only(make_span, process):
    envelope = map_span(
        make_span(kind=SpanKind.SERVER, attributes={"http.method": "GET"}), process
    )

    assert envelope.data.base_data.name == "GET"
    assert envelope.data.base_data.properties["request.name"] == "GET"
    assert "ai.operation.name" not in envelope.tags


def test_request_name_defaults_to_span_name(make_span, process):
    envelope = map_span(make_span(kind=SpanKind.SERVER, name="handle"), process)
    assert envelope.data.base_data.name == "handle"


def test_request_url_synthesized_from_parts(make_span, process):
    span = make_span(
        kind=SpanKind.SERVER,
        attributes={"http.scheme": "https", "http.host": "example.com:8443", "http.target": "//a/b"},
    )
    data = map_span(span, process).data.base_data

    assert data.url == "https://example.com:8443/a/b"
    assert data.properties["request.url"] == "https://example.com:8443/a/b"


def test_request_explicit_url_wins(make_span, process):
    span = make_span(
        kind=SpanKind.SERVER,
        attributes={
            "http.url": "https://explicit.example/x",
            "http.scheme": "http",
            "http.host": "other",
            "http.target": "/y",
        },
    )
    assert map_span(span, process).data.base_data.url == "https://explicit.example/x"


def test_request_url_needs_all_parts(make_span, process):
    span = make_span(kind=SpanKind.SERVER, attributes={"http.scheme": "https", "http.host": "h"})
    data = map_span(span, process).data.base_data

    assert data.url == ""
    assert "request.url" not in data.properties


@pytest.mark.parametrize(
    "status, success",
    [(200, True), (399, True), (400, False), (500, False), (199, False)],
)
def test_http_status_boundaries(make_span, process, status, success):
    request = map_span(
        make_span(kind=SpanKind.SERVER, attributes={"http.status_code": status}), process
    ).data.base_data
    dependency = map_span(
        make_span(
            kind=SpanKind.CLIENT,
            attributes={"http.url": "https://api.example/v1", "http.status_code": status},
        ),
        process,
    ).data.base_data

    assert request.success is success
    assert request.response_code == str(status)
    assert dependency.success is success
    assert dependency.result_code == str(status)


def test_http_status_overrides_span_error(make_span, process):
    span = make_span(
        kind=SpanKind.SERVER,
        status_code=StatusCode.ERROR,
        attributes={"http.status_code": 204},
    )
    assert map_span(span, process).data.base_data.success is True


@pytest.mark.parametrize("kind", [SpanKind.CLIENT, SpanKind.PRODUCER])
def test_outbound_http_dependency(make_span, process, kind):
    span = make_span(
        kind=kind,
        attributes={
            "http.method": "GET",
            "http.url": "https://user:pw@api.example.com:8080/v1/items?q=1",
        },
    )
    data = map_span(span, process).data.base_data

    assert data.type == "HTTP"
    assert data.target == "api.example.com:8080"
    assert data.data == "https://user:pw@api.example.com:8080/v1/items?q=1"
    assert data.name == "GET https://api.example.com:8080/v1/items"


def test_outbound_without_method_keeps_span_name(make_span, process):
    span = make_span(kind=SpanKind.CLIENT, attributes={"http.url": "http://svc/x"})
    data = map_span(span, process).data.base_data

    assert data.type == "HTTP"
    assert data.target == "svc"
    assert data.name == "test.span"


@pytest.mark.parametrize("url", ["not a url", "http://[::1", "/relative/only"])
def test_outbound_unparseable_url_stays_inproc(make_span, process, url):
    span = make_span(
        kind=SpanKind.CLIENT, attributes={"http.url": url, "http.status_code": 500}
    )
    data = map_span(span, process).data.base_data

    assert data.type == "InProc"
    assert data.target == ""
    assert data.data == ""
    # Status override only applies to HTTP dependencies
    assert data.success is True


def test_internal_span_ignores_http_attributes(make_span, process):
    span = make_span(
        kind=SpanKind.INTERNAL, attributes={"http.url": "https://api.example.com/"}
    )
    assert map_span(span, process).data.base_data.type == "InProc"


def test_properties_carry_all_attributes(make_span, process):
    span = make_span(kind=SpanKind.CLIENT, attributes={"db.system": "redis", "retries": 2})
    props = map_span(span, process).data.base_data.properties
    assert props == {"db.system": "redis", "retries": "2"}


@pytest.mark.parametrize("kind", list(SpanKind))
def test_empty_attributes_omit_properties(make_span, process, kind):
    span = make_span(kind=kind, attributes={})
    first = map_span(span, process)
    second = map_span(span, process)

    assert first.data.base_data.properties is None
    assert "properties" not in first.to_wire()["data"]["baseData"]
    assert first.to_wire() == second.to_wire()


def test_mapping_does_not_mutate_span(make_span, process):
    attributes = {"http.method": "GET", "http.route": "/r"}
    span = make_span(kind=SpanKind.SERVER, attributes=attributes)
    before = span.model_dump()

    map_span(span, process)

    assert span.model_dump() == before
    assert "request.name" not in span.attributes


def test_wire_field_names(make_span, process):
    envelope = map_span(make_span(kind=SpanKind.SERVER), process)
    envelope.ikey = "key"
    wire = envelope.to_wire()

    assert set(wire) == {"ver", "name", "time", "iKey", "tags", "data"}
    assert set(wire["data"]) == {"baseType", "baseData"}
    assert wire["data"]["baseType"] == "RequestData"
    assert "responseCode" in wire["data"]["baseData"]


def test_wire_round_trip_uses_base_type(make_span, process):
    envelope = map_span(make_span(kind=SpanKind.CLIENT), process)
    decoded = Envelope.model_validate(envelope.to_wire())

    assert isinstance(decoded.data.base_data, RemoteDependencyData)
    assert decoded.to_wire() == envelope.to_wire()


def test_map_spans_preserves_order_and_sets_key(make_span, process):
    spans = [make_span(span_id=f"{i:016x}") for i in range(1, 6)]
    envelopes = map_spans(spans, process, "ikey-123")

    assert [e.data.base_data.id for e in envelopes] == [s.span_id for s in spans]
    assert all(e.ikey == "ikey-123" for e in envelopes)
