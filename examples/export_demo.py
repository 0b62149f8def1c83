"""
appinsights-exporter Demo - One Export Cycle
Builds a server span and the client span it made, maps them to Application
Insights envelopes and ships them to the endpoint in the connection string.

Run with APPLICATIONINSIGHTS_CONNECTION_STRING set, or point it at a local
stub: IngestionEndpoint=http://localhost:8080
"""
import json
import os
import sys

os.environ.setdefault("APPINSIGHTS_EXPORTER_DEBUG", "true")
os.environ.setdefault(
    "APPLICATIONINSIGHTS_CONNECTION_STRING",
    "InstrumentationKey=00000000-0000-0000-0000-000000000000;IngestionEndpoint=http://localhost:8080",
)

from appinsights_exporter import ErrorKind, Process, Span, SpanKind, StatusCode, map_spans, new_exporter
from appinsights_exporter._internal.clock import wall_clock_ns

TRACE_ID = "4bf92f3577b34da6a3ce929d0e0e4736"


def build_spans():
    now = wall_clock_ns()
    server = Span(
        trace_id=TRACE_ID,
        span_id="00f067aa0ba902b7",
        kind=SpanKind.SERVER,
        name="GET /orders/{id}",
        start_time=now - 250_000_000,
        end_time=now,
        status_code=StatusCode.UNSET,
        attributes={
            "http.method": "GET",
            "http.route": "/orders/{id}",
            "http.target": "/orders/42",
            "http.host": "shop.example.com",
            "http.scheme": "https",
            "http.status_code": 200,
        },
    )
    client = Span(
        trace_id=TRACE_ID,
        span_id="53995c3f42cd8ad8",
        parent_span_id=server.span_id,
        kind=SpanKind.CLIENT,
        name="inventory lookup",
        start_time=now - 200_000_000,
        end_time=now - 50_000_000,
        attributes={
            "http.method": "GET",
            "http.url": "http://inventory.internal:9000/stock/42",
            "http.status_code": 503,
        },
    )
    return [server, client]


def main():
    spans = build_spans()
    process = Process.detect("shop-frontend")

    print("Envelopes:")
    for envelope in map_spans(spans, process, "demo-key"):
        print(json.dumps(envelope.to_wire(), indent=2))

    exporter = new_exporter(process=process)
    kind = exporter.export(spans)
    print(f"Export result: {kind.value}  stats={exporter.stats}")
    exporter.shutdown()
    return 0 if kind is ErrorKind.NONE else 1


if __name__ == "__main__":
    sys.exit(main())
