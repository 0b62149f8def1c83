# Copyright 2026 appinsights-exporter Contributors
# SPDX-License-Identifier: Apache-2.0

"""Shared pytest fixtures for exporter tests."""

import json
import os
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from appinsights_exporter.config import reset_config
from appinsights_exporter.models import Process, Span, SpanKind, StatusCode

# 2021-03-04T05:06:07.123456Z
START_NS = 1614834367_123456_789


@pytest.fixture(autouse=True)
def reset_exporter_env():
    """Reset the config singleton and clear exporter env vars around each test."""
    keys = ("APPINSIGHTS_", "APPLICATIONINSIGHTS_")
    for key in list(os.environ.keys()):
        if key.startswith(keys):
            del os.environ[key]
    reset_config()
    yield
    for key in list(os.environ.keys()):
        if key.startswith(keys):
            del os.environ[key]
    reset_config()


@pytest.fixture
def process():
    """Provide a fixed Process descriptor."""
    return Process(service_name="test-service", host="test-host", platform="linux")


@pytest.fixture
def make_span():
    """Factory for spans with sensible defaults."""

    def _make(**overrides):
        fields = {
            "trace_id": "4bf92f3577b34da6a3ce929d0e0e4736",
            "span_id": "00f067aa0ba902b7",
            "parent_span_id": "53995c3f42cd8ad8",
            "kind": SpanKind.INTERNAL,
            "name": "test.span",
            "start_time": START_NS,
            "end_time": START_NS + 1_500_000_000,
            "status_code": StatusCode.OK,
            "attributes": {},
        }
        fields.update(overrides)
        return Span(**fields)

    return _make


class IngestionServer:
    """Scriptable stand-in for the ingestion endpoint.

    Each queued response is a ``(status, body, headers, delay)`` tuple; the
    handler sleeps ``delay`` seconds before answering. When the
    queue is empty the server answers 200. Received request bodies and
    headers are recorded.
    """

    def __init__(self):
        self.responses = []
        self.requests = []
        self._lock = threading.Lock()
        server = self

        class Handler(BaseHTTPRequestHandler):
            def do_POST(self):
                length = int(self.headers.get("Content-Length", 0))
                body = self.rfile.read(length)
                with server._lock:
                    server.requests.append(
                        {
                            "path": self.path,
                            "headers": {k.lower(): v for k, v in self.headers.items()},
                            "body": json.loads(body),
                        }
                    )
                    if server.responses:
                        status, payload, headers, delay = server.responses.pop(0)
                    else:
                        status, payload, headers, delay = 200, None, {}, 0.0
                if delay:
                    time.sleep(delay)
                raw = payload if isinstance(payload, bytes) else json.dumps(payload or {}).encode()
                self.send_response(status)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(raw)))
                for name, value in headers.items():
                    self.send_header(name, value)
                self.end_headers()
                self.wfile.write(raw)

            def log_message(self, format, *args):
                pass

        self._httpd = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
        self._thread = threading.Thread(target=self._httpd.serve_forever, daemon=True)

    @property
    def url(self):
        host, port = self._httpd.server_address[:2]
        return f"http://{host}:{port}/v2/track"

    def respond(self, status, body=None, headers=None, delay=0.0):
        self.responses.append((status, body, headers or {}, delay))

    def start(self):
        self._thread.start()

    def stop(self):
        self._httpd.shutdown()
        self._httpd.server_close()


@pytest.fixture
def ingestion_server():
    """Provide a running IngestionServer on a free local port."""
    server = IngestionServer()
    server.start()
    yield server
    server.stop()
