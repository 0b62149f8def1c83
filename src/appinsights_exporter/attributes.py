# Copyright 2026 appinsights-exporter Contributors
# SPDX-License-Identifier: Apache-2.0

"""Well-known HTTP attribute extraction for span mapping.

Only the handful of HTTP fields that drive mapping decisions are picked out.
Anything missing or of the wrong type is treated as absent; extraction never
fails.

Both the legacy OpenTelemetry HTTP semantic conventions (``http.method``,
``http.url``, ...) and their stable replacements (``http.request.method``,
``url.full``, ...) are understood. The legacy key wins when both are set.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from appinsights_exporter.models import AttributeValue

# ── Attribute Keys ───────────────────────────────────────────────────

HTTP_METHOD = "http.method"
HTTP_ROUTE = "http.route"
HTTP_TARGET = "http.target"
HTTP_HOST = "http.host"
HTTP_SCHEME = "http.scheme"
HTTP_URL = "http.url"
HTTP_STATUS_CODE = "http.status_code"

# Stable semantic convention names, consulted when the legacy key is missing.
_STABLE_FALLBACKS: dict[str, str] = {
    HTTP_METHOD: "http.request.method",
    HTTP_TARGET: "url.path",
    HTTP_HOST: "server.address",
    HTTP_SCHEME: "url.scheme",
    HTTP_URL: "url.full",
    HTTP_STATUS_CODE: "http.response.status_code",
}

NO_STATUS = -1


@dataclass(frozen=True)
class HttpAttributes:
    """HTTP fields found on a span. Empty string / -1 mean "not present"."""

    method: str = ""
    route: str = ""
    path: str = ""
    host: str = ""
    scheme: str = ""
    url: str = ""
    status_code: int = NO_STATUS

    @property
    def has_status(self) -> bool:
        return self.status_code != NO_STATUS


def _lookup(attributes: Mapping[str, AttributeValue], key: str) -> AttributeValue | None:
    if key in attributes:
        return attributes[key]
    fallback = _STABLE_FALLBACKS.get(key)
    if fallback is not None:
        return attributes.get(fallback)
    return None


def _string(attributes: Mapping[str, AttributeValue], key: str) -> str:
    value = _lookup(attributes, key)
    return value if isinstance(value, str) else ""


def _status(attributes: Mapping[str, AttributeValue], key: str) -> int:
    value = _lookup(attributes, key)
    if isinstance(value, bool) or value is None:
        return NO_STATUS
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return NO_STATUS


def extract_http_attributes(attributes: Mapping[str, AttributeValue]) -> HttpAttributes:
    """Pick the HTTP fields used by the span mapper out of a span's attributes."""
    return HttpAttributes(
        method=_string(attributes, HTTP_METHOD),
        route=_string(attributes, HTTP_ROUTE),
        path=_string(attributes, HTTP_TARGET),
        host=_string(attributes, HTTP_HOST),
        scheme=_string(attributes, HTTP_SCHEME),
        url=_string(attributes, HTTP_URL),
        status_code=_status(attributes, HTTP_STATUS_CODE),
    )


def stringify(value: AttributeValue) -> str:
    """Render an attribute value the way it appears in envelope properties."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def attributes_to_properties(attributes: Mapping[str, AttributeValue]) -> dict[str, str]:
    """Copy every attribute into a string-valued properties map."""
    return {key: stringify(value) for key, value in attributes.items()}
