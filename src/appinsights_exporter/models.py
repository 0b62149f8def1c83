# Copyright 2026 appinsights-exporter Contributors
# SPDX-License-Identifier: Apache-2.0

"""Pydantic v2 data models for spans, envelopes and transmission results.

Input spans are immutable values owned by the caller. Envelope models mirror
the Application Insights ingestion wire format: Python field names are
snake_case and the wire names are carried as aliases, so envelopes are
serialized with ``by_alias=True``.
"""

from __future__ import annotations

import enum
import socket
import sys
from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SpanKind(str, enum.Enum):
    """Role of a span in a trace."""

    INTERNAL = "internal"
    SERVER = "server"
    CLIENT = "client"
    PRODUCER = "producer"
    CONSUMER = "consumer"


class StatusCode(enum.IntEnum):
    """Span status codes, numbered as on the OpenTelemetry wire."""

    UNSET = 0
    ERROR = 1
    OK = 2


class ErrorKind(str, enum.Enum):
    """Classification of a transmission outcome."""

    NONE = "none"
    RETRYABLE = "retryable"
    FATAL = "fatal"


class FailureReason(str, enum.Enum):
    """Why a transmission did not fully succeed."""

    TRANSPORT = "transport"
    CANCELLED = "cancelled"
    SERIALIZATION = "serialization"
    INVALID_REQUEST = "invalid_request"
    PARTIAL_ACCEPTANCE = "partial_acceptance"
    SERVER_REJECTION = "server_rejection"
    UNREADABLE_RESPONSE = "unreadable_response"


AttributeValue = Union[str, bool, int, float]


class Span(BaseModel):
    """A finished span handed to the exporter.

    Timestamps are wall-clock nanoseconds since the epoch. Attribute order is
    preserved and carried through to the envelope properties.
    """

    model_config = ConfigDict(frozen=True)

    trace_id: str
    span_id: str
    parent_span_id: str | None = None
    kind: SpanKind = SpanKind.INTERNAL
    name: str = ""
    start_time: int = Field(default=0, description="Start time in nanoseconds since epoch")
    end_time: int = Field(default=0, description="End time in nanoseconds since epoch")
    status_code: StatusCode = StatusCode.UNSET
    attributes: dict[str, AttributeValue] = Field(default_factory=dict)


class Process(BaseModel):
    """Static description of the process emitting telemetry."""

    model_config = ConfigDict(frozen=True)

    service_name: str
    host: str = ""
    platform: str = ""

    @classmethod
    def detect(cls, service_name: str) -> Process:
        """Build a Process for this host, resolving hostname and platform once."""
        return cls(service_name=service_name, host=socket.gethostname(), platform=sys.platform)


# ── Wire models ──────────────────────────────────────────────────────


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RequestData(_WireModel):
    """Telemetry payload for an inbound (server/consumer) span."""

    ver: int = 2
    id: str
    source: str = ""
    name: str = ""
    duration: str
    response_code: str = Field(alias="responseCode")
    success: bool
    url: str = ""
    properties: dict[str, str] | None = None
    measurements: dict[str, float] | None = None


class RemoteDependencyData(_WireModel):
    """Telemetry payload for an outbound or internal span."""

    ver: int = 2
    name: str = ""
    id: str
    result_code: str = Field(alias="resultCode")
    duration: str
    success: bool
    data: str = ""
    target: str = ""
    type: str = "InProc"
    properties: dict[str, str] | None = None
    measurements: dict[str, float] | None = None


class RequestEnvelopeData(_WireModel):
    base_type: Literal["RequestData"] = Field(default="RequestData", alias="baseType")
    base_data: RequestData = Field(alias="baseData")


class RemoteDependencyEnvelopeData(_WireModel):
    base_type: Literal["RemoteDependencyData"] = Field(
        default="RemoteDependencyData", alias="baseType"
    )
    base_data: RemoteDependencyData = Field(alias="baseData")


Data = Annotated[
    Union[RequestEnvelopeData, RemoteDependencyEnvelopeData],
    Field(discriminator="base_type"),
]


class Envelope(_WireModel):
    """Outer wire record wrapping one telemetry item."""

    ver: int = 1
    name: str
    time: str
    sample_rate: float | None = Field(default=None, alias="sampleRate")
    seq: str | None = None
    ikey: str = Field(default="", alias="iKey")
    tags: dict[str, str] = Field(default_factory=dict)
    data: Data

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the JSON-ready dict posted to the ingestion endpoint."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ── Transmission results ─────────────────────────────────────────────


class TransmitError(_WireModel):
    """A per-item rejection reported by the ingestion service."""

    index: int
    status_code: int = Field(alias="statusCode")
    message: str = ""


class TransmitResult(_WireModel):
    """Outcome of one transmission attempt.

    The aliased fields are decoded from the ingestion service's response body.
    The remaining fields are filled in locally by the transmitter.
    """

    received: int = Field(default=0, alias="itemsReceived")
    accepted: int = Field(default=0, alias="itemsAccepted")
    errors: list[TransmitError] = Field(default_factory=list)

    retry_after: datetime | None = Field(default=None, exclude=True)
    status_code: int | None = Field(default=None, exclude=True)
    reason: FailureReason | None = Field(default=None, exclude=True)
    error: str | None = Field(default=None, exclude=True)

    @field_validator("errors", mode="before")
    @classmethod
    def _null_errors(cls, value: Any) -> Any:
        return [] if value is None else value

    def __repr__(self) -> str:
        return (
            f"TransmitResult(status={self.status_code}, received={self.received}, "
            f"accepted={self.accepted}, errors={len(self.errors)}, reason={self.reason})"
        )
