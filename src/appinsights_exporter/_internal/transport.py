# Copyright 2026 appinsights-exporter Contributors
# SPDX-License-Identifier: Apache-2.0

"""HTTP transmission of envelope batches to the ingestion endpoint.

Sends a JSON array of envelopes via HTTP POST and classifies the outcome.
Uses stdlib urllib to avoid adding an HTTP client dependency.

Classification:
    - 200: full success (ErrorKind.NONE)
    - 206, 429, 500, 503: RETRYABLE; the decoded body lists failed items
    - any other status: FATAL, the batch is dropped
    - connection errors, timeouts, cancellation: RETRYABLE. A cancel event
      set mid-request returns at once instead of waiting for the response
    - serialization failures or an unusable endpoint URL: FATAL
    - an undecodable error body: RETRYABLE

This module performs exactly one attempt per send(). Retrying is the
exporter's job.
"""

from __future__ import annotations

import email.utils
import http.client
import json
import logging
import threading
import urllib.error
import urllib.request
from datetime import datetime, timedelta, timezone
from typing import Sequence

from pydantic import ValidationError

from appinsights_exporter._internal.clock import utc_now
from appinsights_exporter.models import Envelope, ErrorKind, FailureReason, TransmitResult

logger = logging.getLogger("appinsights_exporter")

_TIMEOUT_S = 10.0  # HTTP request timeout
_CANCEL_POLL_S = 0.05  # how often an in-flight send checks its cancel event

# Status codes whose per-item errors are worth resending
RETRYABLE_STATUS_CODES = frozenset({206, 429, 500, 503})

_USER_AGENT = "appinsights-exporter/0.1.0"


def parse_retry_after(value: str | None) -> datetime | None:
    """Parse a Retry-After header given as an RFC-1123 date or delta-seconds.

    Returns an aware UTC datetime, or None if the value is absent or unreadable.
    """
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return utc_now() + timedelta(seconds=int(value))
    try:
        parsed = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _failed(reason: FailureReason, error: str, status_code: int | None = None) -> TransmitResult:
    return TransmitResult(reason=reason, error=error, status_code=status_code)


def _cancelled(cancel: threading.Event | None) -> bool:
    return cancel is not None and cancel.is_set()


class HttpTransmitter:
    """HTTP client for posting envelope batches to the ingestion service.

    Args:
        endpoint: Full track URL (e.g., "https://dc.services.visualstudio.com/v2/track").
        timeout_s: Socket timeout for the request, in seconds.
    """

    def __init__(self, endpoint: str, timeout_s: float = _TIMEOUT_S) -> None:
        self._endpoint = endpoint
        self._timeout = timeout_s

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def send(
        self,
        envelopes: Sequence[Envelope],
        cancel: threading.Event | None = None,
    ) -> tuple[TransmitResult, ErrorKind]:
        """Post one batch of envelopes and classify the response.

        Args:
            envelopes: Envelopes with their instrumentation key already set.
            cancel: Optional event; once set, the send is abandoned and
                reported as retryable since the remote outcome is unknown.

        Returns:
            The decoded TransmitResult and its ErrorKind.
        """
        if not envelopes:
            return TransmitResult(status_code=200), ErrorKind.NONE

        try:
            payload = json.dumps([e.to_wire() for e in envelopes]).encode("utf-8")
        except (TypeError, ValueError) as e:
            logger.debug("Failed to serialize envelope batch: %s", e)
            return _failed(FailureReason.SERIALIZATION, f"Serialization error: {e}"), ErrorKind.FATAL

        try:
            req = urllib.request.Request(
                self._endpoint,
                data=payload,
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                    "User-Agent": _USER_AGENT,
                },
                method="POST",
            )
        except ValueError as e:
            return _failed(FailureReason.INVALID_REQUEST, f"Invalid request: {e}"), ErrorKind.FATAL

        if _cancelled(cancel):
            return _failed(FailureReason.CANCELLED, "Cancelled before send"), ErrorKind.RETRYABLE

        try:
            if cancel is None:
                exchange = self._post(req)
            else:
                exchange = self._post_until_cancelled(req, cancel)
        except (urllib.error.URLError, http.client.HTTPException, OSError) as e:
            if _cancelled(cancel):
                return _failed(FailureReason.CANCELLED, f"Cancelled: {e}"), ErrorKind.RETRYABLE
            logger.debug("Transmission to %s failed: %s", self._endpoint, e)
            return _failed(FailureReason.TRANSPORT, f"Connection error: {e}"), ErrorKind.RETRYABLE

        if exchange is None:
            logger.debug("Transmission to %s cancelled in flight", self._endpoint)
            return _failed(FailureReason.CANCELLED, "Cancelled during send"), ErrorKind.RETRYABLE

        status, retry_after, body = exchange
        if _cancelled(cancel):
            return (
                _failed(FailureReason.CANCELLED, "Cancelled during send", status_code=status),
                ErrorKind.RETRYABLE,
            )

        return self._classify(status, body, parse_retry_after(retry_after), len(envelopes))

    def _post(self, req: urllib.request.Request) -> tuple[int, str | None, bytes]:
        """Perform the request; return (status, Retry-After, body).

        Error statuses come back as values. Only transport failures raise.
        """
        try:
            # nosec B310: endpoint comes from exporter configuration
            with urllib.request.urlopen(req, timeout=self._timeout) as response:  # nosec B310
                return response.status, response.headers.get("Retry-After"), response.read()
        except urllib.error.HTTPError as e:
            retry_after = e.headers.get("Retry-After") if e.headers else None
            try:
                body = e.read()
            except OSError:
                body = b""
            finally:
                e.close()
            return e.code, retry_after, body

    def _post_until_cancelled(
        self,
        req: urllib.request.Request,
        cancel: threading.Event,
    ) -> tuple[int, str | None, bytes] | None:
        """Run _post on a worker thread and give up as soon as cancel is set.

        Returns None when cancelled. The abandoned worker is a daemon that
        ends when the response arrives or its socket timeout fires; whatever
        it got is discarded.
        """
        done = threading.Event()
        outcome: dict[str, object] = {}

        def _run() -> None:
            try:
                outcome["exchange"] = self._post(req)
            except Exception as e:
                outcome["error"] = e
            finally:
                done.set()

        worker = threading.Thread(target=_run, name="appinsights-transmit", daemon=True)
        worker.start()
        while not done.wait(_CANCEL_POLL_S):
            if cancel.is_set():
                return None

        if "error" in outcome:
            raise outcome["error"]  # type: ignore[misc]
        return outcome["exchange"]  # type: ignore[return-value]

    def _classify(
        self,
        status: int,
        body: bytes,
        retry_after: datetime | None,
        batch_size: int,
    ) -> tuple[TransmitResult, ErrorKind]:
        if status == 200:
            result = TransmitResult(
                received=batch_size,
                accepted=batch_size,
                status_code=status,
                retry_after=retry_after,
            )
            return result, ErrorKind.NONE

        try:
            result = TransmitResult.model_validate_json(body)
        except ValidationError as e:
            logger.debug("Undecodable response body (status %d): %s", status, e)
            result = _failed(
                FailureReason.UNREADABLE_RESPONSE,
                f"Failed to decode response (status {status})",
                status_code=status,
            )
            result.retry_after = retry_after
            return result, ErrorKind.RETRYABLE

        result.status_code = status
        result.retry_after = retry_after
        if status in RETRYABLE_STATUS_CODES:
            result.reason = (
                FailureReason.PARTIAL_ACCEPTANCE if status == 206 else FailureReason.SERVER_REJECTION
            )
            result.error = f"Retryable status: {status}"
            return result, ErrorKind.RETRYABLE

        result.reason = FailureReason.SERVER_REJECTION
        result.error = f"Rejected with status: {status}"
        return result, ErrorKind.FATAL

    def __repr__(self) -> str:
        return f"HttpTransmitter(url={self._endpoint}, timeout={self._timeout}s)"
