# Copyright 2026 appinsights-exporter Contributors
# SPDX-License-Identifier: Apache-2.0

"""AppInsightsExporter: runs one export cycle per batch of spans.

An export cycle:
    1. Maps every span to an envelope stamped with the instrumentation key
    2. Sends the batch via HttpTransmitter
    3. On a retryable failure, buffers the rejected envelopes
    4. On full success, resends whatever the retry buffer holds
    5. Returns the ErrorKind of the primary send

The exporter owns no threads. The caller's batching layer decides when to
call export(); concurrent calls are safe because the retry buffer serializes
offer() and drain(). Transmission failures are logged and reported through
the return value, never raised.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Sequence

from appinsights_exporter._internal.buffer import RetryBuffer
from appinsights_exporter._internal.clock import utc_now
from appinsights_exporter._internal.transport import HttpTransmitter
from appinsights_exporter.mapper import map_span
from appinsights_exporter.models import (
    Envelope,
    ErrorKind,
    FailureReason,
    Process,
    Span,
    TransmitResult,
)

logger = logging.getLogger("appinsights_exporter")

# Retryable outcomes with no per-item list, where the whole batch goes back
_WHOLE_BATCH_REASONS = frozenset({
    FailureReason.TRANSPORT,
    FailureReason.CANCELLED,
    FailureReason.UNREADABLE_RESPONSE,
    FailureReason.SERVER_REJECTION,
})


class AppInsightsExporter:
    """Maps spans to envelopes, transmits them and retries rejected items.

    Args:
        transmitter: HttpTransmitter bound to the ingestion endpoint.
        instrumentation_key: Key stamped on every envelope.
        process: Static description of the emitting process.
        retry_buffer: Buffer for rejected envelopes (a default-sized one if None).
    """

    def __init__(
        self,
        transmitter: HttpTransmitter,
        instrumentation_key: str,
        process: Process,
        retry_buffer: RetryBuffer | None = None,
    ) -> None:
        self._transmitter = transmitter
        self._instrumentation_key = instrumentation_key
        self._process = process
        self._retry_buffer = retry_buffer if retry_buffer is not None else RetryBuffer()

        self._lock = threading.Lock()
        self._shutdown = False
        self._retry_not_before: datetime | None = None
        self._last_retry_kind: ErrorKind | None = None

        # Stats
        self._exported_count = 0
        self._failed_count = 0
        self._retried_count = 0

    def export(
        self,
        spans: Sequence[Span],
        cancel: threading.Event | None = None,
    ) -> ErrorKind:
        """Run one export cycle for a batch of spans.

        Args:
            spans: The batch, in the order the caller collected it.
            cancel: Optional event that abandons in-flight transmissions.

        Returns:
            The ErrorKind of the primary transmission. The follow-up flush of
            the retry buffer is reported via last_retry_kind and stats instead.
        """
        if self._shutdown:
            logger.warning("Export called after shutdown, dropping %d spans", len(spans))
            return ErrorKind.FATAL

        envelopes = self._to_envelopes(spans)
        if not envelopes:
            return ErrorKind.NONE

        result, kind = self._transmitter.send(envelopes, cancel=cancel)
        self._note_retry_after(result)

        if kind is ErrorKind.RETRYABLE:
            logger.debug("Transmit retryable: %r", result)
            buffered = self._buffer_rejected(envelopes, result)
            self._add_stats(exported=len(envelopes) - buffered, failed=buffered)
        elif kind is ErrorKind.FATAL:
            logger.warning(
                "Dropping batch of %d envelopes: %s", len(envelopes), result.error
            )
            self._add_stats(failed=len(envelopes))
        else:
            self._add_stats(exported=len(envelopes))
            logger.debug("Exported %d envelopes", len(envelopes))
            self._flush_retry_buffer(cancel)

        return kind

    def shutdown(self, cancel: threading.Event | None = None) -> ErrorKind | None:
        """Stop accepting batches and make a final attempt at the retry buffer.

        Returns:
            The ErrorKind of the final flush, or None if nothing was buffered.
        """
        with self._lock:
            if self._shutdown:
                return None
            self._shutdown = True

        kind = self._flush_retry_buffer(cancel, force=True)
        logger.debug(
            "Exporter shutdown: exported=%d, failed=%d, retried=%d, dropped=%d",
            self._exported_count, self._failed_count, self._retried_count,
            self._retry_buffer.dropped_count,
        )
        return kind

    def _to_envelopes(self, spans: Sequence[Span]) -> list[Envelope]:
        envelopes = []
        for span in spans:
            try:
                envelope = map_span(span, self._process)
            except Exception:
                logger.debug("Failed to map span %s", span.span_id, exc_info=True)
                continue
            envelope.ikey = self._instrumentation_key
            envelopes.append(envelope)
        return envelopes

    def _buffer_rejected(self, envelopes: list[Envelope], result: TransmitResult) -> int:
        """Offer the envelopes a retryable result rejected; return how many."""
        if not result.errors:
            if result.reason not in _WHOLE_BATCH_REASONS:
                # 206 without item errors: the server kept everything it listed
                return 0
            for index, envelope in enumerate(envelopes):
                self._retry_buffer.offer(index, envelope)
            return len(envelopes)

        buffered = 0
        seen: set[int] = set()
        for errored in result.errors:
            if not 0 <= errored.index < len(envelopes):
                logger.debug("Ignoring error for out-of-range index %d", errored.index)
                continue
            if errored.index in seen:
                continue
            seen.add(errored.index)
            logger.debug(
                "Failed to transmit item %d (%d): %s",
                errored.index, errored.status_code, errored.message,
            )
            self._retry_buffer.offer(errored.index, envelopes[errored.index])
            buffered += 1
        return buffered

    def _flush_retry_buffer(
        self,
        cancel: threading.Event | None,
        force: bool = False,
    ) -> ErrorKind | None:
        with self._lock:
            not_before = self._retry_not_before
            if not_before is not None and utc_now() >= not_before:
                self._retry_not_before = not_before = None
        if not force and not_before is not None:
            logger.debug("Deferring retry flush until %s", not_before.isoformat())
            return None

        pending = self._retry_buffer.drain()
        if not pending:
            return None

        result, kind = self._transmitter.send(pending, cancel=cancel)
        self._note_retry_after(result)
        self._last_retry_kind = kind

        if kind is ErrorKind.RETRYABLE:
            buffered = self._buffer_rejected(pending, result)
            self._add_stats(retried=len(pending) - buffered)
        elif kind is ErrorKind.FATAL:
            logger.warning(
                "Dropping %d buffered envelopes: %s", len(pending), result.error
            )
            self._add_stats(failed=len(pending))
        else:
            self._add_stats(retried=len(pending))
            logger.debug("Resent %d buffered envelopes", len(pending))
        return kind

    def _note_retry_after(self, result: TransmitResult) -> None:
        if result.retry_after is None:
            return
        with self._lock:
            self._retry_not_before = result.retry_after

    def _add_stats(self, exported: int = 0, failed: int = 0, retried: int = 0) -> None:
        with self._lock:
            self._exported_count += exported
            self._failed_count += failed
            self._retried_count += retried

    @property
    def retry_buffer(self) -> RetryBuffer:
        return self._retry_buffer

    @property
    def last_retry_kind(self) -> ErrorKind | None:
        """ErrorKind of the most recent retry-buffer flush, if any ran."""
        return self._last_retry_kind

    @property
    def stats(self) -> dict[str, int]:
        """Export statistics."""
        with self._lock:
            return {
                "exported": self._exported_count,
                "failed": self._failed_count,
                "retried": self._retried_count,
                "buffered": self._retry_buffer.size,
                "dropped": self._retry_buffer.dropped_count,
            }

    def __repr__(self) -> str:
        return (
            f"AppInsightsExporter(endpoint={self._transmitter.endpoint}, "
            f"buffered={self._retry_buffer.size})"
        )
