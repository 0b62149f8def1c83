# Copyright 2026 appinsights-exporter Contributors
# SPDX-License-Identifier: Apache-2.0

"""Thread-safe, bounded retry buffer for rejected envelopes.

Envelopes the ingestion service rejected with a retryable status are held
here until the exporter's next successful cycle drains and resends them.
When the buffer is full, the oldest envelopes are dropped. A sustained
outage therefore costs the oldest telemetry instead of unbounded memory.

All mutations go through a single threading.Lock, so concurrent export
cycles never lose or duplicate an envelope between offer() and drain().
"""

from __future__ import annotations

import logging
import threading
from collections import deque

from appinsights_exporter.models import Envelope

logger = logging.getLogger("appinsights_exporter")

DEFAULT_CAPACITY = 2048


class RetryBuffer:
    """Fixed-capacity FIFO of envelopes awaiting retransmission.

    No deduplication is done: the same envelope offered twice is held twice.

    Args:
        capacity: Maximum number of envelopes held at once.
    """

    __slots__ = ("_buffer", "_lock", "_capacity", "_dropped")

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._capacity = capacity
        self._buffer: deque[Envelope] = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self._dropped: int = 0

    def offer(self, index: int, envelope: Envelope) -> None:
        """Append an envelope that failed at ``index`` of its batch.

        If the buffer is full, the oldest envelope is dropped and the drop
        counter is incremented.
        """
        with self._lock:
            if len(self._buffer) >= self._capacity:
                self._dropped += 1
                logger.debug("Retry buffer full (%d), dropping oldest envelope", self._capacity)
            self._buffer.append(envelope)
        logger.debug("Buffered envelope from batch index %d for retry", index)

    def drain(self) -> list[Envelope]:
        """Remove and return everything currently held, oldest first."""
        with self._lock:
            items = list(self._buffer)
            self._buffer.clear()
            return items

    @property
    def size(self) -> int:
        """Current number of buffered envelopes."""
        with self._lock:
            return len(self._buffer)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def is_empty(self) -> bool:
        with self._lock:
            return len(self._buffer) == 0

    @property
    def dropped_count(self) -> int:
        """Total number of envelopes dropped due to overflow."""
        with self._lock:
            return self._dropped

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)

    def __repr__(self) -> str:
        return f"RetryBuffer(size={self.size}, capacity={self._capacity}, dropped={self.dropped_count})"
