"""In-memory idempotency store.

This module provides the process-wide store used by default: two plain
dictionaries, one for cached records and one for in-flight markers.

Suitable for:
    - Single-process deployments
    - Development and testing

A process restart clears all state. For at-most-once guarantees that must
survive restarts, implement IdempotencyStore on top of an external store.

Concurrency:
    Under asyncio no preemption occurs between dictionary operations inside a
    single synchronous step, but the store may also be shared by worker
    threads (e.g. a threaded test client). Every check-then-act sequence is
    therefore guarded by a ``threading.Lock`` that is held only for the
    duration of the dictionary operations, never across an ``await``.

Examples:
    Claiming a key::

        store = MemoryIdempotencyStore()

        if await store.try_mark_in_flight(key):
            try:
                response = await execute()
                await store.set(IdempotencyRecord.from_response(...))
            finally:
                await store.clear_in_flight(key)
"""

import threading
from collections.abc import Callable
from datetime import datetime

from supplygraph_middleware.models import (
    CacheStats,
    IdempotencyRecord,
    InFlightMarker,
    SweepResult,
    utcnow,
)
from supplygraph_middleware.storage.base import IdempotencyStore


class MemoryIdempotencyStore(IdempotencyStore):
    """In-memory store with two logical tables.

    Attributes:
        _records: Mapping of key to cached IdempotencyRecord.
        _in_flight: Mapping of key to InFlightMarker.
        _lock: Guards every check-then-act sequence on both tables.
        _clock: Source of the current time; injectable for tests.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._records: dict[str, IdempotencyRecord] = {}
        self._in_flight: dict[str, InFlightMarker] = {}
        self._lock = threading.Lock()
        self._clock = clock

    async def get(self, key: str) -> IdempotencyRecord | None:
        """Return the record for ``key`` unless it has expired.

        Expired records found here are dropped immediately rather than
        waiting for the next sweep.
        """
        now = self._clock()
        with self._lock:
            record = self._records.get(key)
            if record is None:
                return None
            if record.is_expired(now):
                del self._records[key]
                return None
            return record

    async def set(self, record: IdempotencyRecord) -> None:
        with self._lock:
            self._records[record.key] = record

    async def delete(self, key: str) -> bool:
        with self._lock:
            return self._records.pop(key, None) is not None

    async def is_in_flight(self, key: str) -> bool:
        with self._lock:
            return key in self._in_flight

    async def try_mark_in_flight(self, key: str) -> bool:
        """Atomically claim ``key`` for execution.

        Returns:
            True if the marker was created by this call, False if one exists.
        """
        now = self._clock()
        with self._lock:
            if key in self._in_flight:
                return False
            self._in_flight[key] = InFlightMarker(key=key, started_at=now)
            return True

    async def mark_in_flight(self, key: str) -> None:
        now = self._clock()
        with self._lock:
            self._in_flight[key] = InFlightMarker(key=key, started_at=now)

    async def clear_in_flight(self, key: str) -> None:
        with self._lock:
            self._in_flight.pop(key, None)

    async def sweep(self, in_flight_ceiling_seconds: float) -> SweepResult:
        """Remove expired records and abandoned in-flight markers.

        Args:
            in_flight_ceiling_seconds: Markers older than this are removed.

        Returns:
            Counts of removed records and markers.
        """
        now = self._clock()
        with self._lock:
            expired = [key for key, record in self._records.items() if record.is_expired(now)]
            for key in expired:
                del self._records[key]

            stale = [
                key
                for key, marker in self._in_flight.items()
                if marker.is_stale(in_flight_ceiling_seconds, now)
            ]
            for key in stale:
                del self._in_flight[key]

        return SweepResult(records_removed=len(expired), markers_removed=len(stale))

    async def clear(self) -> None:
        with self._lock:
            self._records.clear()
            self._in_flight.clear()

    async def stats(self) -> CacheStats:
        with self._lock:
            size = len(self._records)
            in_flight = len(self._in_flight)
        return CacheStats(size=size, active_keys=size, in_flight=in_flight)
