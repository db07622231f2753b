"""Store protocol for the Idempotency Coordinator.

A store owns two logical tables:

- ``idempotency_cache``: key -> IdempotencyRecord
- ``in_flight``: key -> InFlightMarker

The coordinator only talks to this protocol, so an external store can be
substituted for durability without touching the request flow.

Atomicity Requirements:
    All IdempotencyStore implementations MUST guarantee:

    1. **Atomic claim**: try_mark_in_flight() checks for an existing marker
       and sets a new one in a single step. Two concurrent callers for the
       same key never both receive True.

    2. **Expiry on read**: get() treats records past expires_at as absent.

    3. **Immutable records**: a record returned by get() is never modified
       afterwards; the sweep only removes entries from the table.

    4. **Key privacy**: stats() exposes counts only.

Examples:
    Implementing a custom store::

        class RedisIdempotencyStore:
            async def get(self, key: str) -> IdempotencyRecord | None:
                data = await self.redis.get(f"idem:{key}")
                if data is None:
                    return None
                return IdempotencyRecord.model_validate_json(data)

            async def try_mark_in_flight(self, key: str) -> bool:
                return await self.redis.set(f"inflight:{key}", "1", nx=True, ex=300)
            ...
"""

from typing import Protocol, runtime_checkable

from supplygraph_middleware.models import CacheStats, IdempotencyRecord, SweepResult


@runtime_checkable
class IdempotencyStore(Protocol):
    """Protocol defining the interface of idempotency stores.

    Error Handling:
        Methods should raise StorageError for backend failures. Implementations
        should NOT raise backend-specific exceptions directly.
    """

    async def get(self, key: str) -> IdempotencyRecord | None:
        """Return the unexpired record for ``key``, or None."""
        ...

    async def set(self, record: IdempotencyRecord) -> None:
        """Write ``record``, replacing any previous record for its key."""
        ...

    async def delete(self, key: str) -> bool:
        """Remove the record for ``key``. Returns True if one existed."""
        ...

    async def is_in_flight(self, key: str) -> bool:
        """Return True if an execution for ``key`` is marked in progress."""
        ...

    async def try_mark_in_flight(self, key: str) -> bool:
        """Atomically claim ``key``.

        Returns:
            True if the caller now owns the in-flight marker, False if another
            execution already holds it.
        """
        ...

    async def mark_in_flight(self, key: str) -> None:
        """Set the in-flight marker unconditionally (takeover after a wait ceiling)."""
        ...

    async def clear_in_flight(self, key: str) -> None:
        """Remove the in-flight marker for ``key``. Missing markers are ignored."""
        ...

    async def sweep(self, in_flight_ceiling_seconds: float) -> SweepResult:
        """Remove expired records and markers older than the ceiling."""
        ...

    async def clear(self) -> None:
        """Remove every record and marker."""
        ...

    async def stats(self) -> CacheStats:
        """Return counts only, never keys."""
        ...
