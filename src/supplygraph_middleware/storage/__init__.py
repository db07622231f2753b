"""Stores for idempotency records and in-flight markers.

All stores implement the IdempotencyStore protocol defined in base.py.

Available Stores:
    - MemoryIdempotencyStore: process-wide in-memory store
"""

from supplygraph_middleware.storage.base import IdempotencyStore
from supplygraph_middleware.storage.memory import MemoryIdempotencyStore

__all__ = [
    "IdempotencyStore",
    "MemoryIdempotencyStore",
]
