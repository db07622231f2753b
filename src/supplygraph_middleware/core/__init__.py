"""Core middleware logic.

This package contains the framework-agnostic business logic:
- Coordinator: request deduplication with in-flight suppression
- ETag: content-derived response tagging and 304 handling
- Replay: response capture into records and reconstruction from them
- Cleanup: background sweep of expired records and abandoned markers

Framework adapters in ``supplygraph_middleware.adapters`` wrap these classes.
"""

from supplygraph_middleware.core.coordinator import IdempotencyCoordinator, Request
from supplygraph_middleware.core.etag import ResponseCacheTagger
from supplygraph_middleware.core.replay import CapturedResponse, replay_response

__all__ = [
    "CapturedResponse",
    "IdempotencyCoordinator",
    "Request",
    "ResponseCacheTagger",
    "replay_response",
]
