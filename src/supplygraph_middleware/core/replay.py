"""Response capture and replay.

The coordinator never patches the framework's response object. Instead the
handler produces a CapturedResponse, which is:

1. Persisted as an IdempotencyRecord (hop-by-hop headers removed)
2. Relayed to the caller unchanged

A later duplicate receives the record back through ``replay_response``, with
the same status, headers and body as the first caller saw.

Examples:
    Capture and replay::

        record = capture_response(key, response, ttl_ms=86_400_000)
        await store.set(record)

        replayed = replay_response(record)
        assert replayed.body == response.body
"""

import json
from typing import Any

from supplygraph_middleware.models import IdempotencyRecord
from supplygraph_middleware.utils.headers import filter_response_headers, get_header_value


class CapturedResponse:
    """Framework-agnostic HTTP response descriptor.

    Attributes:
        status: HTTP status code (e.g., 200, 201, 500)
        headers: Response headers as key-value pairs
        body: Response body as bytes
    """

    def __init__(self, status: int, headers: dict[str, str], body: bytes) -> None:
        self.status = status
        self.headers = headers
        self.body = body

    @classmethod
    def json(
        cls,
        content: Any,
        status: int = 200,
        headers: dict[str, str] | None = None,
    ) -> "CapturedResponse":
        """Build a JSON response."""
        merged = {"content-type": "application/json"}
        if headers:
            merged.update(headers)
        return cls(status=status, headers=merged, body=json.dumps(content).encode("utf-8"))

    @property
    def content_type(self) -> str:
        return get_header_value(self.headers, "content-type", "") or ""

    def __repr__(self) -> str:
        return f"CapturedResponse(status={self.status}, body_bytes={len(self.body)})"


def capture_response(key: str, response: CapturedResponse, ttl_ms: int) -> IdempotencyRecord:
    """Turn a handler's response into a cacheable record."""
    return IdempotencyRecord.from_response(
        key=key,
        status_code=response.status,
        headers=filter_response_headers(response.headers),
        body=response.body,
        ttl_ms=ttl_ms,
    )


def replay_response(record: IdempotencyRecord) -> CapturedResponse:
    """Reconstruct the cached response of ``record`` verbatim.

    Raises:
        ValueError: If the stored response body is not valid base64
    """
    try:
        body = record.get_body_bytes()
    except Exception as e:
        raise ValueError(f"Failed to decode response body: {e}") from e

    return CapturedResponse(
        status=record.status_code,
        headers=dict(record.headers),
        body=body,
    )
