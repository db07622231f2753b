"""Request and response fingerprinting.

Two digests are computed here:

1. The idempotency key of a mutating request, derived from a canonical JSON
   serialization of ``{method, path, body, params, query}`` plus, when a file
   is attached, the file metadata and the SHA-256 of its bytes.
2. The weak ETag of an outgoing response, the first N hex characters of the
   SHA-256 of the payload that is about to be sent.

Both use the same canonical serialization so that logically identical
payloads always produce identical digests.
"""

import asyncio
import hashlib
import json
from pathlib import Path
from typing import Any

from supplygraph_middleware.models import UploadedFile
from supplygraph_middleware.observability.logging import get_logger

logger = get_logger(__name__)


def canonical_json(value: Any) -> str:
    """Serialize ``value`` deterministically.

    Keys are sorted, separators are compact and non-ASCII characters are kept.
    Values JSON does not know (datetimes, UUIDs, ...) are rendered with ``str``.

    Examples:
        >>> canonical_json({"b": 1, "a": [1, 2]})
        '{"a":[1,2],"b":1}'
    """
    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def _file_metadata(upload: UploadedFile) -> dict[str, Any]:
    return {
        "originalname": upload.original_name,
        "size": upload.size,
        "mimetype": upload.mimetype,
    }


async def _describe_upload(upload: UploadedFile) -> dict[str, Any]:
    """Build the file component of the key.

    Bytes are taken from memory when available, otherwise read from disk off
    the event loop. A missing path yields metadata only; a read failure yields
    metadata flagged with ``error: hash_failed``.
    """
    entry = _file_metadata(upload)

    if upload.content is not None:
        entry["hash"] = hashlib.sha256(upload.content).hexdigest()
        return entry

    if not upload.path:
        return entry

    path = Path(upload.path)
    try:
        if not path.exists():
            return entry
        data = await asyncio.to_thread(path.read_bytes)
    except OSError as e:
        logger.warning(
            "fingerprint.file_hash_failed",
            filename=upload.original_name,
            error=str(e),
            error_type=type(e).__name__,
        )
        entry["error"] = "hash_failed"
        return entry

    entry["hash"] = hashlib.sha256(data).hexdigest()
    return entry


async def derive_idempotency_key(
    method: str,
    path: str,
    body: Any = None,
    params: dict[str, Any] | None = None,
    query: dict[str, Any] | None = None,
    upload: UploadedFile | None = None,
) -> str:
    """Derive a deterministic idempotency key for a request.

    Args:
        method: HTTP method (e.g., "POST")
        path: URL path component
        body: Parsed request body (JSON value, form fields or raw text)
        params: Route parameters
        query: Query parameters; repeated keys map to lists
        upload: Attached file, if any

    Returns:
        Hexadecimal SHA-256 hash string (64 characters)

    Examples:
        >>> await derive_idempotency_key("POST", "/widgets", {"name": "a"})
        '5d41...'  # SHA-256 hash
    """
    key_data: dict[str, Any] = {
        "method": method.upper(),
        "path": path,
        "body": body if body is not None else {},
        "params": params or {},
        "query": query or {},
    }

    if upload is not None:
        key_data["file"] = await _describe_upload(upload)

    return hashlib.sha256(canonical_json(key_data).encode("utf-8")).hexdigest()


def compute_etag(data: Any, length: int = 16) -> str:
    """Compute a weak ETag for a response payload.

    Args:
        data: The payload about to be sent. Bytes are hashed as-is, strings
            as UTF-8, anything else through ``canonical_json``.
        length: Number of hex characters kept from the digest.

    Returns:
        Tag in the form ``W/"<hex>"``.

    Examples:
        >>> compute_etag({"items": []})
        'W/"3b1f5b6f0a9c2d4e"'
    """
    if isinstance(data, (bytes, bytearray, memoryview)):
        payload = bytes(data)
    elif isinstance(data, str):
        payload = data.encode("utf-8")
    else:
        payload = canonical_json(data).encode("utf-8")

    digest = hashlib.sha256(payload).hexdigest()
    return f'W/"{digest[:length]}"'
