"""Header utilities for the SupplyGraph request middleware.

This module provides functions for:
- Case-insensitive header lookup
- Extracting the client-supplied idempotency key
- Filtering hop-by-hop headers before a response is cached
- Parsing and matching If-None-Match against an ETag
"""

# Request headers that carry a client-supplied idempotency key, in precedence order
IDEMPOTENCY_KEY_HEADERS = ("idempotency-key", "x-idempotency-key")

# Debug echo of the key used for a request
IDEMPOTENCY_KEY_RESPONSE_HEADER = "X-Idempotency-Key"

# Headers that must not be cached and replayed
HOP_BY_HOP_HEADERS = {
    "date",
    "server",
    "connection",
    "transfer-encoding",
    "keep-alive",
    "trailer",
    "upgrade",
    "proxy-connection",
    "proxy-authenticate",
    "proxy-authorization",
}


def get_header_value(
    headers: dict[str, str],
    header_name: str,
    default: str | None = None,
) -> str | None:
    """Get header value with case-insensitive lookup.

    Example:
        >>> headers = {"Content-Type": "application/json"}
        >>> get_header_value(headers, "content-type")
        'application/json'
        >>> get_header_value(headers, "missing", "default")
        'default'
    """
    header_name_lower = header_name.lower()

    for key, value in headers.items():
        if key.lower() == header_name_lower:
            return value

    return default


def extract_client_key(headers: dict[str, str]) -> str | None:
    """Return the trimmed client-supplied idempotency key, if any.

    ``Idempotency-Key`` takes precedence over ``X-Idempotency-Key``. A header
    that is empty after trimming counts as absent.

    Example:
        >>> extract_client_key({"X-Idempotency-Key": "  order-42 "})
        'order-42'
    """
    for name in IDEMPOTENCY_KEY_HEADERS:
        value = get_header_value(headers, name)
        if value is not None and value.strip():
            return value.strip()
    return None


def filter_response_headers(
    headers: dict[str, str],
    additional: list[str] | None = None,
) -> dict[str, str]:
    """Drop hop-by-hop headers from response headers.

    Args:
        headers: Original response headers
        additional: Additional header names to remove (case-insensitive)

    Example:
        >>> filter_response_headers({
        ...     "Content-Type": "application/json",
        ...     "Date": "Mon, 01 Oct 2025 12:00:00 GMT",
        ... })
        {'Content-Type': 'application/json'}
    """
    headers_to_remove = set(HOP_BY_HOP_HEADERS)
    if additional:
        headers_to_remove.update(h.lower() for h in additional)

    return {key: value for key, value in headers.items() if key.lower() not in headers_to_remove}


def set_header(headers: dict[str, str], name: str, value: str) -> dict[str, str]:
    """Return a copy of ``headers`` with ``name`` set, replacing any casing of it."""
    name_lower = name.lower()
    result = {key: val for key, val in headers.items() if key.lower() != name_lower}
    result[name] = value
    return result


def _opaque_tag(tag: str) -> str:
    tag = tag.strip()
    if tag.startswith("W/"):
        tag = tag[2:]
    return tag


def parse_if_none_match(value: str | None) -> list[str]:
    """Split an If-None-Match header into its entity tags.

    Example:
        >>> parse_if_none_match('W/"abc", "def"')
        ['W/"abc"', '"def"']
    """
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def if_none_match_matches(value: str | None, etag: str) -> bool:
    """Weak comparison of an If-None-Match header against ``etag``.

    ``*`` matches any tag. The ``W/`` prefix is ignored on both sides.
    """
    tags = parse_if_none_match(value)
    if not tags:
        return False
    if "*" in tags:
        return True
    expected = _opaque_tag(etag)
    return any(_opaque_tag(tag) == expected for tag in tags)
