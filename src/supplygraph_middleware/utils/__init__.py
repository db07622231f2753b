"""Utility modules for the SupplyGraph request middleware."""

from .headers import (
    HOP_BY_HOP_HEADERS,
    extract_client_key,
    filter_response_headers,
    get_header_value,
    if_none_match_matches,
)

__all__ = [
    "extract_client_key",
    "filter_response_headers",
    "get_header_value",
    "if_none_match_matches",
    "HOP_BY_HOP_HEADERS",
]
