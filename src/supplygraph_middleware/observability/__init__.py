"""Observability utilities for the SupplyGraph request middleware.

This package provides monitoring and debugging capabilities:
- Prometheus metrics for coordinator, tagger and sweep behavior
- Structured logging with contextual information
"""

from supplygraph_middleware.observability.logging import configure_logging, get_logger
from supplygraph_middleware.observability.metrics import (
    record_etag,
    record_execution_time,
    record_request,
    record_sweep,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "record_request",
    "record_execution_time",
    "record_sweep",
    "record_etag",
]
