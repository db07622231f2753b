"""Prometheus metrics for the SupplyGraph request middleware.

Metrics include:

- Coordinator outcomes by result type (executed, replayed, waited, ...)
- Handler execution time histogram
- In-flight keys gauge
- Background sweep tracking
- Response Cache Tagger outcomes (not_modified, full, skipped)

Examples:
    Recording a replayed request::

        from supplygraph_middleware.observability.metrics import record_request

        record_request(result="replayed", status_code=201)

    Recording a sweep::

        from supplygraph_middleware.observability.metrics import record_sweep

        record_sweep(records_removed=42, markers_removed=1)
"""

from prometheus_client import Counter, Gauge, Histogram

# Labels: result (executed, replayed, waited, fallthrough, failed, bypassed, rejected), status_code
requests_total = Counter(
    "supplygraph_idempotency_requests_total",
    "Total number of mutating requests seen by the idempotency coordinator",
    ["result", "status_code"],
)

# Only tracks handler executions, not replays
execution_time_ms = Histogram(
    "supplygraph_idempotency_execution_time_ms",
    "Handler execution time in milliseconds (executions only)",
    buckets=[10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000],
)

in_flight_keys = Gauge(
    "supplygraph_idempotency_in_flight_keys",
    "Number of idempotency keys whose handler is currently executing",
)

sweep_operations = Counter(
    "supplygraph_idempotency_sweep_operations_total",
    "Total number of background sweep passes performed",
)

sweep_records_removed = Counter(
    "supplygraph_idempotency_sweep_records_removed_total",
    "Total number of expired records removed by the sweep",
)

sweep_markers_removed = Counter(
    "supplygraph_idempotency_sweep_markers_removed_total",
    "Total number of abandoned in-flight markers removed by the sweep",
)

# Labels: outcome (not_modified, full, skipped)
etag_responses_total = Counter(
    "supplygraph_etag_responses_total",
    "Total number of responses seen by the response cache tagger",
    ["outcome"],
)


def record_request(result: str, status_code: int) -> None:
    """Record a coordinator outcome.

    Examples:
        >>> record_request("executed", 201)
        >>> record_request("rejected", 400)
    """
    requests_total.labels(result=result, status_code=str(status_code)).inc()


def record_execution_time(exec_time_ms: int) -> None:
    """Record handler execution time. Only call for executions, not replays."""
    execution_time_ms.observe(exec_time_ms)


def increment_in_flight() -> None:
    in_flight_keys.inc()


def decrement_in_flight() -> None:
    in_flight_keys.dec()


def record_sweep(records_removed: int, markers_removed: int = 0) -> None:
    """Record a sweep pass.

    Examples:
        >>> record_sweep(42)
    """
    sweep_operations.inc()
    sweep_records_removed.inc(records_removed)
    sweep_markers_removed.inc(markers_removed)


def record_etag(outcome: str) -> None:
    etag_responses_total.labels(outcome=outcome).inc()
