"""Background sweep of expired records and abandoned in-flight markers.

The sweep bounds memory growth of the store and releases keys whose
execution never reported completion.

The sweep task:
1. Runs at a fixed interval (default 5 minutes)
2. Calls store.sweep() with the in-flight abandonment ceiling
3. Reports metrics and logs
4. Keeps running when a pass fails

Examples:
    Integrate with a FastAPI lifespan::

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            task = await start_sweep_task(store, interval_seconds=300)
            yield
            await stop_sweep_task(task)
"""

import asyncio

from supplygraph_middleware.models import SweepResult
from supplygraph_middleware.observability.logging import get_logger
from supplygraph_middleware.observability.metrics import record_sweep
from supplygraph_middleware.storage.base import IdempotencyStore

logger = get_logger(__name__)


async def sweep_once(store: IdempotencyStore, in_flight_ceiling_seconds: float = 300) -> SweepResult:
    """Run one sweep pass and report it."""
    result = await store.sweep(in_flight_ceiling_seconds)
    record_sweep(result.records_removed, result.markers_removed)

    if result.total > 0:
        logger.info(
            "sweep.completed",
            records_removed=result.records_removed,
            markers_removed=result.markers_removed,
        )
    else:
        logger.debug("sweep.completed", records_removed=0, markers_removed=0)

    return result


async def sweep_loop(
    store: IdempotencyStore,
    interval_seconds: float = 300,
    in_flight_ceiling_seconds: float = 300,
    stop_event: asyncio.Event | None = None,
) -> None:
    """Periodically sweep the store until ``stop_event`` is set.

    Args:
        store: Store to sweep
        interval_seconds: Time between passes (default 300s = 5 minutes)
        in_flight_ceiling_seconds: Age after which markers count as abandoned
        stop_event: Event to signal the loop to stop (optional)
    """
    if stop_event is None:
        stop_event = asyncio.Event()

    logger.info("sweep.started", interval_seconds=interval_seconds)

    while not stop_event.is_set():
        # Wait first; nothing can have expired at startup
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            pass
        else:
            break

        try:
            await sweep_once(store, in_flight_ceiling_seconds)
        except Exception as e:
            logger.error(
                "sweep.failed",
                error=str(e),
                error_type=type(e).__name__,
            )

    logger.info("sweep.stopped")


async def start_sweep_task(
    store: IdempotencyStore,
    interval_seconds: float = 300,
    in_flight_ceiling_seconds: float = 300,
) -> asyncio.Task[None]:
    """Start the sweep loop as a background task.

    Returns:
        The asyncio Task running the loop; pass it to stop_sweep_task()
    """
    stop_event = asyncio.Event()

    task = asyncio.create_task(
        sweep_loop(
            store=store,
            interval_seconds=interval_seconds,
            in_flight_ceiling_seconds=in_flight_ceiling_seconds,
            stop_event=stop_event,
        )
    )

    task._stop_event = stop_event  # type: ignore[attr-defined]

    return task


async def stop_sweep_task(task: asyncio.Task[None], timeout: float = 5.0) -> None:
    """Stop a running sweep task gracefully.

    Signals the loop to stop and waits for it; cancels it if it does not
    stop within ``timeout`` seconds.
    """
    stop_event: asyncio.Event | None = getattr(task, "_stop_event", None)

    if stop_event:
        stop_event.set()

    try:
        await asyncio.wait_for(task, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("sweep.stop_timeout", message="Sweep task did not stop in time")
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.debug("sweep.cancelled")
