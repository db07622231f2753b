"""Idempotency Coordinator.

Deduplicates mutating requests that share a derived or client-supplied key.
The handler runs at most once per key within the validity window; retries and
concurrent duplicates receive the cached final response instead.

Flow:
    1. Skip methods outside ``enabled_methods``
    2. Reject with 400 if ``require_header`` is set and no key was supplied
    3. Use the client key or derive one from the request
    4. Replay a cached record if one is still valid
    5. Claim the in-flight marker, or poll until the running duplicate caches
       its result (bounded; on the ceiling the request executes anyway)
    6. Execute the handler, cache whatever it produced, release the marker

Bookkeeping failures (derivation, store errors) are logged and the request
proceeds without protection. Only the missing-header contract violation is
surfaced to the caller.

Examples:
    Using the coordinator directly::

        from supplygraph_middleware.core.coordinator import IdempotencyCoordinator, Request

        coordinator = IdempotencyCoordinator()

        async def create_widget(request: Request) -> CapturedResponse:
            widget = await widgets.insert(request.body)
            return CapturedResponse.json(widget, status=201)

        response = await coordinator.handle(
            Request(method="POST", path="/widgets", body={"name": "a"}),
            create_widget,
        )
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

from supplygraph_middleware.config import IdempotencyConfig
from supplygraph_middleware.core.replay import CapturedResponse, capture_response, replay_response
from supplygraph_middleware.exceptions import (
    HandlerExecutionError,
    KeyDerivationError,
    MissingIdempotencyKeyError,
    StorageError,
)
from supplygraph_middleware.fingerprint import derive_idempotency_key
from supplygraph_middleware.models import CacheStats, IdempotencyRecord, UploadedFile
from supplygraph_middleware.observability.logging import get_logger, key_prefix
from supplygraph_middleware.observability.metrics import (
    decrement_in_flight,
    increment_in_flight,
    record_execution_time,
    record_request,
)
from supplygraph_middleware.storage.base import IdempotencyStore
from supplygraph_middleware.storage.memory import MemoryIdempotencyStore
from supplygraph_middleware.utils.headers import (
    IDEMPOTENCY_KEY_RESPONSE_HEADER,
    extract_client_key,
    set_header,
)

logger = get_logger(__name__)


class Request:
    """Abstract request representation.

    Framework adapters convert their framework-specific request objects into
    this format.

    Attributes:
        method: HTTP method (GET, POST, etc.)
        path: URL path
        headers: Request headers as dict
        body: Parsed request body (JSON value, form fields or text)
        params: Route parameters
        query: Query parameters; repeated keys map to lists
        upload: Attached file, if any
    """

    def __init__(
        self,
        method: str,
        path: str,
        headers: dict[str, str] | None = None,
        body: Any = None,
        params: dict[str, Any] | None = None,
        query: dict[str, Any] | None = None,
        upload: UploadedFile | None = None,
    ) -> None:
        self.method = method
        self.path = path
        self.headers = headers or {}
        self.body = body
        self.params = params or {}
        self.query = query or {}
        self.upload = upload


Handler = Callable[[Request], Awaitable[CapturedResponse]]


class IdempotencyCoordinator:
    """Framework-agnostic idempotency coordinator.

    Attributes:
        store: Store holding cached records and in-flight markers
        config: Configuration object
    """

    def __init__(
        self,
        store: IdempotencyStore | None = None,
        config: IdempotencyConfig | None = None,
    ) -> None:
        self.store = store if store is not None else MemoryIdempotencyStore()
        self.config = config or IdempotencyConfig()

    async def handle(self, request: Request, next_handler: Handler) -> CapturedResponse:
        """Process a request with idempotency handling.

        Args:
            request: The incoming request
            next_handler: Async function producing the real response

        Returns:
            The handler's response, or the cached response of an earlier
            execution with the same key

        Raises:
            HandlerExecutionError: ``next_handler`` raised. The 500 response
                cached for the key is attached as ``response`` and the original
                exception as ``cause``
        """
        if request.method.upper() not in self.config.enabled_methods:
            return await next_handler(request)

        client_key = extract_client_key(request.headers)

        if self.config.require_header and client_key is None:
            error = MissingIdempotencyKeyError()
            logger.info(
                "idempotency.key_missing",
                method=request.method,
                path=request.path,
            )
            record_request("rejected", error.status_code)
            return CapturedResponse.json(error.to_dict(), status=error.status_code)

        try:
            key = client_key if client_key is not None else await self._derive_key(request)
        except KeyDerivationError as e:
            logger.warning(
                "idempotency.key_derivation_failed",
                method=request.method,
                path=request.path,
                error=e.message,
            )
            response = await next_handler(request)
            record_request("bypassed", response.status)
            return response

        cached = await self._lookup(key)
        if cached is not None:
            logger.info("idempotency.replayed", key=key_prefix(key), status_code=cached.status_code)
            record_request("replayed", cached.status_code)
            return replay_response(cached)

        result = "executed"
        if await self._claim(key):
            # The previous holder may have finished between lookup and claim
            cached = await self._lookup(key)
            if cached is not None:
                await self._release(key)
                record_request("replayed", cached.status_code)
                return replay_response(cached)
        else:
            replayed, result = await self._wait_for_in_flight(key)
            if replayed is not None:
                return replayed

        return await self._execute(key, request, next_handler, result)

    async def stats(self) -> CacheStats:
        """Return record and in-flight counts. Keys are never exposed."""
        return await self.store.stats()

    async def clear(self) -> None:
        """Drop every cached record and in-flight marker."""
        await self.store.clear()
        logger.info("idempotency.cache_cleared")

    async def _derive_key(self, request: Request) -> str:
        try:
            return await derive_idempotency_key(
                method=request.method,
                path=request.path,
                body=request.body,
                params=request.params,
                query=request.query,
                upload=request.upload,
            )
        except Exception as e:
            raise KeyDerivationError(f"Failed to derive idempotency key: {e}", cause=e) from e

    async def _lookup(self, key: str) -> IdempotencyRecord | None:
        try:
            return await self.store.get(key)
        except StorageError as e:
            logger.error("idempotency.lookup_failed", key=key_prefix(key), error=e.message)
            return None

    async def _claim(self, key: str) -> bool:
        try:
            return await self.store.try_mark_in_flight(key)
        except StorageError as e:
            logger.error("idempotency.claim_failed", key=key_prefix(key), error=e.message)
            return True

    async def _release(self, key: str) -> None:
        try:
            await self.store.clear_in_flight(key)
        except StorageError as e:
            logger.error("idempotency.release_failed", key=key_prefix(key), error=e.message)

    async def _persist(self, key: str, response: CapturedResponse) -> None:
        try:
            await self.store.set(capture_response(key, response, self.config.ttl_ms))
        except StorageError as e:
            logger.error("idempotency.persist_failed", key=key_prefix(key), error=e.message)

    async def _wait_for_in_flight(self, key: str) -> tuple[CapturedResponse | None, str]:
        """Poll until the running duplicate caches its result.

        Returns:
            ``(response, "waited")`` when a cached result appeared in time.
            ``(None, "executed")`` when the marker was released without a
            record and this request claimed it.
            ``(None, "fallthrough")`` when the ceiling was reached and this
            request took the marker over.
        """
        interval = self.config.poll_interval_ms / 1000.0

        for attempt in range(1, self.config.max_poll_attempts + 1):
            await asyncio.sleep(interval)

            record = await self._lookup(key)
            if record is not None:
                logger.info(
                    "idempotency.replayed_after_wait",
                    key=key_prefix(key),
                    attempts=attempt,
                    status_code=record.status_code,
                )
                record_request("waited", record.status_code)
                return replay_response(record), "waited"

            if await self._claim(key):
                return None, "executed"

        # Known degradation: the original execution may still be running
        logger.warning(
            "idempotency.wait_ceiling_reached",
            key=key_prefix(key),
            attempts=self.config.max_poll_attempts,
            waited_seconds=self.config.max_wait_seconds,
        )
        try:
            await self.store.mark_in_flight(key)
        except StorageError as e:
            logger.error("idempotency.claim_failed", key=key_prefix(key), error=e.message)
        return None, "fallthrough"

    async def _execute(
        self,
        key: str,
        request: Request,
        next_handler: Handler,
        result: str,
    ) -> CapturedResponse:
        increment_in_flight()
        start_time = time.time()
        try:
            try:
                response = await next_handler(request)
            except Exception as e:
                execution_time_ms = int((time.time() - start_time) * 1000)
                error_response = CapturedResponse.json(
                    {"error": "Internal Server Error"},
                    status=500,
                    headers={IDEMPOTENCY_KEY_RESPONSE_HEADER: key},
                )
                await self._persist(key, error_response)
                logger.error(
                    "idempotency.handler_failed",
                    key=key_prefix(key),
                    error=str(e),
                    error_type=type(e).__name__,
                    execution_time_ms=execution_time_ms,
                )
                record_request("failed", error_response.status)
                raise HandlerExecutionError(
                    f"Handler failed: {e}", cause=e, response=error_response
                ) from e

            execution_time_ms = int((time.time() - start_time) * 1000)
            response.headers = set_header(response.headers, IDEMPOTENCY_KEY_RESPONSE_HEADER, key)
            await self._persist(key, response)

            logger.info(
                "idempotency.executed",
                key=key_prefix(key),
                status_code=response.status,
                execution_time_ms=execution_time_ms,
                result=result,
            )
            record_execution_time(execution_time_ms)
            record_request(result, response.status)
            return response
        finally:
            await self._release(key)
            decrement_in_flight()
