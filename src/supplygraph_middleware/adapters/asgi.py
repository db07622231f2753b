"""ASGI middleware adapters for FastAPI and Starlette applications.

This module wraps the framework-agnostic IdempotencyCoordinator and
ResponseCacheTagger as Starlette ``BaseHTTPMiddleware`` classes.

The adapters:
1. Convert Starlette requests to the internal Request format
2. Buffer the downstream response into a CapturedResponse
3. Convert the result back to a Starlette Response

Examples:
    FastAPI integration::

        from fastapi import FastAPI
        from supplygraph_middleware.adapters.asgi import (
            ASGIETagMiddleware,
            ASGIIdempotencyMiddleware,
        )
        from supplygraph_middleware.config import IdempotencyConfig
        from supplygraph_middleware.storage.memory import MemoryIdempotencyStore

        app = FastAPI()
        store = MemoryIdempotencyStore()

        app.add_middleware(ASGIETagMiddleware)
        app.add_middleware(
            ASGIIdempotencyMiddleware,
            store=store,
            config=IdempotencyConfig(require_header=False),
        )
"""

import json
from collections.abc import Awaitable, Callable
from typing import Any

from starlette.datastructures import UploadFile
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request as StarletteRequest
from starlette.responses import Response

from supplygraph_middleware.config import ETagConfig, IdempotencyConfig
from supplygraph_middleware.core.coordinator import IdempotencyCoordinator, Request
from supplygraph_middleware.core.etag import (
    ResponseCacheTagger,
    is_taggable_content_type,
    is_taggable_status,
)
from supplygraph_middleware.core.replay import CapturedResponse
from supplygraph_middleware.exceptions import HandlerExecutionError
from supplygraph_middleware.models import UploadedFile
from supplygraph_middleware.observability.logging import get_logger
from supplygraph_middleware.observability.metrics import record_etag
from supplygraph_middleware.storage.base import IdempotencyStore

logger = get_logger(__name__)

CallNext = Callable[[StarletteRequest], Awaitable[Response]]

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


async def read_response(response: Response) -> CapturedResponse:
    """Buffer a downstream Starlette response into a CapturedResponse."""
    body = b""
    if hasattr(response, "body_iterator"):
        async for chunk in response.body_iterator:
            if isinstance(chunk, str):
                body += chunk.encode(getattr(response, "charset", "utf-8"))
            else:
                body += bytes(chunk)
    else:
        body = bytes(getattr(response, "body", b""))

    return CapturedResponse(
        status=response.status_code,
        headers=dict(response.headers),
        body=body,
    )


def to_starlette_response(response: CapturedResponse) -> Response:
    return Response(
        content=response.body,
        status_code=response.status,
        headers=response.headers,
    )


def _query_mapping(request: StarletteRequest) -> dict[str, Any]:
    query: dict[str, Any] = {}
    for name in request.query_params.keys():
        if name in query:
            continue
        values = request.query_params.getlist(name)
        query[name] = values[0] if len(values) == 1 else values
    return query


async def _parse_form(request: StarletteRequest) -> tuple[dict[str, Any], UploadedFile | None]:
    fields: dict[str, Any] = {}
    upload: UploadedFile | None = None

    form = await request.form()
    try:
        for name, value in form.multi_items():
            if isinstance(value, UploadFile):
                # Only the first file takes part in the key
                if upload is None:
                    content = await value.read()
                    upload = UploadedFile(
                        original_name=value.filename or "",
                        size=value.size if value.size is not None else len(content),
                        mimetype=value.content_type or "application/octet-stream",
                        content=content,
                    )
                continue

            if name in fields:
                existing = fields[name]
                fields[name] = existing + [value] if isinstance(existing, list) else [existing, value]
            else:
                fields[name] = value
    finally:
        await form.close()

    return fields, upload


async def convert_request(request: StarletteRequest) -> Request:
    """Convert a Starlette request to the internal Request format.

    JSON bodies are parsed; form bodies yield their fields and first uploaded
    file; anything else is kept as text.
    """
    raw = await request.body()
    content_type = request.headers.get("content-type", "").lower()

    body: Any = None
    upload: UploadedFile | None = None

    if raw:
        if "json" in content_type:
            try:
                body = json.loads(raw)
            except ValueError:
                body = raw.decode("utf-8", errors="replace")
        elif content_type.startswith(FORM_CONTENT_TYPES):
            try:
                body, upload = await _parse_form(request)
            except Exception as e:
                logger.warning(
                    "asgi.form_parse_failed",
                    path=request.url.path,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                body = raw.decode("utf-8", errors="replace")
        else:
            body = raw.decode("utf-8", errors="replace")

    return Request(
        method=request.method,
        path=request.url.path,
        headers=dict(request.headers),
        body=body,
        params=dict(request.path_params),
        query=_query_mapping(request),
        upload=upload,
    )


class ASGIIdempotencyMiddleware(BaseHTTPMiddleware):
    """ASGI middleware running requests through the IdempotencyCoordinator.

    Attributes:
        coordinator: Core coordinator instance
    """

    def __init__(
        self,
        app: Any,
        store: IdempotencyStore | None = None,
        config: IdempotencyConfig | None = None,
        coordinator: IdempotencyCoordinator | None = None,
    ) -> None:
        """Initialize the ASGI middleware.

        Args:
            app: The ASGI application
            store: Store for records and markers (in-memory if not provided)
            config: Configuration object (uses defaults if not provided)
            coordinator: Pre-built coordinator; overrides store and config
        """
        super().__init__(app)
        self.coordinator = coordinator or IdempotencyCoordinator(store=store, config=config)

    async def dispatch(self, request: StarletteRequest, call_next: CallNext) -> Response:
        if request.method.upper() not in self.coordinator.config.enabled_methods:
            return await call_next(request)

        internal_request = await convert_request(request)

        async def handler(_req: Request) -> CapturedResponse:
            response = await call_next(request)
            return await read_response(response)

        try:
            result = await self.coordinator.handle(internal_request, handler)
        except HandlerExecutionError as e:
            # Relay the cached 500 so the first caller and retries match
            return to_starlette_response(e.response)
        return to_starlette_response(result)


class ASGIETagMiddleware(BaseHTTPMiddleware):
    """ASGI middleware running read responses through the ResponseCacheTagger.

    Untaggable responses are passed through without buffering: other methods,
    304s, binary or streaming media, and bodies without a content-length.
    """

    def __init__(self, app: Any, config: ETagConfig | None = None) -> None:
        super().__init__(app)
        self.tagger = ResponseCacheTagger(config)

    async def dispatch(self, request: StarletteRequest, call_next: CallNext) -> Response:
        if request.method.upper() not in self.tagger.config.methods:
            return await call_next(request)

        response = await call_next(request)

        content_type = response.headers.get("content-type", "")
        # Without a content-length the body may be unbounded; never buffer it
        if (
            not is_taggable_status(response.status_code)
            or not is_taggable_content_type(content_type)
            or "content-length" not in response.headers
        ):
            record_etag("skipped")
            return response

        captured = await read_response(response)

        async def emit() -> CapturedResponse:
            return captured

        internal_request = Request(
            method=request.method,
            path=request.url.path,
            headers=dict(request.headers),
        )
        result = await self.tagger.wrap(internal_request, emit)
        return to_starlette_response(result)
