"""Response Cache Tagger.

Lets read endpoints skip re-sending an unchanged payload. The tag is derived
from the body actually emitted by the handler, so tag and body can never
disagree even if the handler changed its data after building it.

Examples:
    Wrapping a read handler::

        tagger = ResponseCacheTagger()

        async def list_companies() -> CapturedResponse:
            return CapturedResponse.json(await companies.all())

        response = await tagger.wrap(request, list_companies)
        # First call: 200 with ETag: W/"..."
        # Repeat with If-None-Match: W/"...": 304, empty body
"""

from collections.abc import Awaitable, Callable

from supplygraph_middleware.config import ETagConfig
from supplygraph_middleware.core.coordinator import Request
from supplygraph_middleware.core.replay import CapturedResponse
from supplygraph_middleware.fingerprint import compute_etag
from supplygraph_middleware.observability.logging import get_logger
from supplygraph_middleware.observability.metrics import record_etag
from supplygraph_middleware.utils.headers import (
    get_header_value,
    if_none_match_matches,
    set_header,
)

logger = get_logger(__name__)

# Streaming media is never buffered for hashing
UNTAGGABLE_MEDIA_TYPES = {"text/event-stream"}


def is_taggable_status(status: int) -> bool:
    """Return True for final responses other than 304.

    Error responses are tagged too, but only 2xx responses can turn into a 304.
    """
    return status >= 200 and status != 304


def is_taggable_content_type(content_type: str) -> bool:
    """Return True for textual and JSON content types.

    A missing content type counts as taggable.

    Examples:
        >>> is_taggable_content_type("application/json; charset=utf-8")
        True
        >>> is_taggable_content_type("image/png")
        False
        >>> is_taggable_content_type("text/event-stream")
        False
    """
    if not content_type:
        return True
    media_type = content_type.split(";", 1)[0].strip().lower()
    if media_type in UNTAGGABLE_MEDIA_TYPES:
        return False
    return (
        media_type.startswith("text/")
        or media_type == "application/json"
        or media_type.endswith("+json")
    )


class ResponseCacheTagger:
    """Adds weak ETags to read responses and answers matching requests with 304.

    Attributes:
        config: Tagger configuration
    """

    def __init__(self, config: ETagConfig | None = None) -> None:
        self.config = config or ETagConfig()

    async def wrap(
        self,
        request: Request,
        emit: Callable[[], Awaitable[CapturedResponse]],
    ) -> CapturedResponse:
        """Run ``emit`` and tag its response.

        Args:
            request: The incoming request; only its method and If-None-Match
                header are consulted
            emit: Produces the response the handler would send

        Returns:
            A 304 response without body when the caller already holds the
            current tag, otherwise the emitted response with ETag and
            Cache-Control headers added. Untaggable responses are returned
            untouched.
        """
        response = await emit()

        if request.method.upper() not in self.config.methods:
            return response

        if not is_taggable_status(response.status) or not is_taggable_content_type(
            response.content_type
        ):
            record_etag("skipped")
            return response

        return self.tag(request, response)

    def tag(self, request: Request, response: CapturedResponse) -> CapturedResponse:
        """Compare the caller's known tag against a freshly computed one."""
        etag = compute_etag(response.body, length=self.config.tag_length)
        known = get_header_value(request.headers, "if-none-match")

        if 200 <= response.status < 300 and if_none_match_matches(known, etag):
            logger.debug("etag.not_modified", path=request.path, etag=etag)
            record_etag("not_modified")
            return CapturedResponse(
                status=304,
                headers={"ETag": etag, "Cache-Control": self.config.cache_control},
                body=b"",
            )

        headers = set_header(response.headers, "ETag", etag)
        headers = set_header(headers, "Cache-Control", self.config.cache_control)
        record_etag("full")
        return CapturedResponse(status=response.status, headers=headers, body=response.body)
