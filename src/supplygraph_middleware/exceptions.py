"""Custom exceptions for the SupplyGraph request middleware.

Only caller-contract violations (a missing required Idempotency-Key header)
are turned into an explicit rejection. Every other error in this hierarchy is
bookkeeping: the coordinator logs it and lets the request proceed.

Examples:
    Handling a derivation failure::

        from supplygraph_middleware.exceptions import KeyDerivationError

        try:
            key = await derive_idempotency_key(...)
        except KeyDerivationError as e:
            logger.warning("idempotency.key_derivation_failed", error=str(e))
            return await next_handler(request)
"""

from typing import Any


class IdempotencyError(Exception):
    """Base exception for all middleware errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class MissingIdempotencyKeyError(IdempotencyError):
    """A mutating request arrived without the required Idempotency-Key header.

    Raised only when the coordinator is configured with ``require_header``.
    The coordinator answers it with HTTP 400 and a ``{error, details}`` body
    before any handler execution.

    Attributes:
        message: Short error, used as the ``error`` field.
        details: Longer explanation, used as the ``details`` field.
    """

    status_code = 400

    def __init__(
        self,
        message: str = "Idempotency-Key header required",
        details: str = "Please provide an Idempotency-Key header for this request",
    ) -> None:
        super().__init__(message)
        self.details = details

    def to_dict(self) -> dict[str, str]:
        return {"error": self.message, "details": self.details}


class KeyDerivationError(IdempotencyError):
    """Computing the request fingerprint failed.

    The request then proceeds without idempotency protection.

    Attributes:
        cause: The underlying exception.
    """

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class HandlerExecutionError(IdempotencyError):
    """The wrapped handler raised while executing a keyed request.

    By the time this is raised the coordinator has cached ``response`` (a 500
    JSON body) under the key and released the in-flight marker. Adapters
    relay ``response`` so the first caller sees the same bytes as retries.

    Attributes:
        cause: The exception raised by the handler.
        response: The CapturedResponse that was cached for the key.
    """

    def __init__(self, message: str, cause: Exception, response: Any) -> None:
        super().__init__(message)
        self.cause = cause
        self.response = response


class StorageError(IdempotencyError):
    """Store operation failed.

    The coordinator handles this by letting the request proceed without
    deduplication rather than failing the entire request.

    Attributes:
        cause: The underlying exception that caused the storage error.

    Examples:
        Raising a storage error::

            try:
                await redis.get(key)
            except RedisError as e:
                raise StorageError(
                    message=f"Failed to retrieve key from Redis: {e}",
                    cause=e,
                ) from e
    """

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause
