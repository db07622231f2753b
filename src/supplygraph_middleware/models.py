"""Core type definitions for the SupplyGraph request middleware.

This module provides the data structures shared by the store, the coordinator
and the background sweep: uploaded-file descriptors, cached idempotency
records, in-flight markers, and the monitoring snapshot.

Examples:
    Creating an idempotency record::

        from datetime import UTC, datetime, timedelta
        from supplygraph_middleware.models import IdempotencyRecord

        now = datetime.now(UTC)
        record = IdempotencyRecord(
            key="9f2c...",
            status_code=201,
            headers={"content-type": "application/json"},
            body_b64="eyJpZCI6IDF9",
            created_at=now,
            expires_at=now + timedelta(hours=24),
        )

    Marking a key in-flight::

        marker = InFlightMarker(key="9f2c...", started_at=datetime.now(UTC))
"""

import base64
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    """Timezone-aware current time used for every record timestamp."""
    return datetime.now(UTC)


class UploadedFile(BaseModel):
    """Descriptor of a file attached to a mutating request.

    Either ``content`` (bytes already in memory) or ``path`` (a file on disk)
    supplies the bytes that are digested into the idempotency key. When
    neither is readable the key falls back to metadata only.

    Attributes:
        original_name: Client-side file name.
        size: Size in bytes as reported by the upload layer.
        mimetype: Declared content type of the file.
        path: Location of the spooled file on disk, if any.
        content: File bytes held in memory, if any.
    """

    original_name: str = Field(..., description="Client-side file name")
    size: int = Field(..., ge=0, description="File size in bytes")
    mimetype: str = Field(default="application/octet-stream", description="File content type")
    path: str | None = Field(default=None, description="Path of the spooled file on disk")
    content: bytes | None = Field(default=None, description="File bytes held in memory", repr=False)


class IdempotencyRecord(BaseModel):
    """Final response of a mutating request, cached under its key.

    Records are immutable once written; a new execution after expiry writes
    a new record in its place.

    Attributes:
        key: Derived or client-supplied idempotency key.
        status_code: HTTP status captured at completion.
        headers: Response headers captured at completion (hop-by-hop removed).
        body_b64: Base64-encoded response body.
        created_at: When the response was captured.
        expires_at: After this instant the record is treated as absent.
    """

    model_config = ConfigDict(frozen=True)

    key: str = Field(..., min_length=1, description="Idempotency key")
    status_code: int = Field(..., ge=100, le=599, description="HTTP status code")
    headers: dict[str, str] = Field(default_factory=dict, description="Response headers")
    body_b64: str = Field(..., description="Base64-encoded response body")
    created_at: datetime = Field(default_factory=utcnow, description="Capture timestamp")
    expires_at: datetime = Field(..., description="Expiry timestamp")

    @field_validator("body_b64")
    @classmethod
    def validate_base64(cls, v: str) -> str:
        """Validate that the body is properly base64-encoded.

        Raises:
            ValueError: If the string is not valid base64.
        """
        try:
            base64.b64decode(v, validate=True)
        except Exception as e:
            raise ValueError(f"Invalid base64 encoding: {e}") from e
        return v

    @field_validator("expires_at")
    @classmethod
    def validate_expires_after_created(cls, v: datetime, info: Any) -> datetime:
        if "created_at" in info.data and v <= info.data["created_at"]:
            raise ValueError("expires_at must be after created_at")
        return v

    @classmethod
    def from_response(
        cls,
        key: str,
        status_code: int,
        headers: dict[str, str],
        body: bytes,
        ttl_ms: int,
        now: datetime | None = None,
    ) -> "IdempotencyRecord":
        """Build a record expiring ``ttl_ms`` milliseconds from ``now``."""
        created = now or utcnow()
        return cls(
            key=key,
            status_code=status_code,
            headers=dict(headers),
            body_b64=base64.b64encode(body).decode("ascii"),
            created_at=created,
            expires_at=created + timedelta(milliseconds=ttl_ms),
        )

    def get_body_bytes(self) -> bytes:
        """Decode and return the response body as bytes.

        Examples:
            >>> record.get_body_bytes()
            b'{"id": 1}'
        """
        return base64.b64decode(self.body_b64)

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at < (now or utcnow())


class InFlightMarker(BaseModel):
    """Signals that exactly one execution for ``key`` is in progress.

    Attributes:
        key: Idempotency key being executed.
        started_at: When execution started; used only for staleness eviction.
    """

    model_config = ConfigDict(frozen=True)

    key: str = Field(..., min_length=1)
    started_at: datetime = Field(default_factory=utcnow)

    def is_stale(self, ceiling_seconds: float, now: datetime | None = None) -> bool:
        return (now or utcnow()) - self.started_at > timedelta(seconds=ceiling_seconds)


class CacheStats(BaseModel):
    """Monitoring snapshot of the store.

    Only counts are exposed. The model forbids extra fields so that no key
    value can ever be attached to a stats payload.

    Attributes:
        size: Number of cached records.
        active_keys: Number of cached records (kept for dashboard compatibility).
        in_flight: Number of keys currently executing.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    size: int = Field(..., ge=0)
    active_keys: int = Field(..., ge=0)
    in_flight: int = Field(..., ge=0)


class SweepResult(BaseModel):
    """Outcome of one background sweep pass."""

    model_config = ConfigDict(frozen=True)

    records_removed: int = Field(default=0, ge=0)
    markers_removed: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return self.records_removed + self.markers_removed
