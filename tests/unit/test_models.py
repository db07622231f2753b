"""Unit tests for core models."""

import base64
from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from supplygraph_middleware.models import (
    CacheStats,
    IdempotencyRecord,
    InFlightMarker,
    SweepResult,
    UploadedFile,
)


def _record(**overrides) -> IdempotencyRecord:
    now = datetime.now(UTC)
    values = {
        "key": "test-key",
        "status_code": 201,
        "headers": {"content-type": "application/json"},
        "body_b64": base64.b64encode(b'{"id": 1}').decode("ascii"),
        "created_at": now,
        "expires_at": now + timedelta(hours=1),
    }
    values.update(overrides)
    return IdempotencyRecord(**values)


class TestIdempotencyRecord:
    def test_body_round_trip(self) -> None:
        assert _record().get_body_bytes() == b'{"id": 1}'

    def test_invalid_base64_rejected(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            _record(body_b64="not base64!")
        assert "Invalid base64" in str(exc_info.value)

    @pytest.mark.parametrize("status", [99, 600])
    def test_status_code_range(self, status: int) -> None:
        with pytest.raises(ValidationError):
            _record(status_code=status)

    def test_empty_key_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _record(key="")

    def test_expires_must_follow_created(self) -> None:
        now = datetime.now(UTC)
        with pytest.raises(ValidationError) as exc_info:
            _record(created_at=now, expires_at=now)
        assert "expires_at must be after created_at" in str(exc_info.value)

    def test_record_is_immutable(self) -> None:
        record = _record()
        with pytest.raises(ValidationError):
            record.status_code = 500  # type: ignore[misc]

    def test_is_expired(self) -> None:
        record = _record()
        assert record.is_expired() is False
        assert record.is_expired(record.expires_at + timedelta(milliseconds=1)) is True

    def test_from_response_sets_expiry_from_ttl(self) -> None:
        now = datetime.now(UTC)
        record = IdempotencyRecord.from_response(
            key="k",
            status_code=200,
            headers={"a": "b"},
            body=b"hello",
            ttl_ms=1500,
            now=now,
        )
        assert record.created_at == now
        assert record.expires_at == now + timedelta(milliseconds=1500)
        assert record.get_body_bytes() == b"hello"

    def test_from_response_copies_headers(self) -> None:
        headers = {"content-type": "text/plain"}
        record = IdempotencyRecord.from_response("k", 200, headers, b"", ttl_ms=10)
        headers["content-type"] = "changed"
        assert record.headers["content-type"] == "text/plain"


class TestInFlightMarker:
    def test_not_stale_within_ceiling(self) -> None:
        marker = InFlightMarker(key="k")
        assert marker.is_stale(300) is False

    def test_stale_after_ceiling(self) -> None:
        started = datetime.now(UTC) - timedelta(minutes=6)
        marker = InFlightMarker(key="k", started_at=started)
        assert marker.is_stale(300) is True


class TestCacheStats:
    def test_counts(self) -> None:
        stats = CacheStats(size=2, active_keys=2, in_flight=1)
        assert stats.model_dump() == {"size": 2, "active_keys": 2, "in_flight": 1}

    def test_extra_fields_forbidden(self) -> None:
        with pytest.raises(ValidationError):
            CacheStats(size=1, active_keys=1, in_flight=0, keys=["secret"])  # type: ignore[call-arg]

    def test_negative_counts_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CacheStats(size=-1, active_keys=0, in_flight=0)


class TestSweepResult:
    def test_total(self) -> None:
        assert SweepResult(records_removed=3, markers_removed=2).total == 5

    def test_defaults(self) -> None:
        assert SweepResult().total == 0


class TestUploadedFile:
    def test_defaults(self) -> None:
        upload = UploadedFile(original_name="demand.csv", size=10)
        assert upload.mimetype == "application/octet-stream"
        assert upload.path is None
        assert upload.content is None

    def test_negative_size_rejected(self) -> None:
        with pytest.raises(ValidationError):
            UploadedFile(original_name="x", size=-1)
