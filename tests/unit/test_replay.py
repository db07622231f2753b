"""Unit tests for response capture and replay."""

import json

import pytest

from supplygraph_middleware.core.replay import CapturedResponse, capture_response, replay_response
from supplygraph_middleware.models import IdempotencyRecord


class TestCapturedResponse:
    def test_json_factory(self):
        response = CapturedResponse.json({"_id": "1"}, status=201)
        assert response.status == 201
        assert response.content_type == "application/json"
        assert json.loads(response.body) == {"_id": "1"}

    def test_json_factory_merges_headers(self):
        response = CapturedResponse.json({}, headers={"X-Trace": "t"})
        assert response.headers == {"content-type": "application/json", "X-Trace": "t"}

    def test_content_type_case_insensitive(self):
        response = CapturedResponse(200, {"Content-Type": "text/plain"}, b"hi")
        assert response.content_type == "text/plain"

    def test_content_type_missing(self):
        assert CapturedResponse(204, {}, b"").content_type == ""


class TestCaptureResponse:
    def test_hop_by_hop_headers_not_cached(self):
        response = CapturedResponse(
            201,
            {"content-type": "application/json", "date": "today", "connection": "close"},
            b'{"id": 1}',
        )
        record = capture_response("k", response, ttl_ms=1000)
        assert record.headers == {"content-type": "application/json"}
        assert record.status_code == 201
        assert record.get_body_bytes() == b'{"id": 1}'

    def test_ttl_applied(self):
        record = capture_response("k", CapturedResponse(200, {}, b""), ttl_ms=2500)
        assert (record.expires_at - record.created_at).total_seconds() == pytest.approx(2.5)


class TestReplayResponse:
    def test_verbatim(self):
        original = CapturedResponse(201, {"content-type": "application/json", "X-A": "b"}, b"payload")
        replayed = replay_response(capture_response("k", original, ttl_ms=1000))

        assert replayed.status == 201
        assert replayed.headers == original.headers
        assert replayed.body == b"payload"

    def test_headers_are_copied(self):
        record = capture_response("k", CapturedResponse(200, {"a": "b"}, b""), ttl_ms=1000)
        replayed = replay_response(record)
        replayed.headers["a"] = "changed"
        assert record.headers["a"] == "b"

    def test_undecodable_body(self):
        record = capture_response("k", CapturedResponse(200, {}, b"x"), ttl_ms=1000)
        broken = IdempotencyRecord.model_construct(**{**record.model_dump(), "body_b64": "abc"})
        with pytest.raises(ValueError, match="Failed to decode"):
            replay_response(broken)
