"""Unit tests for key derivation and ETag computation."""

import hashlib
import json

import pytest

from supplygraph_middleware.fingerprint import (
    canonical_json,
    compute_etag,
    derive_idempotency_key,
)
from supplygraph_middleware.models import UploadedFile


class TestCanonicalJson:
    def test_sorted_and_compact(self) -> None:
        assert canonical_json({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'

    def test_nested_keys_sorted(self) -> None:
        assert canonical_json({"x": {"b": 1, "a": 2}}) == '{"x":{"a":2,"b":1}}'

    def test_non_ascii_kept(self) -> None:
        assert canonical_json({"name": "café"}) == '{"name":"café"}'

    def test_unknown_types_stringified(self) -> None:
        class Thing:
            def __str__(self) -> str:
                return "thing"

        assert canonical_json({"v": Thing()}) == '{"v":"thing"}'


class TestDeriveIdempotencyKey:
    @pytest.mark.asyncio
    async def test_key_is_sha256_hex(self) -> None:
        key = await derive_idempotency_key("POST", "/widgets", {"name": "a"})
        assert len(key) == 64
        assert all(c in "0123456789abcdef" for c in key)

    @pytest.mark.asyncio
    async def test_key_matches_canonical_digest(self) -> None:
        key = await derive_idempotency_key("POST", "/widgets", {"name": "a"})
        expected = hashlib.sha256(
            canonical_json(
                {
                    "method": "POST",
                    "path": "/widgets",
                    "body": {"name": "a"},
                    "params": {},
                    "query": {},
                }
            ).encode("utf-8")
        ).hexdigest()
        assert key == expected

    @pytest.mark.asyncio
    async def test_deterministic(self) -> None:
        first = await derive_idempotency_key("POST", "/widgets", {"name": "a"}, {"id": "1"}, {"q": "x"})
        second = await derive_idempotency_key("POST", "/widgets", {"name": "a"}, {"id": "1"}, {"q": "x"})
        assert first == second

    @pytest.mark.asyncio
    async def test_body_key_order_irrelevant(self) -> None:
        first = await derive_idempotency_key("POST", "/w", {"a": 1, "b": 2})
        second = await derive_idempotency_key("POST", "/w", {"b": 2, "a": 1})
        assert first == second

    @pytest.mark.asyncio
    async def test_missing_body_equals_empty_object(self) -> None:
        assert await derive_idempotency_key("POST", "/w") == await derive_idempotency_key(
            "POST", "/w", {}
        )

    @pytest.mark.asyncio
    async def test_method_case_normalized(self) -> None:
        assert await derive_idempotency_key("post", "/w") == await derive_idempotency_key("POST", "/w")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "changed",
        [
            {"method": "PUT"},
            {"path": "/gadgets"},
            {"body": {"name": "b"}},
            {"params": {"id": "2"}},
            {"query": {"page": "2"}},
        ],
    )
    async def test_each_component_changes_key(self, changed: dict) -> None:
        base = {
            "method": "POST",
            "path": "/widgets",
            "body": {"name": "a"},
            "params": {"id": "1"},
            "query": {"page": "1"},
        }
        original = await derive_idempotency_key(**base)
        assert await derive_idempotency_key(**{**base, **changed}) != original


class TestUploadKeys:
    @pytest.mark.asyncio
    async def test_in_memory_content_hashed(self) -> None:
        upload = UploadedFile(original_name="d.csv", size=3, mimetype="text/csv", content=b"a,b")
        other = UploadedFile(original_name="d.csv", size=3, mimetype="text/csv", content=b"a,c")

        first = await derive_idempotency_key("POST", "/upload", upload=upload)
        second = await derive_idempotency_key("POST", "/upload", upload=other)

        assert first != second

    @pytest.mark.asyncio
    async def test_path_content_hashed(self, tmp_path) -> None:
        path = tmp_path / "demand.csv"
        path.write_bytes(b"sku,qty\n1,2\n")
        from_path = UploadedFile(original_name="demand.csv", size=12, mimetype="text/csv", path=str(path))
        from_memory = UploadedFile(
            original_name="demand.csv", size=12, mimetype="text/csv", content=b"sku,qty\n1,2\n"
        )

        assert await derive_idempotency_key("POST", "/upload", upload=from_path) == (
            await derive_idempotency_key("POST", "/upload", upload=from_memory)
        )

    @pytest.mark.asyncio
    async def test_missing_path_uses_metadata_only(self, tmp_path) -> None:
        upload = UploadedFile(
            original_name="gone.csv", size=5, mimetype="text/csv", path=str(tmp_path / "gone.csv")
        )
        key = await derive_idempotency_key("POST", "/upload", upload=upload)

        expected = hashlib.sha256(
            canonical_json(
                {
                    "method": "POST",
                    "path": "/upload",
                    "body": {},
                    "params": {},
                    "query": {},
                    "file": {"originalname": "gone.csv", "size": 5, "mimetype": "text/csv"},
                }
            ).encode("utf-8")
        ).hexdigest()
        assert key == expected

    @pytest.mark.asyncio
    async def test_unreadable_path_flagged(self, tmp_path) -> None:
        # A directory exists but cannot be read as a file
        upload = UploadedFile(original_name="dir", size=0, mimetype="text/csv", path=str(tmp_path))
        key = await derive_idempotency_key("POST", "/upload", upload=upload)

        expected = hashlib.sha256(
            canonical_json(
                {
                    "method": "POST",
                    "path": "/upload",
                    "body": {},
                    "params": {},
                    "query": {},
                    "file": {
                        "originalname": "dir",
                        "size": 0,
                        "mimetype": "text/csv",
                        "error": "hash_failed",
                    },
                }
            ).encode("utf-8")
        ).hexdigest()
        assert key == expected

    @pytest.mark.asyncio
    async def test_upload_changes_key(self) -> None:
        upload = UploadedFile(original_name="d.csv", size=1, content=b"x")
        assert await derive_idempotency_key("POST", "/u") != await derive_idempotency_key(
            "POST", "/u", upload=upload
        )


class TestComputeEtag:
    def test_weak_format(self) -> None:
        etag = compute_etag({"items": []})
        assert etag.startswith('W/"')
        assert etag.endswith('"')
        assert len(etag) == len('W/""') + 16

    def test_bytes_hashed_directly(self) -> None:
        body = b'{"items":[]}'
        assert compute_etag(body) == f'W/"{hashlib.sha256(body).hexdigest()[:16]}"'

    def test_str_and_bytes_agree(self) -> None:
        assert compute_etag("hello") == compute_etag(b"hello")

    def test_object_uses_canonical_json(self) -> None:
        assert compute_etag({"b": 1, "a": 2}) == compute_etag('{"a":2,"b":1}')

    def test_custom_length(self) -> None:
        assert len(compute_etag(b"x", length=32)) == len('W/""') + 32

    def test_changes_with_content(self) -> None:
        assert compute_etag(json.dumps({"v": 1})) != compute_etag(json.dumps({"v": 2}))
