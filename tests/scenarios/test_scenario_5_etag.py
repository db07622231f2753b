"""Scenario 5: Conditional Reads

- GET responses carry a weak ETag and Cache-Control: private, no-cache
- Repeating the read with If-None-Match answers 304 with an empty body
- A write changes the payload, so the old tag no longer matches
- Error responses are tagged but never answered with 304
- Binary payloads and streamed bodies pass through untagged and unbuffered
"""

import hashlib

import pytest
from fastapi import FastAPI
from fastapi.responses import Response, StreamingResponse
from fastapi.testclient import TestClient

from demo_app import create_app
from supplygraph_middleware.adapters.asgi import ASGIETagMiddleware
from supplygraph_middleware.config import ETagConfig
from supplygraph_middleware.storage.memory import MemoryIdempotencyStore


@pytest.fixture
def client(store: MemoryIdempotencyStore) -> TestClient:
    return TestClient(create_app(store=store, run_sweep=False))


def test_read_is_tagged(client: TestClient) -> None:
    response = client.get("/api/companies")

    assert response.status_code == 200
    expected = hashlib.sha256(response.content).hexdigest()[:16]
    assert response.headers["etag"] == f'W/"{expected}"'
    assert response.headers["cache-control"] == "private, no-cache"


def test_matching_tag_returns_304(client: TestClient) -> None:
    etag = client.get("/api/companies").headers["etag"]

    response = client.get("/api/companies", headers={"If-None-Match": etag})

    assert response.status_code == 304
    assert response.content == b""
    assert response.headers["etag"] == etag
    assert response.headers["cache-control"] == "private, no-cache"


def test_tag_list_and_wildcard(client: TestClient) -> None:
    etag = client.get("/api/companies").headers["etag"]

    listed = client.get("/api/companies", headers={"If-None-Match": f'"other", {etag}'})
    wildcard = client.get("/api/companies", headers={"If-None-Match": "*"})

    assert listed.status_code == 304
    assert wildcard.status_code == 304


def test_write_invalidates_tag(client: TestClient) -> None:
    before = client.get("/api/companies")
    client.post("/api/company/register", json={"name": "acme"})

    after = client.get("/api/companies", headers={"If-None-Match": before.headers["etag"]})

    assert after.status_code == 200
    assert after.json() == {"companies": [{"_id": "1", "name": "acme", "status": "new"}]}
    assert after.headers["etag"] != before.headers["etag"]


def test_writes_are_not_tagged(client: TestClient) -> None:
    response = client.post("/api/company/register", json={"name": "acme"})
    assert "etag" not in response.headers


def test_not_found_is_tagged_but_not_304(client: TestClient) -> None:
    first = client.get("/api/unknown")
    second = client.get("/api/unknown", headers={"If-None-Match": first.headers["etag"]})

    assert first.status_code == second.status_code == 404
    assert first.headers["cache-control"] == "private, no-cache"
    assert second.json() == first.json()
    assert second.headers["etag"] == first.headers["etag"]


def test_streams_pass_through_untagged() -> None:
    app = FastAPI()
    app.add_middleware(ASGIETagMiddleware)

    async def events():
        yield b"data: tick\n\n"
        yield b"data: tock\n\n"

    async def rows():
        yield b'{"rows": ['
        yield b"1, 2]}"

    @app.get("/events")
    async def event_stream():
        return StreamingResponse(events(), media_type="text/event-stream")

    @app.get("/export")
    async def export():
        return StreamingResponse(rows(), media_type="application/json")

    client = TestClient(app)

    sse = client.get("/events")
    export_response = client.get("/export")

    assert sse.content == b"data: tick\n\ndata: tock\n\n"
    assert "etag" not in sse.headers
    assert export_response.json() == {"rows": [1, 2]}
    assert "etag" not in export_response.headers


def test_binary_and_custom_config() -> None:
    app = FastAPI()
    app.add_middleware(ASGIETagMiddleware, config=ETagConfig(tag_length=32, cache_control="no-cache"))

    @app.get("/logo")
    async def logo():
        return Response(content=b"\x89PNG", media_type="image/png")

    @app.get("/report")
    async def report():
        return {"rows": 3}

    client = TestClient(app)

    assert "etag" not in client.get("/logo").headers

    report = client.get("/report")
    assert len(report.headers["etag"]) == len('W/""') + 32
    assert report.headers["cache-control"] == "no-cache"
