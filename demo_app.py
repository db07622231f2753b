"""Demo FastAPI application for the SupplyGraph backend middleware.

Serves the company-registration API behind the idempotency coordinator and
the response cache tagger. Companies live in memory.

Run with: python demo_app.py
"""

import hashlib
import itertools
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Optional

import uvicorn
from fastapi import FastAPI, File, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from supplygraph_middleware.adapters.asgi import ASGIETagMiddleware, ASGIIdempotencyMiddleware
from supplygraph_middleware.config import ETagConfig, IdempotencyConfig
from supplygraph_middleware.core.cleanup import start_sweep_task, stop_sweep_task
from supplygraph_middleware.core.coordinator import IdempotencyCoordinator
from supplygraph_middleware.observability.logging import configure_logging, get_logger
from supplygraph_middleware.storage.base import IdempotencyStore
from supplygraph_middleware.storage.memory import MemoryIdempotencyStore

logger = get_logger(__name__)


class CompanyRequest(BaseModel):
    name: Optional[str] = None


class CompanyRegistry:
    """In-memory stand-in for the companies collection."""

    def __init__(self) -> None:
        self._companies: dict[str, dict[str, str]] = {}
        self._ids = itertools.count(1)

    def register(self, name: str) -> tuple[dict[str, str], bool]:
        """Upsert a company by name. Returns the document and whether it was created."""
        now = datetime.now(UTC).isoformat()
        existing = self._companies.get(name)
        if existing is not None:
            existing["updatedAt"] = now
            return existing, False

        doc = {
            "_id": str(next(self._ids)),
            "name": name,
            "status": "new",
            "createdAt": now,
            "updatedAt": now,
        }
        self._companies[name] = doc
        return doc, True

    def all(self) -> list[dict[str, str]]:
        return [
            {"_id": doc["_id"], "name": doc["name"], "status": doc["status"]}
            for doc in self._companies.values()
        ]

    def __len__(self) -> int:
        return len(self._companies)


def create_app(
    store: IdempotencyStore | None = None,
    idempotency_config: IdempotencyConfig | None = None,
    etag_config: ETagConfig | None = None,
    run_sweep: bool = True,
) -> FastAPI:
    """Build the demo application.

    Args:
        store: Idempotency store (a fresh in-memory store if not provided)
        idempotency_config: Coordinator configuration
        etag_config: Tagger configuration
        run_sweep: Start the background sweep in the app lifespan
    """
    store = store if store is not None else MemoryIdempotencyStore()
    idempotency_config = idempotency_config or IdempotencyConfig()
    coordinator = IdempotencyCoordinator(store=store, config=idempotency_config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        task = None
        if run_sweep:
            task = await start_sweep_task(
                store,
                interval_seconds=idempotency_config.sweep_interval_seconds,
                in_flight_ceiling_seconds=idempotency_config.in_flight_ceiling_seconds,
            )
        yield
        if task is not None:
            await stop_sweep_task(task)

    app = FastAPI(
        title="SupplyGraph Backend",
        description="Company registration API with idempotent writes and ETag reads",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.companies = CompanyRegistry()
    app.state.coordinator = coordinator

    app.add_middleware(ASGIETagMiddleware, config=etag_config)
    app.add_middleware(ASGIIdempotencyMiddleware, coordinator=coordinator)

    @app.get("/")
    async def root():
        return {
            "name": "SupplyGraph Backend",
            "version": "0.1.0",
            "endpoints": {
                "POST /api/company/register": "Register a company (idempotent)",
                "GET /api/companies": "List companies (ETag)",
                "POST /api/data/upload": "Upload a dataset file (idempotent)",
                "GET /api/idempotency/stats": "Idempotency cache counters",
                "DELETE /api/idempotency/cache": "Clear the idempotency cache",
            },
        }

    @app.get("/api/health")
    async def health():
        return {"backend": "healthy", "timestamp": datetime.now(UTC).isoformat()}

    @app.get("/api/debug/db")
    async def debug_db():
        return {"db": "memory", "collection": "companies"}

    @app.post("/api/company/register")
    async def register_company(company: CompanyRequest):
        if not company.name:
            return JSONResponse(status_code=400, content={"error": "name is required"})

        doc, created = app.state.companies.register(company.name)
        logger.info("company.registered", company_id=doc["_id"], created=created)
        return JSONResponse(
            status_code=201 if created else 200,
            content={"_id": doc["_id"], "name": doc["name"], "status": doc["status"]},
        )

    @app.get("/api/companies")
    async def list_companies():
        return {"companies": app.state.companies.all()}

    @app.post("/api/data/upload")
    async def upload_dataset(file: UploadFile = File(...)):
        content = await file.read()
        app.state.uploads = getattr(app.state, "uploads", 0) + 1
        return {
            "filename": file.filename,
            "size": len(content),
            "sha256": hashlib.sha256(content).hexdigest(),
            "upload_number": app.state.uploads,
        }

    @app.get("/api/idempotency/stats")
    async def idempotency_stats():
        stats = await coordinator.stats()
        return stats.model_dump()

    @app.delete("/api/idempotency/cache")
    async def clear_idempotency_cache():
        await coordinator.clear()
        return {"cleared": True}

    return app


app = create_app()


if __name__ == "__main__":
    configure_logging(level="INFO", json_output=False)
    print("=" * 60)
    print("SupplyGraph Backend Demo Server")
    print("=" * 60)
    print("\nStarting server at http://localhost:5000")
    print("\nTry these commands:")
    print("  curl -X POST localhost:5000/api/company/register -H 'content-type: application/json' \\")
    print("       -d '{\"name\": \"acme\"}'")
    print("  curl -i localhost:5000/api/companies")
    print("\nPress Ctrl+C to stop")
    print("=" * 60)
    print()

    uvicorn.run(app, host="0.0.0.0", port=5000, log_level="info")
