"""
Main API module for CTR Platform.

Responsibilities:
    - Expose REST endpoints for registering URL views and clicks per referer
    - Serve the per-referer report (views, clicks, ctr per URL)
    - Own the counter store lifetime: open at startup, close after draining

Architecture:
    - App Factory pattern (create_app) for test isolation and DI.
    - The store is built by the factory (or injected by the caller) and passed
      into HitManager and StatAggregator; nothing reaches for a global handle.
    - Shutdown order: uvicorn stops accepting, waits up to CTR_SHUTDOWN_GRACE
      seconds for in-flight requests, then the lifespan closes the store.

Example:
    curl -d '{"referer":"hotpop","urls":["url1","url2"]}' \\
         -H "Content-Type: application/json" -X POST http://localhost:8088/api/view
    curl http://localhost:8088/api/stat/hotpop
    [{"url":"url1","views":3,"clicks":2,"ctr":1.5}, ...]
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from ctr_platform.analytics.analytics import StatAggregator
from ctr_platform.config import load_settings
from ctr_platform.errors import ShutdownError, StoreError, ValidationError
from ctr_platform.manager.hit_manager import HitManager, validate_referer
from ctr_platform.storage.base import BaseCounterStore
from ctr_platform.storage.storage_factory import get_store

log = logging.getLogger("ctr")


class Hit(BaseModel):
    """Request payload for registering views or clicks."""
    referer: str
    urls: List[str]


class StatResp(BaseModel):
    url: str
    views: int
    clicks: int
    ctr: float


def _wire(app: FastAPI, store: BaseCounterStore) -> None:
    app.state.store = store
    app.state.hits = HitManager(store)
    app.state.stats = StatAggregator(store)


def create_app(store: Optional[BaseCounterStore] = None) -> FastAPI:
    """
    Factory function to build and configure a new FastAPI app instance.

    Args:
        store (Optional[BaseCounterStore]): Injected counter store. The caller
            keeps ownership and must close it. When omitted, the app builds one
            from configuration at startup and closes it at shutdown.

    Returns:
        FastAPI: A fully configured application instance.
    """
    if not logging.getLogger().handlers:
        logging.basicConfig(level=load_settings().LOG_LEVEL)

    owns_store = store is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if owns_store:
            _wire(app, get_store())
        log.info("Counter store ready: %s", type(app.state.store).__name__)
        yield
        if owns_store:
            try:
                app.state.store.close()
            except ShutdownError:
                log.exception("Database shutdown failed")
                raise
        log.info("Server exiting")

    app = FastAPI(
        title="CTR Platform",
        description="Per-referer view/click counters with CTR reporting",
        docs_url="/docs",
        lifespan=lifespan,
    )
    if store is not None:
        _wire(app, store)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["POST", "GET", "OPTIONS", "PUT", "DELETE"],
        allow_headers=[
            "Origin", "Content-Type", "Content-Length", "Accept-Encoding",
            "X-CSRF-Token", "Authorization",
        ],
        expose_headers=["Content-Length"],
        max_age=86400,
    )

    # ----------------------------------------------------------------
    # Utilities
    # ----------------------------------------------------------------
    def _register(request: Request, metric: str, hit: Hit) -> Dict[str, Any]:
        try:
            result = request.app.state.hits.register(metric, hit.referer, hit.urls)
        except ValidationError as ve:
            raise HTTPException(status_code=422, detail=str(ve))

        if not result.counted:
            raise HTTPException(
                status_code=503,
                detail={"message": f"Failed to register {metric}s", "failed": result.failed},
            )
        return {
            "referer": result.referer,
            "urls": hit.urls,
            "counted": result.counted,
            "failed": result.failed,
        }

    @app.get("/health")
    def health():
        return {"status": "ok"}

    # ----------------------------------------------------------------
    # Routes
    # ----------------------------------------------------------------
    @app.post("/api/view")
    def view(hit: Hit, request: Request) -> Dict[str, Any]:
        """
        Register one view for each URL under the referer.

        Returns 200 when at least one URL was counted; URLs that could not be
        counted are listed in "failed". Returns 503 when none was counted.
        """
        return _register(request, "view", hit)

    @app.post("/api/click")
    def click(hit: Hit, request: Request) -> Dict[str, Any]:
        """Register one click for each URL under the referer."""
        return _register(request, "click", hit)

    @app.get("/api/stat/{referer}", response_model=List[StatResp])
    def stat(referer: str, request: Request) -> List[Dict[str, Any]]:
        """
        Report views, clicks and ctr for every URL viewed under the referer.

        Entries are ordered by URL (byte-wise). A URL with clicks but no views
        is not listed. ctr is views / clicks, 0 when there are no clicks.
        """
        try:
            validate_referer(referer)
        except ValidationError as ve:
            raise HTTPException(status_code=422, detail=str(ve))
        try:
            entries = request.app.state.stats.report(referer)
        except StoreError as exc:
            log.error("Report for %r failed: %s", referer, exc)
            raise HTTPException(status_code=503, detail="Counter store unavailable")
        return [e.as_dict() for e in entries]

    return app


def run() -> None:
    """Serve the app with uvicorn; SIGINT/SIGTERM trigger a graceful drain."""
    cfg = load_settings()
    logging.basicConfig(level=cfg.LOG_LEVEL)
    uvicorn.run(
        create_app(),
        host=cfg.HOST,
        port=cfg.PORT,
        timeout_graceful_shutdown=cfg.SHUTDOWN_GRACE,
    )


# `uvicorn main:app` and `from main import app` keep working.
app = create_app()


if __name__ == "__main__":
    run()
