"""
HTTP surface using FastAPI: token discovery by metric, health, and intake.

No auth. The module-level ``app`` builds the configured store on first request
and has no intake attached; ``token-aggregator run --http-port`` serves an app
wired to the running ObservationIntake. Tests pass their own store and intake
to create_app().

POST /ingest takes ``{"source": str, "tokens": [{...}, ...]}``, buffers one
observation per token and acknowledges at once; merging and storing happen when
the intake window flushes.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from fastapi import Body, FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse

from ._version import __version__
from .core.errors import StoreError, UnknownSortMetricError
from .models import SourceObservation, is_blank
from .pipeline.producer import ObservationIntake
from .store import TokenStore, check_metric, create_store

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def create_app(
    store: Optional[TokenStore] = None,
    *,
    store_factory: Callable[[], TokenStore] = create_store,
    intake: Optional[ObservationIntake] = None,
) -> FastAPI:
    app = FastAPI(title="Token Aggregator API", version=__version__)
    started = time.monotonic()
    holder: Dict[str, TokenStore] = {}
    if store is not None:
        holder["store"] = store

    def _store() -> TokenStore:
        if "store" not in holder:
            holder["store"] = store_factory()
        return holder["store"]

    @app.get("/health")
    async def health() -> Any:
        try:
            s = _store()
            if not await s.ping():
                return JSONResponse(status_code=503, content={"status": "store_down"})
            token_count = await s.count()
        except StoreError as exc:
            logger.warning("Health check failed: %s", exc)
            return JSONResponse(status_code=503, content={"status": "store_down"})
        return {
            "status": "ok",
            "uptime": round(time.monotonic() - started, 3),
            "token_count": token_count,
            "version": __version__,
        }

    @app.get("/discover")
    async def discover(
        sort: str = "volume",
        cursor: int = Query(0, ge=0),
        limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    ) -> Dict[str, Any]:
        try:
            check_metric(sort)
        except UnknownSortMetricError as exc:
            raise HTTPException(
                400, detail={"error": f"unknown sort metric '{exc.metric}'", "allowed": list(exc.allowed)}
            )
        try:
            s = _store()
            addresses = await s.top_by_metric(sort, offset=cursor, limit=limit)
            snapshots = await s.read_many(addresses)
        except StoreError as exc:
            logger.warning("Discover failed: %s", exc)
            raise HTTPException(503, detail="store unavailable")
        return {
            "tokens": [snap.to_dict() for snap in snapshots],
            "nextCursor": cursor + limit,
        }

    @app.post("/ingest")
    async def ingest(payload: Any = Body(None)) -> Any:
        source = payload.get("source") if isinstance(payload, dict) else None
        tokens = payload.get("tokens") if isinstance(payload, dict) else None
        if is_blank(source) or not isinstance(source, str) or not isinstance(tokens, list):
            return JSONResponse(
                status_code=400, content={"error": "Invalid payload. Expected { source, tokens[] }"}
            )
        if intake is None or not intake.window.running:
            return JSONResponse(status_code=503, content={"error": "intake not running"})
        observations: List[SourceObservation] = []
        for i, token in enumerate(tokens):
            if not isinstance(token, dict) or is_blank(token.get("token_address")):
                continue
            try:
                observations.append(SourceObservation.from_dict({**token, "source": source}))
            except ValueError as exc:
                logger.warning("/ingest token #%d from %s skipped: %s", i, source, exc)
        accepted = intake.add_many(observations)
        logger.debug("/ingest accepted %d of %d tokens from %s", accepted, len(tokens), source)
        return {"status": "ok", "accepted": accepted}

    return app


app = create_app()
