# meeple/web/app.py
# API JSON : FastAPI au-dessus du cache des Things
# Lancement :
#   python -m uvicorn meeple.web.app:app --host 0.0.0.0 --port 8000

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import aiohttp
from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from meeple.bgg.client import BggAPIError, BggClient, RateLimitError
from meeple.bgg.parser import BggParseError
from meeple.config import settings
from meeple.database import SessionLocal, init_db
from meeple.health import router as health_router
from meeple.logging_config import setup_logging
from meeple.services.cache_monitor import CacheMonitor
from meeple.services.cacher import CacheReadResult, ThingCache
from meeple.services.errors import CacheError

log = logging.getLogger(__name__)

APP_TITLE = "Meeple: BGG collection browser"

# Paramètres qui ne sont pas des filtres
RESERVED_PARAMS = {"ids", "sort", "direction", "own"}

SEARCH_FAILED = "Could not search the collection, please try again"
PARTIAL_REFRESH = "Loaded, but some game details may be out of date"

# ------------------------- Singletons ----------------------------
_gateway: Optional[BggClient] = None
_cache: Optional[ThingCache] = None


def get_gateway() -> BggClient:
    global _gateway
    if _gateway is None:
        _gateway = BggClient()
    return _gateway


def get_cache(gateway: BggClient = Depends(get_gateway)) -> ThingCache:
    global _cache
    if _cache is None:
        _cache = ThingCache(gateway)
    return _cache


def get_monitor() -> CacheMonitor:
    return CacheMonitor(SessionLocal)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.LOG_LEVEL)
    init_db()
    get_monitor().log_cache_performance()
    yield
    if _gateway is not None:
        await _gateway.close()


app = FastAPI(title=APP_TITLE, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET"],
    allow_headers=["*"],
)
app.include_router(health_router)


# ------------------------- Helpers -------------------------------
def _filters_from_query(request: Request) -> Dict[str, Any]:
    filters: Dict[str, Any] = {}
    for key in request.query_params.keys():
        if key in RESERVED_PARAMS:
            continue
        values = request.query_params.getlist(key)
        filters[key] = values if key in ("mechanics", "selected_mechanics") else values[-1]
    return filters


def _split_ids(raw: str) -> List[str]:
    return [i.strip() for i in raw.split(",") if i.strip()]


def _payload(result: CacheReadResult) -> Dict[str, Any]:
    return {
        "items": [t.to_dict() for t in result.things],
        "count": len(result.things),
        "stale": result.maybe_stale,
        "message": PARTIAL_REFRESH if result.maybe_stale else None,
    }


async def _load(cache: ThingCache, ids: List[str], request: Request, sort: Optional[str], direction: str):
    try:
        result = await cache.load(ids, _filters_from_query(request), sort, direction)
    except CacheError as e:
        log.error(f"Search failed for {len(ids)} ids: {e}")
        return JSONResponse({"error": SEARCH_FAILED}, status_code=503)
    return _payload(result)


# ------------------------- Routes --------------------------------
@app.get("/things")
async def list_things(
    request: Request,
    ids: str = Query(..., description="Comma separated BGG thing ids"),
    sort: Optional[str] = Query(None),
    direction: str = Query("asc"),
    cache: ThingCache = Depends(get_cache),
):
    return await _load(cache, _split_ids(ids), request, sort, direction)


@app.get("/collection/{username}")
async def collection(
    username: str,
    request: Request,
    sort: Optional[str] = Query(None),
    direction: str = Query("asc"),
    own: Optional[int] = Query(1),
    gateway: BggClient = Depends(get_gateway),
    cache: ThingCache = Depends(get_cache),
):
    try:
        items = await gateway.get_collection(username, own=own)
    except (BggAPIError, RateLimitError, BggParseError, aiohttp.ClientError) as e:
        log.warning(f"Collection fetch failed for {username}: {e}")
        return JSONResponse({"error": str(e)}, status_code=502)

    return await _load(cache, [item.id for item in items], request, sort, direction)


@app.get("/mechanics/popular")
async def popular_mechanics(
    limit: int = Query(20, ge=1, le=200),
    cache: ThingCache = Depends(get_cache),
):
    try:
        ranked = cache.store.most_popular_mechanics(limit)
    except CacheError as e:
        log.error(f"Popular mechanics failed: {e}")
        return JSONResponse({"error": SEARCH_FAILED}, status_code=503)
    return [dict(m.to_dict(), things=count) for m, count in ranked]


@app.get("/cache/stats")
async def cache_stats(monitor: CacheMonitor = Depends(get_monitor)):
    try:
        return {
            **monitor.cache_stats(),
            "distribution": monitor.freshness_distribution(),
        }
    except CacheError as e:
        log.error(f"Cache stats failed: {e}")
        return JSONResponse({"error": "Cache statistics unavailable"}, status_code=503)
