"""Health check endpoints for monitoring and readiness probes."""

import logging
import time
from typing import Any, Dict

from fastapi import APIRouter, Response
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from meeple import database
from meeple.services.cache_monitor import CacheMonitor
from meeple.services.errors import PersistenceError

log = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

# Store process start time
START_TIME = time.time()


@router.get("/health")
async def health_check() -> JSONResponse:
    """
    Basic health check endpoint.

    Returns:
        JSON with status and uptime information
    """
    uptime = int(time.time() - START_TIME)
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": uptime,
        "service": "meeple"
    })


@router.get("/readiness")
async def readiness_check() -> Response:
    """
    Kubernetes-style readiness probe.

    Returns:
        200 if the database answers
        503 if it does not
    """
    try:
        database.ping(database.SessionLocal)
        return Response(status_code=200, content="Ready")
    except SQLAlchemyError as e:
        log.warning(f"Readiness check failed: {e}")
        return Response(status_code=503, content=f"Not ready: {e}")


@router.get("/liveness")
async def liveness_check() -> Response:
    """
    Kubernetes-style liveness probe.

    Returns:
        200 if service is alive
    """
    return Response(status_code=200, content="Alive")


@router.get("/metrics")
async def metrics() -> Dict[str, Any]:
    """
    Basic metrics endpoint.

    Returns:
        Uptime plus cache freshness figures
    """
    uptime = int(time.time() - START_TIME)
    body: Dict[str, Any] = {
        "uptime_seconds": uptime,
        "start_time": START_TIME,
    }
    try:
        body["cache"] = CacheMonitor(database.SessionLocal).cache_stats()
    except PersistenceError as e:
        log.warning(f"Cache stats unavailable: {e}")
        body["cache"] = None
    return body
