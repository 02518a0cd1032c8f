"""
Health check endpoint.

GET /health — checks MongoDB and Redis connectivity.
Rules:
- MongoDB failure → "unhealthy" (503). Tokens and users live there.
- Redis failure or absence → "degraded" (200). The auth flows fall back to
  MongoDB.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from infrastructure.cache.handle import CacheStatus
from schemas.dto.responses.common import HealthResponse
from shared.logging import get_logger

log = get_logger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> JSONResponse:
    checks: dict[str, str] = {}
    overall = "healthy"

    try:
        db = request.app.state.db
        await db.client.admin.command("ping")
        checks["mongodb"] = "ok"
    except PyMongoError as e:
        log.warning("health_mongodb_failed", error=str(e))
        checks["mongodb"] = "error"
        overall = "unhealthy"

    cache = request.app.state.cache
    if not cache.configured:
        checks["redis"] = "not_configured"
    elif await cache.health() is CacheStatus.HIT:
        checks["redis"] = "ok"
    else:
        checks["redis"] = "error"
    if checks["redis"] != "ok" and overall == "healthy":
        overall = "degraded"

    status_code = 503 if overall == "unhealthy" else 200
    return JSONResponse(
        status_code=status_code,
        content=HealthResponse(status=overall, checks=checks).model_dump(),
    )
