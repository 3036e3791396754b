"""
NoteWise Backend — Health Check Route
======================================

What:  GET /health for load balancer probes and monitoring.
How:   SELECT 1 against the database, circuit breaker state and a model
       listing for Gemini.

Status levels:
    healthy:   database and Gemini reachable
    degraded:  Gemini down, open circuit or not configured (analysis still
               works through the local fallback)
    unhealthy: database unreachable (the notification job cannot run)
"""

import logging
import time

from fastapi import APIRouter, Request
from sqlalchemy import text

from notewise import __version__
from notewise.database import engine
from notewise.schemas.analysis import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(request: Request) -> HealthResponse:
    db_status = "connected"
    overall = "healthy"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    analyzer = getattr(request.app.state, "gemini_analyzer", None)
    if analyzer is None or not analyzer.api_key:
        gemini_status = "not_configured"
    elif analyzer.circuit_breaker.state == analyzer.circuit_breaker.OPEN:
        gemini_status = "circuit_open"
    elif await analyzer.health_check():
        gemini_status = "available"
    else:
        gemini_status = "unavailable"

    if gemini_status != "available" and overall == "healthy":
        overall = "degraded"

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        gemini=gemini_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
