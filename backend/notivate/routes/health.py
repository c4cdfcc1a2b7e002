"""
Notivate Backend - Health Check Route
=======================================

What:  GET /health for container health checks and load balancers.
How:   SELECT 1 against the database, plus each AI adapter's own cheap
       health_check (circuit breaker state first).

Status levels:
    healthy:   everything reachable                       (HTTP 200)
    degraded:  database up, an AI dependency is not        (HTTP 200)
    unhealthy: database unreachable                        (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Depends, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from notivate import __version__
from notivate.dependencies import Services, get_services
from notivate.schemas.note import HealthResponse
from notivate.services.resilience import CircuitBreaker

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


async def _adapter_status(adapter, name: str) -> str:
    breaker = getattr(adapter, "circuit_breaker", None)
    if breaker is not None and breaker.state == CircuitBreaker.OPEN:
        return "circuit_open"
    try:
        return "available" if await adapter.health_check() else "unavailable"
    except Exception as e:
        logger.warning("Health check: %s unreachable: %s", name, e)
        return "unavailable"


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(
    response: Response,
    services: Services = Depends(get_services),
) -> HealthResponse:
    db_status = "connected"
    try:
        async with services.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        db_status = "disconnected"
        logger.warning("Health check: database unreachable: %s", e)

    gemini_status = await _adapter_status(services.synthesizer, "gemini")
    vision_status = await _adapter_status(services.extractor, "vision")

    if db_status != "connected":
        overall = "unhealthy"
        response.status_code = 503
    elif gemini_status != "available" or vision_status != "available":
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        gemini=gemini_status,
        vision=vision_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
