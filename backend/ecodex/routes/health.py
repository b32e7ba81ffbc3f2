"""
EcoDex Backend - Health Check Route
=====================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Checks the database (SELECT 1) and the species oracle (circuit
       breaker state, then a model listing call).

Status levels:
    - healthy:   All dependencies operational
    - degraded:  Oracle down or circuit open; collection browsing still works
    - unhealthy: Database unreachable
"""

import logging
import time

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ecodex import __version__
from ecodex.database import engine
from ecodex.schemas.common import HealthResponse
from ecodex.services.gemini_oracle import CircuitBreaker, gemini_oracle

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check() -> HealthResponse:
    db_status = "connected"
    oracle_status = "available"
    overall = "healthy"

    # ── Check Database ────────────────────────────────────────────────────
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    # ── Check Species Oracle ──────────────────────────────────────────────
    if gemini_oracle.circuit_breaker.state == CircuitBreaker.OPEN:
        oracle_status = "circuit_open"
    elif not await gemini_oracle.health_check():
        oracle_status = "unavailable"

    if oracle_status != "available" and overall == "healthy":
        overall = "degraded"

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        oracle=oracle_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
