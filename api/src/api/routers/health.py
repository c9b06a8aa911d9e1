"""Liveness and readiness checks for the load balancer."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from trailclub.database import get_session

logger = logging.getLogger(__name__)
router = APIRouter()

SERVICE_NAME = "trailclub-api"


@router.get("/health")
async def health_check():
    return {"status": "ok", "service": SERVICE_NAME}


@router.get("/health/ready")
async def readiness_check():
    """Ready once the billing database answers a trivial query."""
    try:
        async with get_session() as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Readiness check failed: %s", exc)
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "service": SERVICE_NAME, "error": str(exc)},
        )
    return {"status": "ready", "service": SERVICE_NAME}
