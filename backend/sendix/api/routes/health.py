"""
Health check endpoints.
"""
from datetime import datetime, timezone

import structlog
from fastapi import APIRouter
from sqlalchemy import text

from sendix.api.deps import DbSession
from sendix.core.config import settings

router = APIRouter()
logger = structlog.get_logger()


@router.get("/health")
async def health_check(db: DbSession):
    """
    Health check endpoint.

    Returns service status and database connectivity.
    """
    db_ok = False
    try:
        await db.execute(text("SELECT 1"))
        db_ok = True
    except Exception as e:
        logger.warning("Health check: database connection failed", error=str(e))

    return {
        "status": "healthy" if db_ok else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": {
            "api": "ok",
            "database": "ok" if db_ok else "error",
            "realtime": settings.broadcast_backend,
        },
    }


@router.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": settings.app_name,
        "version": "1.0.0",
        "docs": "/docs",
    }
