# backend/tenantauth/api/routers/health.py
import logging
from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from tenantauth.core.config import settings
from tenantauth.db.session import get_async_session

logger = logging.getLogger(__name__)

health_router = APIRouter(tags=["Health Checks"])


@health_router.get(
    "/health",
    summary="API and dependencies health check",
    status_code=status.HTTP_200_OK,
)
async def health_check(db: Annotated[AsyncSession, Depends(get_async_session)]):
    db_status = "unavailable"
    try:
        await db.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception as e:
        logger.error(
            f"Health check: database connection failed. Error: {e}",
            exc_info=settings.DEBUG,
        )

    body = {
        "status": "ok" if db_status == "connected" else "degraded",
        "timestamp": datetime.now(UTC).isoformat(),
        "environment": {
            "supabase_url_configured": bool(settings.SUPABASE_URL),
            "supabase_key_configured": bool(settings.SUPABASE_ANON_KEY),
        },
        "dependencies": {"database": db_status},
    }
    if body["status"] == "ok":
        return body
    logger.error(f"Health check failed: {body['dependencies']}")
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=body)
