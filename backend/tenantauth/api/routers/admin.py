# backend/tenantauth/api/routers/admin.py
"""Security event browsing (admin-only)."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tenantauth import crud
from tenantauth.api.deps import require_role
from tenantauth.core.config import PRIVILEGED_ROLES
from tenantauth.db.session import get_async_session
from tenantauth.schemas.security_event import SecurityEventPage, SecurityEventRead

logger = logging.getLogger(__name__)

admin_router = APIRouter(
    prefix="/admin",
    tags=["Admin - Security Events"],
    dependencies=[Depends(require_role(*PRIVILEGED_ROLES))],
)


@admin_router.get(
    "/security-events",
    response_model=SecurityEventPage,
    summary="List security events, newest first",
)
async def list_security_events(
    db: Annotated[AsyncSession, Depends(get_async_session)],
    skip: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> SecurityEventPage:
    events = await crud.security_event.get_recent(db, skip=skip, limit=limit)
    return SecurityEventPage(
        items=[SecurityEventRead.model_validate(e) for e in events],
        skip=skip,
        limit=limit,
    )
