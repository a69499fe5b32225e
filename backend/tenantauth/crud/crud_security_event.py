# backend/tenantauth/crud/crud_security_event.py
from sqlalchemy.ext.asyncio import AsyncSession

from tenantauth.crud.base import CRUDBase
from tenantauth.db.models.security_event import SecurityEvent
from tenantauth.schemas.security_event import SecurityEventCreate


class CRUDSecurityEvent(CRUDBase[SecurityEvent, SecurityEventCreate]):
    async def get_recent(
        self, db: AsyncSession, *, skip: int = 0, limit: int = 100
    ) -> list[SecurityEvent]:
        """Newest first."""
        return await self.get_multi(
            db,
            skip=skip,
            limit=limit,
            order_by=[self.model.created_at.desc(), self.model.id.desc()],
        )


security_event = CRUDSecurityEvent(SecurityEvent)
