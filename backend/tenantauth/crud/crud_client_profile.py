# backend/tenantauth/crud/crud_client_profile.py
import logging
import uuid
from datetime import datetime

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tenantauth.core.security import get_password_hash, verify_password
from tenantauth.crud.base import CRUDBase
from tenantauth.db.models.client_profile import ClientProfile
from tenantauth.schemas.auth import ClientProfileCreate

logger = logging.getLogger(__name__)


class CRUDClientProfile(CRUDBase[ClientProfile, ClientProfileCreate]):
    async def create(self, db: AsyncSession, *, obj_in: ClientProfileCreate) -> ClientProfile:
        """Create a client profile, storing only the password hash."""
        data = obj_in.model_dump(exclude={"password"})
        if data.get("email"):
            data["email"] = data["email"].lower()
        db_obj = self.model(**data, password_hash=get_password_hash(obj_in.password))
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        logger.info(f"Client profile {db_obj.id} created.")
        return db_obj

    async def authenticate(
        self, db: AsyncSession, *, identifier: str, password: str
    ) -> list[ClientProfile]:
        """
        Secure client-profile lookup.

        Matches active profiles by email (case-insensitive) or phone and
        returns those whose password hash verifies. An empty list means
        "not a client profile"; the caller falls through to standard login.
        """
        identifier = identifier.strip()
        result = await db.execute(
            select(self.model).where(
                self.model.is_active.is_(True),
                or_(
                    func.lower(self.model.email) == identifier.lower(),
                    self.model.phone == identifier,
                ),
            )
        )
        candidates = result.scalars().all()
        return [c for c in candidates if verify_password(password, c.password_hash)]

    async def touch_last_login(
        self, db: AsyncSession, *, client_id: uuid.UUID, when: datetime
    ) -> None:
        await db.execute(
            update(self.model)
            .where(self.model.id == client_id)
            .values(last_login=when)
            .execution_options(synchronize_session=False)
        )
        await db.commit()


client_profile = CRUDClientProfile(ClientProfile)
