# backend/tenantauth/crud/crud_profile.py
import logging
import uuid
from datetime import UTC, datetime, timedelta
from typing import NamedTuple

from sqlalchemy import case, literal, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tenantauth.core.log_utils import mask_email
from tenantauth.crud.base import CRUDBase
from tenantauth.db.models.profile import Profile
from tenantauth.schemas.auth import ProfileCreate

logger = logging.getLogger(__name__)


class LoginAttemptState(NamedTuple):
    """Server-resident lockout state for one account."""

    failed_login_attempts: int
    locked_until: datetime | None


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class CRUDProfile(CRUDBase[Profile, ProfileCreate]):
    async def get_by_email(self, db: AsyncSession, *, email: str) -> Profile | None:
        result = await db.execute(select(self.model).filter(self.model.email == email))
        return result.scalars().first()

    async def get_login_state(self, db: AsyncSession, *, email: str) -> LoginAttemptState | None:
        """
        Fetch ``failed_login_attempts`` and ``locked_until`` for an email.

        Returns None when no profile row exists for the email.
        """
        result = await db.execute(
            select(self.model.failed_login_attempts, self.model.locked_until).where(
                self.model.email == email
            )
        )
        row = result.one_or_none()
        if row is None:
            return None
        return LoginAttemptState(row.failed_login_attempts or 0, _as_utc(row.locked_until))

    async def record_failed_attempt(
        self,
        db: AsyncSession,
        *,
        email: str,
        now: datetime,
        max_attempts: int,
        lockout: timedelta,
    ) -> LoginAttemptState | None:
        """
        Atomically increment the failed-attempt counter.

        A single ``UPDATE ... SET failed_login_attempts = failed_login_attempts + 1
        RETURNING`` so concurrent failures for the same email cannot lose an
        increment. When the new count reaches ``max_attempts`` the same
        statement sets ``locked_until = now + lockout``.
        """
        new_count = self.model.failed_login_attempts + 1
        lock_expiry = literal(now + lockout, type_=self.model.locked_until.type)
        stmt = (
            update(self.model)
            .where(self.model.email == email)
            .values(
                failed_login_attempts=new_count,
                locked_until=case(
                    (new_count >= max_attempts, lock_expiry),
                    else_=self.model.locked_until,
                ),
            )
            .returning(self.model.failed_login_attempts, self.model.locked_until)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        row = result.one_or_none()
        await db.commit()

        if row is None:
            return None
        state = LoginAttemptState(row.failed_login_attempts, _as_utc(row.locked_until))
        logger.debug(
            f"Failed attempt recorded for {mask_email(email)}: count={state.failed_login_attempts}"
        )
        return state

    async def reset_failed_attempts(self, db: AsyncSession, *, email: str) -> None:
        """Reset the counter and clear the lock for an email."""
        stmt = (
            update(self.model)
            .where(self.model.email == email)
            .values(failed_login_attempts=0, locked_until=None)
            .execution_options(synchronize_session=False)
        )
        await db.execute(stmt)
        await db.commit()

    async def get_role(self, db: AsyncSession, *, user_id: str | uuid.UUID) -> str | None:
        """Return the profile's role, or None when there is no row or no role set."""
        if not isinstance(user_id, uuid.UUID):
            user_id = uuid.UUID(str(user_id))
        result = await db.execute(select(self.model.role).where(self.model.id == user_id))
        return result.scalar_one_or_none()


profile = CRUDProfile(Profile)
