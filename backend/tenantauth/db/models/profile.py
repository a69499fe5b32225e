# backend/tenantauth/db/models/profile.py
"""
Platform user profile, including the login-attempt state used for lockout.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from tenantauth.db.base_class import Base


class Profile(Base):
    """
    One row per platform account, keyed by the identity backend's user id.

    ``failed_login_attempts`` and ``locked_until`` are the server-resident
    login-attempt state, looked up by ``email`` before credentials are
    checked.
    """

    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    role: Mapped[str | None] = mapped_column(String(50), nullable=True, default="user")

    failed_login_attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    locked_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<Profile(id={self.id!r}, email={self.email!r}, role={self.role!r}, "
            f"failed_login_attempts={self.failed_login_attempts!r})>"
        )
