# backend/tenantauth/db/models/security_event.py
"""
Append-only security audit records.
"""

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, CheckConstraint, DateTime, Index, Integer, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from tenantauth.db.base_class import Base

SEVERITIES = ("low", "medium", "high", "critical")


class SecurityEvent(Base):
    """
    One authentication-relevant occurrence.

    There is no update or delete path: rows are only ever inserted.
    ``details`` always carries ``timestamp`` and ``user_agent``.
    """

    __tablename__ = "security_events"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    severity: Mapped[str] = mapped_column(String(20), nullable=False, default="medium")
    details: Mapped[dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=False, default=dict
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        index=True,
    )

    __table_args__ = (
        CheckConstraint(
            "severity IN ('low', 'medium', 'high', 'critical')", name="severity_valid"
        ),
        Index("ix_security_events_type_created", "event_type", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<SecurityEvent(event_type={self.event_type}, severity={self.severity})>"
