# backend/tenantauth/schemas/security_event.py
import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Severity = Literal["low", "medium", "high", "critical"]


class SecurityEventCreate(BaseModel):
    user_id: uuid.UUID | None = None
    event_type: str = Field(min_length=1, max_length=100)
    severity: Severity = "medium"
    details: dict[str, Any] = Field(default_factory=dict)


class SecurityEventRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: uuid.UUID | None = None
    event_type: str
    severity: Severity
    details: dict[str, Any]
    created_at: datetime


class SecurityEventPage(BaseModel):
    items: list[SecurityEventRead]
    skip: int
    limit: int
