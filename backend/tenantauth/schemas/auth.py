# backend/tenantauth/schemas/auth.py
import uuid

from pydantic import BaseModel, EmailStr, Field


class ClientProfileSession(BaseModel):
    """
    Tenant client-profile session as persisted in local storage under
    the ``clientProfile`` key.
    """

    id: str = Field(min_length=1)
    client_name: str
    email: str
    phone: str | None = None


class LoginRequest(BaseModel):
    # Client profiles may sign in with a phone number, so this is not an EmailStr.
    identifier: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=1024)


class LoginResponse(BaseModel):
    success: bool
    error: str | None = None
    account_locked: bool = False
    is_client_profile: bool = False
    redirect_to: str | None = None
    access_token: str | None = None
    token_type: str = "bearer"
    expires_at: int | None = None  # epoch seconds


class PrincipalRead(BaseModel):
    id: str
    email: str | None = None
    client_name: str | None = None
    kind: str  # "user" | "client_profile"


class SessionRead(BaseModel):
    """The principal/role/loading triple of one caller."""

    principal: PrincipalRead | None = None
    role: str | None = None
    is_loading: bool
    is_authenticated: bool
    is_client_profile: bool


class PasswordPolicyRequest(BaseModel):
    password: str = Field(max_length=1024)


class PasswordPolicyResponse(BaseModel):
    is_valid: bool
    errors: list[str]


class ProfileCreate(BaseModel):
    id: uuid.UUID | None = None
    email: EmailStr
    role: str = "user"


class ClientProfileCreate(BaseModel):
    client_name: str = Field(min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=32)
    password: str = Field(min_length=1)
