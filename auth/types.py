"""Pydantic models for the auth domain."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from clients.identity_client import AccountInfo, SignedInAccount


class StoredModel(BaseModel):
    """Base for documents persisted with camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict[str, Any]:
        """JSON-compatible dict with camelCase keys, as written to the store."""
        return self.model_dump(mode="json", by_alias=True)


class TokenType(str, Enum):
    """Action a token authorizes."""

    EMAIL_VERIFICATION = "emailVerification"
    PASSWORD_RESET = "passwordReset"


class UserRole(str, Enum):
    CUSTOMER = "customer"
    VENDOR = "vendor"
    ADMIN = "admin"


class ActionMode(str, Enum):
    """`mode` query parameter of an action link."""

    VERIFY_EMAIL = "verifyEmail"
    RESET_PASSWORD = "resetPassword"
    RECOVER_EMAIL = "recoverEmail"

    @property
    def token_type(self) -> TokenType | None:
        """Custom token type that can authorize this mode, if any."""
        return _MODE_TOKEN_TYPES.get(self)


_MODE_TOKEN_TYPES = {
    ActionMode.VERIFY_EMAIL: TokenType.EMAIL_VERIFICATION,
    ActionMode.RESET_PASSWORD: TokenType.PASSWORD_RESET,
}


class DeviceInfo(StoredModel):
    """Snapshot of the issuing client. Diagnostic only."""

    user_agent: str | None = None
    screen_size: str | None = None
    language: str | None = None
    referrer: str | None = None
    platform: str | None = None


class AuthToken(StoredModel):
    """A single-use action token as stored in auth_tokens."""

    token: str = Field(..., description="URL-safe capability string")
    user_id: str
    email: str
    type: TokenType
    created_at: datetime
    expires_at: datetime
    used: bool  # Required - fail closed, no default
    used_at: datetime | None = None
    invalidated_reason: str | None = None
    device_info: DeviceInfo = Field(default_factory=DeviceInfo)


class TokenValidation(BaseModel):
    """Outcome of validating a token. Failures are results, not exceptions."""

    valid: bool
    user_id: str | None = None
    email: str | None = None
    error: str | None = None


class UserProfile(StoredModel):
    """Account profile mirrored into the users collection."""

    id: str = Field(..., exclude=True)
    email: str
    role: UserRole = UserRole.CUSTOMER
    email_verified: bool = False
    created_at: datetime
    password_last_changed: datetime | None = None
    last_login_at: datetime | None = None
    login_count: int = 0


class AuditLogEntry(StoredModel):
    """Append-only record of an auth event."""

    user_id: str
    user_email: str | None = None
    action: str
    entity: str = "user"
    entity_id: str | None = None
    details: dict[str, Any] | None = None
    timestamp: datetime
    ip_address: str | None = None
    user_agent: str | None = None


class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    is_vendor: bool = False


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class PasswordResetRequest(BaseModel):
    email: EmailStr


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


class VerifyEmailRequest(BaseModel):
    action_code: str = Field(..., min_length=1)


class NewPasswordRequest(BaseModel):
    """Password form submitted from an action link."""

    oob_code: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


__all__ = [
    "AccountInfo",
    "SignedInAccount",
    "TokenType",
    "UserRole",
    "ActionMode",
    "DeviceInfo",
    "AuthToken",
    "TokenValidation",
    "UserProfile",
    "AuditLogEntry",
    "SignupRequest",
    "LoginRequest",
    "PasswordResetRequest",
    "ChangePasswordRequest",
    "VerifyEmailRequest",
    "NewPasswordRequest",
]
