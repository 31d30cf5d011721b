"""Authentication and action-token modules."""

from auth.exceptions import (
    AuthError,
    RateLimitedError,
    NotAuthenticatedError,
    PasswordResetError,
)
from auth.types import (
    TokenType,
    UserRole,
    ActionMode,
    DeviceInfo,
    AuthToken,
    TokenValidation,
    UserProfile,
    AuditLogEntry,
)
from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.audit_log import AuditLog, AuditAction
from auth.tokens import ActionTokenService
from auth.rate_limiter import RateLimiter
from auth.session import SessionContext, SessionManager
from auth.service import AuthService
from auth.action_handler import ActionHandler, ActionLink, ActionOutcome, ActionStatus
from auth.security_middleware import AuthMiddleware
from auth.api import create_auth_router
