"""Authentication service - orchestrates account and action-token flows."""

import logging
from datetime import datetime
from typing import Callable, TypeVar

from auth.audit_log import AuditAction, AuditLog
from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.exceptions import NotAuthenticatedError, PasswordResetError, RateLimitedError
from auth.messages import PASSWORD_RESET_FAILED
from auth.rate_limiter import RateLimiter
from auth.session import SessionContext
from auth.tokens import ActionTokenService
from auth.types import (
    ActionMode,
    AuditLogEntry,
    DeviceInfo,
    SignedInAccount,
    TokenType,
    UserProfile,
    UserRole,
)
from clients.email_client import DeliveryOutcome, MailgunClient
from clients.identity_client import EXPIRED_ID_TOKEN_CODES, CredentialStoreError, IdentityClient
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AuthService:
    """Orchestrates signup, login and the email action flows.

    Handles:
    - Signup with compensating account delete when the profile write fails
    - Login / logout with audit entries
    - Verification email resend and password reset (custom tokens or provider)
    - Password change with re-authentication
    - Provider-native email verification

    The credential store is the source of truth for identity. The document
    store mirrors what queries need (role, emailVerified). Nothing here is
    transactional across the two; see individual methods for failure policy.
    """

    def __init__(
        self,
        config: AuthConfig,
        auth_db: AuthDatabase,
        identity: IdentityClient,
        tokens: ActionTokenService,
        email_client: MailgunClient,
        audit: AuditLog,
        rate_limiter: RateLimiter,
        clock: Callable[[], datetime] = now_utc,
    ):
        self._config = config
        self._auth_db = auth_db
        self._identity = identity
        self._tokens = tokens
        self._email_client = email_client
        self._audit = audit
        self._rate_limiter = rate_limiter
        self._clock = clock

    def _require_account(self, session: SessionContext) -> SignedInAccount:
        if session.account is None:
            raise NotAuthenticatedError()
        return session.account

    def _refresh_credentials(self, session: SessionContext) -> SignedInAccount:
        """Swap the session's expired ID token for a fresh one."""
        account = self._require_account(session)
        fresh = self._identity.refresh(account.refresh_token)
        refreshed = account.model_copy(
            update={"id_token": fresh.id_token, "refresh_token": fresh.refresh_token}
        )
        session.sign_in(refreshed)
        return refreshed

    def _with_id_token(self, session: SessionContext, call: Callable[[str], T]) -> T:
        """Run call(id_token), refreshing the credentials once if the token expired.

        Raises:
            NotAuthenticatedError: No signed-in account.
            CredentialStoreError: Provider rejected the call or the refresh.
        """
        account = self._require_account(session)
        try:
            return call(account.id_token)
        except CredentialStoreError as e:
            if e.code not in EXPIRED_ID_TOKEN_CODES:
                raise
            logger.info(f"ID token of {account.uid} expired ({e.code}), refreshing")
        account = self._refresh_credentials(session)
        return call(account.id_token)

    def _deliver_verification(self, email: str, token: str) -> DeliveryOutcome:
        link = self._tokens.build_action_link(ActionMode.VERIFY_EMAIL, token)
        outcome = self._email_client.send_verification_email(
            email, link, ttl_hours=self._config.email_verification_ttl_hours
        )
        if not outcome.sent:
            logger.error(f"Verification email to {email} not delivered: {outcome.error}")
        return outcome

    def _deliver_password_reset(self, email: str, token: str) -> DeliveryOutcome:
        link = self._tokens.build_action_link(ActionMode.RESET_PASSWORD, token)
        outcome = self._email_client.send_password_reset_email(
            email, link, ttl_hours=self._config.password_reset_ttl_hours
        )
        if not outcome.sent:
            logger.error(f"Password reset email to {email} not delivered: {outcome.error}")
        return outcome

    def signup(
        self,
        session: SessionContext,
        email: str,
        password: str,
        is_vendor: bool = False,
        device_info: DeviceInfo | None = None,
    ) -> SignedInAccount:
        """Create account, profile, audit entry, then send verification.

        Flow:
        1. Create credential store account (failure: nothing to undo)
        2. Create profile document (failure: delete the account, re-raise)
        3. Audit entry (best-effort)
        4. Verification email (best-effort; signup still succeeds)

        Raises:
            CredentialStoreError: Account creation rejected by the provider.
            DocumentStoreError: Profile write failed. The account has been
                deleted, or an orphan was logged if that delete failed too.
        """
        email = email.lower().strip()

        try:
            account = self._identity.create_account(email, password)
        except CredentialStoreError as e:
            logger.error(f"Auth creation failed during signup: {e.code}")
            raise

        profile = UserProfile(
            id=account.uid,
            email=email,
            role=UserRole.VENDOR if is_vendor else UserRole.CUSTOMER,
            email_verified=False,
            created_at=self._clock(),
        )
        try:
            self._auth_db.create_profile(profile)
        except Exception as db_error:
            logger.error(f"Profile write failed during signup for {account.uid}: {db_error}")
            try:
                self._identity.delete_account(account.id_token)
            except Exception as delete_error:
                logger.error(
                    f"Failed to delete auth account {account.uid} after profile "
                    f"write failure, account is orphaned: {delete_error}"
                )
            raise db_error

        self._audit.record(
            AuditAction.USER_SIGNUP,
            user_id=account.uid,
            user_email=email,
            details={"isVendor": is_vendor},
        )

        session.sign_in(account)

        try:
            if self._config.use_custom_email_provider:
                token = self._tokens.issue(
                    email,
                    account.uid,
                    TokenType.EMAIL_VERIFICATION,
                    device_info=device_info,
                )
                self._deliver_verification(email, token)
            else:
                self._identity.send_email_verification(account.id_token)
        except Exception:
            logger.exception(f"Could not send verification for new account {account.uid}")

        return account

    def login(
        self,
        session: SessionContext,
        email: str,
        password: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> SignedInAccount:
        """Sign in. Provider errors propagate unchanged for the caller to map.

        Raises:
            CredentialStoreError: Wrong credentials, disabled account, throttled.
        """
        account = self._identity.sign_in(email.lower().strip(), password)

        self._audit.record(
            AuditAction.USER_LOGIN,
            user_id=account.uid,
            user_email=account.email,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        try:
            self._auth_db.record_login(account.uid, self._clock())
        except Exception:
            logger.exception(f"Could not record login for {account.uid}")

        session.sign_in(account)
        return account

    def logout(self, session: SessionContext) -> None:
        """Sign out. The audit entry is written first, while identity is known.

        Safe to call without a signed-in account.
        """
        account = session.account
        if account is not None:
            self._audit.record(
                AuditAction.USER_LOGOUT,
                user_id=account.uid,
                user_email=account.email,
            )
        session.sign_out()

    def resend_verification_email(
        self,
        session: SessionContext,
        device_info: DeviceInfo | None = None,
    ) -> DeliveryOutcome:
        """Replace the verification token and email it again.

        Raises:
            NotAuthenticatedError: No signed-in account.
            RateLimitedError: A resend for this account is already in progress
                or happened within the cooldown.
            CredentialStoreError: Provider rejected a native resend.
        """
        account = self._require_account(session)

        if not self._config.use_custom_email_provider:
            self._with_id_token(session, self._identity.send_email_verification)
            return DeliveryOutcome(sent=True)

        self._rate_limiter.acquire_cooldown(account.uid, TokenType.EMAIL_VERIFICATION)

        self._tokens.invalidate(account.uid, TokenType.EMAIL_VERIFICATION)
        token = self._tokens.issue(
            account.email,
            account.uid,
            TokenType.EMAIL_VERIFICATION,
            device_info=device_info,
        )

        self._audit.record(
            AuditAction.RESEND_VERIFICATION_EMAIL,
            user_id=account.uid,
            user_email=account.email,
        )

        return self._deliver_verification(account.email, token)

    def reset_password(self, email: str, device_info: DeviceInfo | None = None) -> None:
        """Send a password reset link if the email belongs to an account.

        Unknown emails and throttled requests return exactly like successful
        ones: no token, no email, no error.

        Raises:
            PasswordResetError: Anything unexpected, with a generic message.
        """
        email = email.lower().strip()

        try:
            if self._config.use_custom_email_provider:
                self._reset_with_custom_token(email, device_info)
            else:
                self._reset_with_provider(email)
        except Exception as e:
            logger.exception("Error sending password reset")
            raise PasswordResetError(PASSWORD_RESET_FAILED) from e

    def _reset_with_custom_token(self, email: str, device_info: DeviceInfo | None) -> None:
        try:
            self._rate_limiter.check_rate_limit(email)
        except RateLimitedError:
            logger.info("Password reset rate limited, ignoring request")
            return

        profile = self._auth_db.get_profile_by_email(email)
        if profile is None:
            logger.info("Password reset requested for unknown email, ignoring request")
            return

        try:
            self._rate_limiter.acquire_cooldown(profile.id, TokenType.PASSWORD_RESET)
        except RateLimitedError:
            logger.info(f"Password reset for {profile.id} within cooldown, ignoring request")
            return

        self._tokens.invalidate(profile.id, TokenType.PASSWORD_RESET)
        token = self._tokens.issue(
            email,
            profile.id,
            TokenType.PASSWORD_RESET,
            device_info=device_info,
        )

        self._audit.record(
            AuditAction.PASSWORD_RESET_REQUEST,
            user_id=profile.id,
            user_email=email,
        )

        self._deliver_password_reset(email, token)

    def _reset_with_provider(self, email: str) -> None:
        try:
            self._identity.send_password_reset(email)
        except CredentialStoreError as e:
            if e.code == "EMAIL_NOT_FOUND":
                logger.info("Password reset requested for unknown email, ignoring request")
                return
            raise

    def update_user_password(
        self,
        session: SessionContext,
        current_password: str,
        new_password: str,
    ) -> None:
        """Change password after proving the current one.

        Flow:
        1. Re-authenticate (failure aborts before any change)
        2. Change password, store the fresh credentials in the session
        3. Invalidate outstanding password reset tokens
        4. Stamp passwordLastChanged, audit

        Raises:
            NotAuthenticatedError: No signed-in account.
            CredentialStoreError: Wrong current password or rejected new one.
        """
        account = self._require_account(session)

        verified = self._identity.reauthenticate(account.email, current_password)
        updated = self._identity.change_password(verified.id_token, new_password)
        session.sign_in(updated)

        self._tokens.invalidate(account.uid, TokenType.PASSWORD_RESET)
        self._auth_db.set_password_last_changed(account.uid, self._clock())
        self._rate_limiter.reset_rate_limit(account.email)

        self._audit.record(
            AuditAction.PASSWORD_CHANGED,
            user_id=account.uid,
            user_email=account.email,
        )

    def verify_email(self, session: SessionContext, action_code: str) -> None:
        """Apply a provider-issued verification code.

        Custom tokens are completed by the action handler instead.

        Raises:
            CredentialStoreError: Code invalid or expired.
        """
        self._identity.apply_action_code(action_code)

        account = session.account
        if account is None:
            return

        self._auth_db.mark_email_verified(account.uid)
        self._audit.record(
            AuditAction.EMAIL_VERIFIED,
            user_id=account.uid,
            user_email=account.email,
        )

        # Code already applied; re-reading the flag is best effort
        try:
            info = self._with_id_token(session, self._identity.lookup)
            verified = info.email_verified
        except CredentialStoreError as e:
            logger.warning(f"Could not refresh verification state of {account.uid}: {e.code}")
            verified = True
        session.set_email_verified(verified)

    def account_activity(self, session: SessionContext, limit: int = 50) -> list[AuditLogEntry]:
        """Audit entries of the signed-in account, newest first.

        Raises:
            NotAuthenticatedError: No signed-in account.
        """
        account = self._require_account(session)
        return self._audit.recent_entries(account.uid, limit=limit)
