"""Session context and its Valkey persistence.

SessionContext is the explicit auth state of one client: the signed-in
account, or nobody. It is passed into the auth service and action handler
rather than read from globals. Changes are published to subscribers, which
is how SessionManager writes sign-in and sign-out through to Valkey.

Stored sessions expire by Valkey TTL; the cookie only carries an opaque
random token.
"""

import logging
import secrets
from typing import Callable

from clients.identity_client import SignedInAccount
from clients.valkey_client import ValkeyClient
from auth.config import AuthConfig

logger = logging.getLogger(__name__)

SessionListener = Callable[["SessionContext"], None]


class SessionContext:
    """Auth state for one client."""

    def __init__(
        self,
        account: SignedInAccount | None = None,
        session_token: str | None = None,
    ):
        self._account = account
        self.session_token = session_token
        self._listeners: list[SessionListener] = []

    @property
    def account(self) -> SignedInAccount | None:
        return self._account

    @property
    def is_authenticated(self) -> bool:
        return self._account is not None

    @property
    def email_verified(self) -> bool:
        return bool(self._account and self._account.email_verified)

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Call listener after every change. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception(f"Session listener {getattr(listener, '__name__', listener)} failed")

    def sign_in(self, account: SignedInAccount) -> None:
        """Replace the current account (new login or refreshed credentials)."""
        self._account = account
        self._publish()

    def set_email_verified(self, verified: bool) -> None:
        """Update the cached verification flag of the signed-in account."""
        if self._account is None:
            return
        self._account = self._account.model_copy(update={"email_verified": verified})
        self._publish()

    def sign_out(self) -> None:
        """Forget the account."""
        if self._account is None:
            return
        self._account = None
        self._publish()


class SessionManager:
    """Loads and persists SessionContexts in Valkey."""

    KEY_PREFIX = "session:"

    def __init__(self, valkey: ValkeyClient, config: AuthConfig):
        self._valkey = valkey
        self.expire_seconds = config.session_expiry_hours * 3600

    def _key(self, token: str) -> str:
        return f"{self.KEY_PREFIX}{token}"

    def open(self, session_token: str | None) -> SessionContext:
        """Context for an incoming request.

        Unknown or expired tokens give an anonymous context. The returned
        context is bound: later sign-in/out is persisted automatically.
        """
        account = None
        if session_token:
            data = self._valkey.get_json(self._key(session_token))
            if data is not None:
                account = SignedInAccount.model_validate(data)
            else:
                session_token = None

        context = SessionContext(account=account, session_token=session_token)
        context.subscribe(self._persist)
        return context

    def _persist(self, context: SessionContext) -> None:
        if context.account is None:
            if context.session_token:
                self._valkey.delete(self._key(context.session_token))
                context.session_token = None
            return

        if context.session_token:
            # A different account signing in gets a fresh token
            stored = self._valkey.get_json(self._key(context.session_token))
            if stored is not None and stored.get("uid") != context.account.uid:
                self._valkey.delete(self._key(context.session_token))
                context.session_token = None

        if not context.session_token:
            context.session_token = secrets.token_urlsafe(32)
        self._valkey.set_json(
            self._key(context.session_token),
            context.account.model_dump(mode="json"),
            expire_seconds=self.expire_seconds,
        )
