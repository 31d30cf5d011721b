"""Document store access for authentication.

Collections: users (profiles keyed by credential store uid), auth_tokens,
audit_logs. Documents use camelCase field names; models convert at this
boundary so the rest of the auth package only sees typed objects.
"""

from datetime import datetime

from clients.document_store import Document, DocumentStore
from auth.types import AuditLogEntry, AuthToken, TokenType, UserProfile

USERS = "users"
AUTH_TOKENS = "auth_tokens"
AUDIT_LOGS = "audit_logs"


def _profile(doc: Document) -> UserProfile:
    return UserProfile.model_validate({**doc.data, "id": doc.id})


class AuthDatabase:
    """Document store operations for authentication."""

    def __init__(self, store: DocumentStore):
        self._store = store

    # -- tokens ---------------------------------------------------------------

    def store_token(self, token: AuthToken) -> str:
        """Persist a new token. Returns the document id."""
        return self._store.create(AUTH_TOKENS, token.to_document())

    def find_token(
        self, token: str, token_type: TokenType | None = None
    ) -> tuple[str, AuthToken] | None:
        """Look up a token by value, optionally restricted to one type."""
        filters = {"token": token}
        if token_type is not None:
            filters["type"] = token_type.value
        docs = self._store.query(AUTH_TOKENS, filters, limit=1)
        if not docs:
            return None
        return docs[0].id, AuthToken.model_validate(docs[0].data)

    def find_unused_tokens(
        self, user_id: str, token_type: TokenType
    ) -> list[tuple[str, AuthToken]]:
        """All unused tokens of one type for one user."""
        docs = self._store.query(
            AUTH_TOKENS,
            {"userId": user_id, "type": token_type.value, "used": False},
        )
        return [(doc.id, AuthToken.model_validate(doc.data)) for doc in docs]

    def claim_token(
        self, doc_id: str, used_at: datetime, invalidated_reason: str | None = None
    ) -> bool:
        """Flip used false -> true on one token.

        Returns:
            True if this call made the transition, False if the token was
            already used (or is gone).
        """
        changes = {"used": True, "usedAt": used_at.isoformat()}
        if invalidated_reason is not None:
            changes["invalidatedReason"] = invalidated_reason
        return self._store.update_if(AUTH_TOKENS, doc_id, {"used": False}, changes)

    # -- profiles -------------------------------------------------------------

    def create_profile(self, profile: UserProfile) -> None:
        """Create the profile document for a new account."""
        self._store.create(USERS, profile.to_document(), doc_id=profile.id)

    def get_profile_by_email(self, email: str) -> UserProfile | None:
        """Find profile by email (stored lowercased)."""
        docs = self._store.query(USERS, {"email": email.lower().strip()}, limit=1)
        return _profile(docs[0]) if docs else None

    def mark_email_verified(self, user_id: str) -> bool:
        return self._store.update(USERS, user_id, {"emailVerified": True})

    def set_password_last_changed(self, user_id: str, changed_at: datetime) -> bool:
        return self._store.update(
            USERS, user_id, {"passwordLastChanged": changed_at.isoformat()}
        )

    def record_login(self, user_id: str, logged_in_at: datetime) -> int | None:
        """Stamp last login and bump the login counter. Returns the new count."""
        self._store.update(USERS, user_id, {"lastLoginAt": logged_in_at.isoformat()})
        return self._store.increment(USERS, user_id, "loginCount")

    # -- audit log ------------------------------------------------------------

    def append_audit_entry(self, entry: AuditLogEntry) -> str:
        return self._store.create(AUDIT_LOGS, entry.to_document())

    def get_audit_entries(self, user_id: str, limit: int = 50) -> list[AuditLogEntry]:
        """Audit entries for one user, newest first."""
        docs = self._store.query(
            AUDIT_LOGS,
            {"userId": user_id},
            order_by="timestamp",
            descending=True,
            limit=limit,
        )
        return [AuditLogEntry.model_validate(doc.data) for doc in docs]
