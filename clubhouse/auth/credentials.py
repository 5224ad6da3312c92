"""
Credential store.

Typed access to principals, access sessions and refresh tokens on top of
the document store. Expired token rows are purged lazily: whoever looks
one up and finds it expired deletes it.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable

from clubhouse.auth.tokens import issue_token
from clubhouse.core.models import Principal, StoredToken
from clubhouse.core.utils import normalize_email, utc_now
from clubhouse.errors import ConflictError
from clubhouse.storage import Collections, DuplicateDocumentError, MetadataStorage

logger = logging.getLogger(__name__)


class CredentialStore:
    """Repository for users, sessions and refresh tokens."""

    def __init__(self, metadata: MetadataStorage, clock: Callable[[], datetime] = utc_now):
        self.metadata = metadata
        self.clock = clock

    # =========================================================================
    # Principals
    # =========================================================================

    async def get_principal(self, user_id: str) -> Principal | None:
        doc = await self.metadata.get(Collections.USERS, user_id)
        return Principal.model_validate(doc) if doc else None

    async def find_principal_by_email(self, email: str) -> Principal | None:
        doc = await self.metadata.find_one(Collections.USERS, {"email": normalize_email(email)})
        return Principal.model_validate(doc) if doc else None

    async def find_principal_by_provider(self, provider: str, provider_id: str) -> Principal | None:
        doc = await self.metadata.find_one(
            Collections.USERS,
            {"provider": provider, "provider_id": provider_id},
        )
        return Principal.model_validate(doc) if doc else None

    async def list_principals(
        self,
        filters: dict[str, Any] | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Principal]:
        docs = await self.metadata.query(Collections.USERS, filters, limit=limit, offset=offset)
        return [Principal.model_validate(doc) for doc in docs]

    async def create_principal(self, principal: Principal) -> Principal:
        """
        Persist a new principal.

        Raises:
            ConflictError: the email is already registered
        """
        principal.email = normalize_email(principal.email)
        try:
            await self.metadata.insert(Collections.USERS, principal.id, principal.to_document())
        except DuplicateDocumentError:
            raise ConflictError("An account with this email already exists")
        return principal

    async def update_principal(self, user_id: str, updates: dict[str, Any]) -> Principal | None:
        """
        Apply a partial update and touch updated_at.

        Returns the updated principal, or None if it does not exist.
        """
        updates = {**updates, "updated_at": self.clock()}
        if "email" in updates:
            updates["email"] = normalize_email(updates["email"])
        try:
            found = await self.metadata.update(Collections.USERS, user_id, updates)
        except DuplicateDocumentError:
            raise ConflictError("An account with this email already exists")
        if not found:
            return None
        return await self.get_principal(user_id)

    async def delete_principal(self, user_id: str) -> bool:
        return await self.metadata.delete(Collections.USERS, user_id)

    # =========================================================================
    # Sessions (opaque access tokens)
    # =========================================================================

    async def create_session(self, user_id: str, ttl: timedelta) -> StoredToken:
        return await self._create_token(Collections.SESSIONS, user_id, ttl)

    async def resolve_session(self, token: str) -> StoredToken | None:
        return await self._resolve_token(Collections.SESSIONS, token)

    async def revoke_session(self, token: str) -> int:
        return await self.metadata.delete_where(Collections.SESSIONS, {"token": token})

    # =========================================================================
    # Refresh tokens
    # =========================================================================

    async def create_refresh_token(self, user_id: str, ttl: timedelta) -> StoredToken:
        return await self._create_token(Collections.REFRESH_TOKENS, user_id, ttl)

    async def resolve_refresh_token(self, token: str) -> StoredToken | None:
        return await self._resolve_token(Collections.REFRESH_TOKENS, token)

    async def revoke_refresh_token(self, token: str) -> int:
        return await self.metadata.delete_where(Collections.REFRESH_TOKENS, {"token": token})

    # =========================================================================
    # Internal
    # =========================================================================

    async def _create_token(self, collection: str, user_id: str, ttl: timedelta) -> StoredToken:
        now = self.clock()
        stored = StoredToken(
            user_id=user_id,
            token=issue_token(),
            expires_at=now + ttl,
            created_at=now,
        )
        await self.metadata.insert(collection, stored.id, stored.model_dump())
        return stored

    async def _resolve_token(self, collection: str, token: str) -> StoredToken | None:
        if not token:
            return None

        doc = await self.metadata.find_one(collection, {"token": token})
        if not doc:
            return None

        stored = StoredToken.model_validate(doc)
        if stored.is_expired(self.clock()):
            await self.metadata.delete(collection, stored.id)
            logger.info(f"Purged expired token {stored.id} from {collection}")
            return None

        return stored
