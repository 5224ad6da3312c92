"""
Access-token strategies.

A deployment runs exactly one of them, selected by AUTH_MODE:

- SessionTokenVerifier: opaque token stored server-side, sent as a cookie
- JWTTokenVerifier: signed claims token, sent as `Authorization: Bearer`

Both resolve a presented credential to a principal id or raise AuthError.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from fastapi import Request
from fastapi.security import HTTPBearer

from clubhouse.auth.credentials import CredentialStore
from clubhouse.auth.tokens import (
    TokenError,
    TokenPolicy,
    create_access_token,
    decode_token,
)
from clubhouse.config import Settings
from clubhouse.core.models import AuthMode, Principal
from clubhouse.errors import AuthError

logger = logging.getLogger(__name__)

# Yields None instead of raising on a missing or non-Bearer header
bearer = HTTPBearer(auto_error=False)


class TokenVerifier(ABC):
    """Issues and verifies access credentials for one auth mode."""

    mode: AuthMode

    def __init__(self, settings: Settings, store: CredentialStore):
        self.settings = settings
        self.store = store

    @property
    def uses_cookie(self) -> bool:
        return self.mode == AuthMode.SESSION

    @abstractmethod
    async def issue_access_token(self, principal: Principal) -> str:
        """Mint a new access credential for the principal."""
        pass

    @abstractmethod
    async def extract_credential(self, request: Request) -> str | None:
        """
        Pull the raw credential out of the request.

        Returns None when absent; raises AuthError when present but malformed.
        """
        pass

    @abstractmethod
    async def resolve(self, credential: str) -> str:
        """Return the owning principal id, or raise AuthError."""
        pass

    async def revoke(self, credential: str) -> None:
        """Invalidate a credential (no-op for stateless tokens)."""
        pass


# =============================================================================
# Opaque session rows
# =============================================================================


class SessionTokenVerifier(TokenVerifier):
    """Opaque session token read from the access cookie."""

    mode = AuthMode.SESSION

    async def issue_access_token(self, principal: Principal) -> str:
        policy = TokenPolicy.from_settings(self.settings)
        session = await self.store.create_session(principal.id, policy.access_ttl)
        return session.token

    async def extract_credential(self, request: Request) -> str | None:
        return request.cookies.get(self.settings.access_cookie_name) or None

    async def resolve(self, credential: str) -> str:
        session = await self.store.resolve_session(credential)
        if session is None:
            # Unknown and expired look identical to the caller
            raise AuthError("Invalid or expired session")
        return session.user_id

    async def revoke(self, credential: str) -> None:
        await self.store.revoke_session(credential)


# =============================================================================
# Signed claims tokens
# =============================================================================


class JWTTokenVerifier(TokenVerifier):
    """Signed access token read from the Authorization header."""

    mode = AuthMode.JWT

    async def issue_access_token(self, principal: Principal) -> str:
        return create_access_token(principal, self.settings, now=self.store.clock())

    async def extract_credential(self, request: Request) -> str | None:
        if not request.headers.get("Authorization"):
            return None

        credentials = await bearer(request)
        if credentials is None:
            raise AuthError("Invalid authorization format")
        return credentials.credentials

    async def resolve(self, credential: str) -> str:
        try:
            payload = decode_token(credential, self.settings, expected_type="access")
        except TokenError as e:
            logger.warning(f"Rejected bearer token: {e}")
            raise AuthError("Invalid or expired token")
        return payload.sub


def create_verifier(settings: Settings, store: CredentialStore) -> TokenVerifier:
    """Build the strategy configured by AUTH_MODE."""
    if settings.uses_jwt:
        return JWTTokenVerifier(settings, store)
    return SessionTokenVerifier(settings, store)
