# =============================================================================
# Token Issuer
# =============================================================================
#
# This module provides:
#   - Opaque token generation (session/access and refresh rows)
#   - Signed claims tokens (JWT access tokens)
#   - Token validation
#
# Persistence of opaque tokens is the caller's job (see credentials.py).
#
# =============================================================================

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from pydantic import BaseModel

from clubhouse.config import Settings
from clubhouse.core.models import Principal
from clubhouse.core.utils import generate_id, utc_now

logger = logging.getLogger(__name__)

# 32 random bytes = 256 bits of entropy
TOKEN_BYTES = 32


# =============================================================================
# Models
# =============================================================================


class TokenPayload(BaseModel):
    """JWT token payload."""
    sub: str  # user_id
    email: str = ""
    role: str = ""
    exp: datetime
    iat: datetime
    type: str  # "access"
    jti: str  # unique token ID


@dataclass(frozen=True)
class TokenPolicy:
    """Lifetimes for the two kinds of tokens."""

    access_ttl: timedelta
    refresh_ttl: timedelta

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenPolicy:
        return cls(
            access_ttl=timedelta(seconds=settings.access_token_ttl_seconds),
            refresh_ttl=timedelta(seconds=settings.refresh_token_ttl_seconds),
        )

    @property
    def access_ttl_seconds(self) -> int:
        return int(self.access_ttl.total_seconds())

    @property
    def refresh_ttl_seconds(self) -> int:
        return int(self.refresh_ttl.total_seconds())


@dataclass(frozen=True)
class IssuedCredentials:
    """Access + refresh token pair handed to a client."""

    access_token: str
    refresh_token: str
    access_max_age: int
    refresh_max_age: int
    token_type: str = "bearer"

    def as_body(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "expires_in": self.access_max_age,
        }


# =============================================================================
# Opaque tokens
# =============================================================================


def issue_token() -> str:
    """Generate an unguessable URL-safe token."""
    return secrets.token_urlsafe(TOKEN_BYTES)


# =============================================================================
# Signed claims tokens
# =============================================================================


class TokenError(Exception):
    """Base exception for token errors."""
    pass


class TokenExpiredError(TokenError):
    """Token has expired."""
    pass


class TokenInvalidError(TokenError):
    """Token is invalid or malformed."""
    pass


def create_access_token(
    principal: Principal,
    settings: Settings,
    now: datetime | None = None,
) -> str:
    """Create a signed access token for a principal."""
    now = now or utc_now()
    expire = now + timedelta(seconds=settings.access_token_ttl_seconds)

    payload = {
        "sub": principal.id,
        "email": principal.email,
        "role": principal.role,
        "exp": expire,
        "iat": now,
        "nbf": now,
        "type": "access",
        "jti": generate_id("tok"),
    }

    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings, expected_type: str = "access") -> TokenPayload:
    """
    Decode and validate a signed token.

    Raises:
        TokenExpiredError: Token has expired
        TokenInvalidError: Token is invalid
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp", "iat"]},
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpiredError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenInvalidError(f"Invalid token: {e}")

    if payload.get("type") != expected_type:
        raise TokenInvalidError(f"Expected {expected_type} token, got {payload.get('type')}")

    return TokenPayload(
        sub=payload["sub"],
        email=payload.get("email", ""),
        role=payload.get("role", ""),
        exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        iat=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
        type=payload["type"],
        jti=payload.get("jti", ""),
    )
