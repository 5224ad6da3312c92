"""
Gatekeeper - the interface routes use to authenticate callers.

Just use: `ctx: AuthContext = Depends(require_auth())`

Design:
- The dependency pulls the configured TokenVerifier and CredentialStore
  from app state
- The verifier extracts and resolves the credential to a principal id
- Missing, malformed, unknown or expired credentials raise 401;
  a disabled principal raises 403
- `optional_auth()` resolves the same way but degrades to an anonymous
  context instead of rejecting
"""

from __future__ import annotations

import logging
from typing import Callable

from fastapi import Request

from clubhouse.auth.context import AuthContext
from clubhouse.auth.credentials import CredentialStore
from clubhouse.auth.verifiers import TokenVerifier
from clubhouse.errors import AuthError, ForbiddenError
from clubhouse.integrations.sentry import set_user

logger = logging.getLogger(__name__)


async def resolve_context(request: Request) -> AuthContext:
    """
    Authenticate the request.

    Raises:
        AuthError: no usable credential
        ForbiddenError: principal is disabled
    """
    verifier: TokenVerifier = request.app.state.verifier
    store: CredentialStore = request.app.state.credentials

    credential = await verifier.extract_credential(request)
    if not credential:
        raise AuthError("Authentication required")

    user_id = await verifier.resolve(credential)

    principal = await store.get_principal(user_id)
    if principal is None:
        logger.warning(f"Credential references missing principal {user_id}")
        raise AuthError("Invalid or expired session")

    if not principal.active:
        raise ForbiddenError("Account is disabled")

    set_user(principal.id)
    return AuthContext(principal=principal)


def require_auth() -> Callable:
    """
    Require an authenticated, active principal.

    Usage:
        @app.get("/api/me")
        async def me(ctx: AuthContext = Depends(require_auth())):
            return ctx.principal.public()
    """

    async def dependency(request: Request) -> AuthContext:
        return await resolve_context(request)

    return dependency


def optional_auth() -> Callable:
    """Resolve the caller if possible; anonymous context otherwise."""

    async def dependency(request: Request) -> AuthContext:
        try:
            return await resolve_context(request)
        except (AuthError, ForbiddenError) as e:
            logger.debug(f"Optional auth fell back to anonymous: {e.message}")
            return AuthContext.anonymous()

    return dependency
