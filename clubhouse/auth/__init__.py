"""
Authentication and authorization.

Design principles:
1. One TokenVerifier strategy per deployment (session cookie or JWT bearer)
2. A single dependency for route authentication
3. Role rules checked in handlers, not in the gatekeeper
"""

from clubhouse.auth.context import AuthContext
from clubhouse.auth.credentials import CredentialStore
from clubhouse.auth.passwords import hash_password, verify_password
from clubhouse.auth.policies import optional_auth, require_auth, resolve_context
from clubhouse.auth.roles import (
    PRIVILEGED_ROLES,
    authorize_user_create,
    authorize_user_update,
    validate_role,
)
from clubhouse.auth.service import LocalAuthService
from clubhouse.auth.tokens import IssuedCredentials, TokenPolicy, issue_token
from clubhouse.auth.verifiers import (
    JWTTokenVerifier,
    SessionTokenVerifier,
    TokenVerifier,
    create_verifier,
)

__all__ = [
    # Gatekeeper
    "require_auth",
    "optional_auth",
    "resolve_context",
    "AuthContext",
    # Authorization
    "PRIVILEGED_ROLES",
    "authorize_user_create",
    "authorize_user_update",
    "validate_role",
    # Credentials
    "CredentialStore",
    "LocalAuthService",
    "IssuedCredentials",
    "TokenPolicy",
    "issue_token",
    "hash_password",
    "verify_password",
    # Verifiers
    "TokenVerifier",
    "SessionTokenVerifier",
    "JWTTokenVerifier",
    "create_verifier",
]
