"""
Local Auth Service.

Registration, login, refresh and password change for email/password
accounts, plus the account upsert used by the OAuth callback. Token
delivery (cookies vs body) is left to the routes; this layer only mints.
"""

from __future__ import annotations

import logging

from clubhouse.auth.credentials import CredentialStore
from clubhouse.auth.passwords import hash_password, verify_password
from clubhouse.auth.tokens import IssuedCredentials, TokenPolicy, issue_token
from clubhouse.auth.verifiers import TokenVerifier
from clubhouse.config import Settings
from clubhouse.core.models import AuthProvider, Principal
from clubhouse.core.utils import is_valid_email, normalize_email, split_full_name
from clubhouse.errors import AuthError, ConflictError, ForbiddenError, ValidationError
from clubhouse.integrations.oauth import OAuthUserInfo

logger = logging.getLogger(__name__)

# Same message for unknown email and wrong password
INVALID_CREDENTIALS = "Invalid email or password"


class LocalAuthService:
    """Email/password authentication over the credential store."""

    def __init__(self, settings: Settings, store: CredentialStore, verifier: TokenVerifier):
        self.settings = settings
        self.store = store
        self.verifier = verifier
        self.policy = TokenPolicy.from_settings(settings)
        # Checked against when no account matches, so misses cost one full hash
        self._dummy_hash = hash_password(issue_token(), settings.password_hash_iterations)

    # =========================================================================
    # Credentials
    # =========================================================================

    async def issue_credentials(self, principal: Principal) -> IssuedCredentials:
        """Mint an access token and a refresh token for the principal."""
        access_token = await self.verifier.issue_access_token(principal)
        refresh = await self.store.create_refresh_token(principal.id, self.policy.refresh_ttl)
        return IssuedCredentials(
            access_token=access_token,
            refresh_token=refresh.token,
            access_max_age=self.policy.access_ttl_seconds,
            refresh_max_age=self.policy.refresh_ttl_seconds,
        )

    # =========================================================================
    # Register / Login
    # =========================================================================

    async def register(
        self,
        email: str,
        password: str,
        name: str = "",
    ) -> tuple[Principal, IssuedCredentials]:
        """
        Create a local account and sign it in.

        Raises:
            ValidationError: email missing or malformed, password too short
            ConflictError: email already registered
        """
        email = normalize_email(email or "")
        if not email:
            raise ValidationError("Email is required")
        if not is_valid_email(email):
            raise ValidationError("Invalid email format")
        self._check_password(password)

        first_name, last_name = split_full_name(name or "")
        principal = Principal(
            email=email,
            first_name=first_name,
            last_name=last_name,
            password_hash=hash_password(password, self.settings.password_hash_iterations),
            provider=AuthProvider.LOCAL,
            role=self.settings.registration_default_role,
            active=True,
        )
        principal = await self.store.create_principal(principal)
        logger.info(f"Registered local account {principal.id}")

        return principal, await self.issue_credentials(principal)

    async def login(self, email: str, password: str) -> tuple[Principal, IssuedCredentials]:
        """
        Verify credentials and issue a fresh token pair.

        Existing sessions stay valid; a principal may be signed in on
        several devices at once.
        """
        if not email or not password:
            raise ValidationError("Email and password are required")

        principal = await self.store.find_principal_by_email(email)
        password_hash = principal.password_hash if principal and principal.password_hash else None
        matched = verify_password(password, password_hash or self._dummy_hash)
        if principal is None or password_hash is None or not matched:
            logger.warning("Rejected login attempt")
            raise AuthError(INVALID_CREDENTIALS)

        if not principal.active:
            logger.warning(f"Login refused for disabled account {principal.id}")
            raise ForbiddenError("Account is disabled")

        principal = await self.store.update_principal(principal.id, {}) or principal
        logger.info(f"Login for {principal.id}")
        return principal, await self.issue_credentials(principal)

    # =========================================================================
    # Refresh / Logout
    # =========================================================================

    async def refresh(self, refresh_token: str | None) -> tuple[Principal, str]:
        """
        Mint a new access token from a refresh token.

        The refresh token is neither rotated nor extended; its expiry stays
        absolute from issuance.
        """
        if not refresh_token:
            raise AuthError("Refresh token required")

        stored = await self.store.resolve_refresh_token(refresh_token)
        if stored is None:
            raise AuthError("Invalid or expired refresh token")

        principal = await self.store.get_principal(stored.user_id)
        if principal is None:
            raise AuthError("Invalid or expired refresh token")
        if not principal.active:
            raise ForbiddenError("Account is disabled")

        return principal, await self.verifier.issue_access_token(principal)

    async def logout(self, access_token: str | None, refresh_token: str | None) -> None:
        """Revoke whichever credentials the caller presented."""
        if access_token:
            await self.verifier.revoke(access_token)
        if refresh_token:
            await self.store.revoke_refresh_token(refresh_token)
        logger.info("Logged out")

    # =========================================================================
    # Password change
    # =========================================================================

    async def change_password(
        self,
        principal: Principal,
        current_password: str,
        new_password: str,
    ) -> None:
        """
        Replace the password of an authenticated principal.

        Raises:
            ValidationError: a field is empty or the new password is too short
            AuthError: current password does not match
        """
        if not current_password or not new_password:
            raise ValidationError("Current and new password are required")
        self._check_password(new_password)

        if not verify_password(current_password, principal.password_hash):
            raise AuthError("Current password is incorrect")

        await self.store.update_principal(
            principal.id,
            {"password_hash": hash_password(new_password, self.settings.password_hash_iterations)},
        )
        logger.info(f"Password changed for {principal.id}")

    # =========================================================================
    # OAuth accounts
    # =========================================================================

    async def upsert_oauth_principal(self, profile: OAuthUserInfo) -> Principal:
        """
        Find or create the account for an external identity.

        Accounts are keyed by (provider, provider_id). Known accounts get
        their email, name and avatar refreshed from the provider profile.
        """
        first_name, last_name = split_full_name(profile.name or "")
        existing = await self.store.find_principal_by_provider(
            profile.provider, profile.provider_user_id
        )

        if existing is not None:
            if not existing.active:
                raise ForbiddenError("Account is disabled")
            updates = {
                "email": profile.email,
                "first_name": first_name,
                "last_name": last_name,
                "picture": profile.picture_url,
            }
            updated = await self.store.update_principal(existing.id, updates)
            return updated or existing

        principal = Principal(
            email=profile.email,
            first_name=first_name,
            last_name=last_name,
            picture=profile.picture_url,
            provider=profile.provider,
            provider_id=profile.provider_user_id,
            role=self.settings.registration_default_role,
            active=True,
        )
        try:
            principal = await self.store.create_principal(principal)
        except ConflictError:
            logger.warning(
                f"{profile.provider} login for {profile.email} collides with an existing account"
            )
            raise
        logger.info(f"Created {profile.provider} account {principal.id}")
        return principal

    # =========================================================================
    # Internal
    # =========================================================================

    def _check_password(self, password: str | None) -> None:
        minimum = self.settings.min_password_length
        if not password or len(password) < minimum:
            raise ValidationError(f"Password must be at least {minimum} characters")
