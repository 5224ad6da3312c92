# =============================================================================
# OAuth Integration (Google, GitHub)
# =============================================================================
#
# Setup (Google):
#   1. Go to https://console.cloud.google.com/apis/credentials
#   2. Create OAuth 2.0 Client ID (Web application)
#   3. Add authorized redirect URI: https://yourdomain.com/auth/callback/google
#   4. Set env vars:
#      - GOOGLE_CLIENT_ID=...
#      - GOOGLE_CLIENT_SECRET=...
#
# Setup (GitHub):
#   1. Go to https://github.com/settings/developers
#   2. Create an OAuth App
#   3. Authorization callback URL: https://yourdomain.com/auth/callback/github
#   4. Set env vars:
#      - GITHUB_CLIENT_ID=...
#      - GITHUB_CLIENT_SECRET=...
#
# OAUTH_REDIRECT_URL is the callback base; the provider name is appended.
#
# =============================================================================

from __future__ import annotations

import logging
import secrets
from typing import Any
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel

from clubhouse.config import Settings

logger = logging.getLogger(__name__)

STATE_BYTES = 32


# =============================================================================
# Models
# =============================================================================

class OAuthUserInfo(BaseModel):
    """User info retrieved from OAuth provider."""
    provider: str  # "google", "github"
    provider_user_id: str
    email: str
    name: str
    picture_url: str | None = None


class OAuthError(Exception):
    """OAuth flow error."""
    pass


# =============================================================================
# Base provider
# =============================================================================

class OAuthProvider:
    """Authorization-code flow shared by every provider."""

    name: str = ""
    AUTHORIZE_URL: str = ""
    TOKEN_URL: str = ""
    SCOPES: list[str] = []

    def __init__(
        self,
        settings: Settings,
        client_id: str,
        client_secret: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings
        self.client_id = client_id
        self.client_secret = client_secret
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    @property
    def redirect_uri(self) -> str:
        return f"{self.settings.oauth_redirect_url.rstrip('/')}/{self.name}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=self.settings.store_timeout_seconds,
        )

    def extra_authorize_params(self) -> dict[str, str]:
        return {}

    def get_authorize_url(self, state: str) -> str:
        """URL to send the user-agent to for sign-in."""
        if not self.is_configured:
            raise OAuthError(f"{self.name} OAuth not configured")

        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.SCOPES),
            "state": state,
            **self.extra_authorize_params(),
        }
        return f"{self.AUTHORIZE_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> str:
        """Exchange an authorization code for a provider access token."""
        if not self.is_configured:
            raise OAuthError(f"{self.name} OAuth not configured")
        if not code:
            raise OAuthError("Missing authorization code")

        async with self._client() as client:
            try:
                response = await client.post(
                    self.TOKEN_URL,
                    data={
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "code": code,
                        "redirect_uri": self.redirect_uri,
                        "grant_type": "authorization_code",
                    },
                    headers={"Accept": "application/json"},
                )
            except httpx.HTTPError as e:
                raise OAuthError(f"Token exchange failed: {e}")

        if response.status_code != 200:
            logger.error(f"{self.name} token exchange failed: {response.text}")
            raise OAuthError(f"Token exchange failed: {response.status_code}")

        token = response.json().get("access_token")
        if not token:
            raise OAuthError("Token exchange returned no access token")
        return token

    async def _get_json(self, client: httpx.AsyncClient, url: str, access_token: str) -> Any:
        try:
            response = await client.get(
                url,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                },
            )
        except httpx.HTTPError as e:
            raise OAuthError(f"Failed to get user info: {e}")

        if response.status_code != 200:
            logger.error(f"{self.name} userinfo failed: {response.text}")
            raise OAuthError(f"Failed to get user info: {response.status_code}")
        return response.json()

    async def get_user_info(self, access_token: str) -> OAuthUserInfo:
        raise NotImplementedError

    async def authenticate(self, code: str) -> OAuthUserInfo:
        """Complete OAuth flow: exchange code and get user info."""
        access_token = await self.exchange_code(code)
        return await self.get_user_info(access_token)


# =============================================================================
# Google OAuth
# =============================================================================

class GoogleOAuth(OAuthProvider):
    """Google OAuth 2.0 implementation."""

    name = "google"
    AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
    SCOPES = [
        "https://www.googleapis.com/auth/userinfo.email",
        "https://www.googleapis.com/auth/userinfo.profile",
    ]

    def extra_authorize_params(self) -> dict[str, str]:
        return {"access_type": "offline"}

    async def get_user_info(self, access_token: str) -> OAuthUserInfo:
        async with self._client() as client:
            data = await self._get_json(client, self.USERINFO_URL, access_token)

        email = data.get("email")
        if not email:
            raise OAuthError("Google account has no email address")

        return OAuthUserInfo(
            provider=self.name,
            provider_user_id=str(data["id"]),
            email=email,
            name=data.get("name") or email.split("@")[0],
            picture_url=data.get("picture"),
        )


# =============================================================================
# GitHub OAuth
# =============================================================================

class GitHubOAuth(OAuthProvider):
    """GitHub OAuth implementation."""

    name = "github"
    AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
    TOKEN_URL = "https://github.com/login/oauth/access_token"
    USER_URL = "https://api.github.com/user"
    EMAILS_URL = "https://api.github.com/user/emails"
    SCOPES = ["user:email"]

    async def get_user_info(self, access_token: str) -> OAuthUserInfo:
        async with self._client() as client:
            data = await self._get_json(client, self.USER_URL, access_token)

            # Users with a private email need the emails endpoint
            email = data.get("email")
            if not email:
                emails = await self._get_json(client, self.EMAILS_URL, access_token)
                email = _primary_email(emails)

        if not email:
            raise OAuthError("GitHub account has no email address")

        return OAuthUserInfo(
            provider=self.name,
            provider_user_id=str(data["id"]),
            email=email,
            name=data.get("name") or data.get("login") or email.split("@")[0],
            picture_url=data.get("avatar_url"),
        )


def _primary_email(emails: list[dict[str, Any]]) -> str | None:
    for entry in emails or []:
        if entry.get("primary"):
            return entry.get("email")
    return None


# =============================================================================
# OAuth Manager
# =============================================================================

class OAuthManager:
    """Manage all OAuth providers."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.providers: dict[str, OAuthProvider] = {
            "google": GoogleOAuth(
                settings,
                settings.google_client_id,
                settings.google_client_secret,
                transport,
            ),
            "github": GitHubOAuth(
                settings,
                settings.github_client_id,
                settings.github_client_secret,
                transport,
            ),
        }

    def get_available_providers(self) -> list[str]:
        """Get list of configured OAuth providers."""
        return [name for name, provider in self.providers.items() if provider.is_configured]

    def get_provider(self, provider: str) -> OAuthProvider:
        try:
            return self.providers[provider]
        except KeyError:
            raise OAuthError(f"Unknown provider: {provider}")

    @staticmethod
    def create_state() -> str:
        """Random state token for CSRF protection (carried in a cookie)."""
        return secrets.token_urlsafe(STATE_BYTES)

    def get_authorize_url(self, provider: str, state: str) -> str:
        return self.get_provider(provider).get_authorize_url(state)

    async def authenticate(self, provider: str, code: str) -> OAuthUserInfo:
        """Complete authentication for a provider."""
        return await self.get_provider(provider).authenticate(code)
