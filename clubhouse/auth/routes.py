# =============================================================================
# Auth API Routes
# =============================================================================
#
# Endpoints:
#   POST /auth/register     - Create account
#   POST /auth/login        - Get tokens
#   POST /auth/refresh      - New access token from the refresh token
#   POST /auth/logout       - Revoke tokens and clear cookies
#   GET  /auth/session      - Who am I (never fails)
#
# OAuth:
#   GET  /auth/providers            - List configured OAuth providers
#   GET  /auth/{provider}           - Redirect to the provider (sets state cookie)
#   GET  /auth/callback/{provider}  - Complete OAuth flow, redirect to landing
#
# Tokens travel as httpOnly cookies in session mode. In JWT mode the
# response body carries them and only the refresh token is a cookie.
#
# =============================================================================

from __future__ import annotations

import logging
import secrets

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, EmailStr

from clubhouse.auth.context import AuthContext
from clubhouse.auth.policies import optional_auth
from clubhouse.auth.service import LocalAuthService
from clubhouse.auth.tokens import IssuedCredentials
from clubhouse.config import Settings
from clubhouse.errors import AuthError, InternalError, NotFoundError, ValidationError
from clubhouse.integrations.oauth import OAuthError, OAuthManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# =============================================================================
# Request Models
# =============================================================================

class RegisterRequest(BaseModel):
    email: EmailStr | None = None
    password: str = ""
    name: str = ""


class LoginRequest(BaseModel):
    email: EmailStr | None = None
    password: str = ""


class RefreshRequest(BaseModel):
    refresh_token: str | None = None


# =============================================================================
# Dependencies
# =============================================================================

def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_auth_service(request: Request) -> LocalAuthService:
    return request.app.state.auth_service


def get_oauth(request: Request) -> OAuthManager:
    return request.app.state.oauth


# =============================================================================
# Cookies
# =============================================================================

def _set_cookie(response: Response, settings: Settings, key: str, value: str, max_age: int) -> None:
    response.set_cookie(
        key=key,
        value=value,
        max_age=max_age,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
    )


def _clear_cookie(response: Response, settings: Settings, key: str) -> None:
    response.delete_cookie(
        key=key,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
    )


def deliver_credentials(
    response: Response,
    settings: Settings,
    service: LocalAuthService,
    credentials: IssuedCredentials,
) -> dict:
    """Attach credentials to the response; returns the extra body fields."""
    _set_cookie(
        response,
        settings,
        settings.refresh_cookie_name,
        credentials.refresh_token,
        credentials.refresh_max_age,
    )
    if service.verifier.uses_cookie:
        _set_cookie(
            response,
            settings,
            settings.access_cookie_name,
            credentials.access_token,
            credentials.access_max_age,
        )
        return {}
    return credentials.as_body()


# =============================================================================
# Local accounts
# =============================================================================

@router.post("/register", status_code=201)
async def register(
    data: RegisterRequest,
    response: Response,
    settings: Settings = Depends(get_settings_dep),
    service: LocalAuthService = Depends(get_auth_service),
):
    """Create a local account and sign it in."""
    principal, credentials = await service.register(data.email, data.password, data.name)
    body = {"user": principal.public(), "message": "User registered successfully"}
    body.update(deliver_credentials(response, settings, service, credentials))
    return body


@router.post("/login")
async def login(
    data: LoginRequest,
    response: Response,
    settings: Settings = Depends(get_settings_dep),
    service: LocalAuthService = Depends(get_auth_service),
):
    """Authenticate with email and password."""
    principal, credentials = await service.login(data.email, data.password)
    body = {"user": principal.public(), "message": "Login successful"}
    body.update(deliver_credentials(response, settings, service, credentials))
    return body


@router.post("/refresh")
async def refresh(
    request: Request,
    response: Response,
    data: RefreshRequest | None = None,
    settings: Settings = Depends(get_settings_dep),
    service: LocalAuthService = Depends(get_auth_service),
):
    """
    Use the refresh token to get a new access token.

    The refresh token is read from its cookie, falling back to the body.
    """
    token = request.cookies.get(settings.refresh_cookie_name)
    if not token and data is not None:
        token = data.refresh_token

    _, access_token = await service.refresh(token)

    body = {"message": "Token refreshed successfully"}
    if service.verifier.uses_cookie:
        _set_cookie(
            response,
            settings,
            settings.access_cookie_name,
            access_token,
            service.policy.access_ttl_seconds,
        )
    else:
        body.update({
            "access_token": access_token,
            "token_type": "bearer",
            "expires_in": service.policy.access_ttl_seconds,
        })
    return body


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    settings: Settings = Depends(get_settings_dep),
    service: LocalAuthService = Depends(get_auth_service),
):
    """Revoke the presented tokens and clear cookies."""
    try:
        access_token = await service.verifier.extract_credential(request)
    except AuthError:
        access_token = None

    await service.logout(access_token, request.cookies.get(settings.refresh_cookie_name))

    _clear_cookie(response, settings, settings.access_cookie_name)
    _clear_cookie(response, settings, settings.refresh_cookie_name)
    return {"message": "Logged out successfully"}


@router.get("/session")
async def session(ctx: AuthContext = Depends(optional_auth())):
    """Report whether the caller is signed in."""
    if ctx.is_anonymous:
        return {"authenticated": False, "user": None}
    return {"authenticated": True, "user": ctx.principal.public()}


# =============================================================================
# OAuth Endpoints
# =============================================================================

@router.get("/providers")
async def list_oauth_providers(oauth: OAuthManager = Depends(get_oauth)):
    """
    List available OAuth providers.

    Only returns providers that are properly configured.
    """
    return {"providers": oauth.get_available_providers()}


@router.get("/callback/{provider}")
async def oauth_callback(
    provider: str,
    request: Request,
    state: str = "",
    code: str = "",
    settings: Settings = Depends(get_settings_dep),
    service: LocalAuthService = Depends(get_auth_service),
    oauth: OAuthManager = Depends(get_oauth),
):
    """
    Complete the OAuth flow.

    The state query parameter must match the state cookie set when the
    flow started.
    """
    if provider not in oauth.providers:
        raise NotFoundError(f"Unknown provider: {provider}")

    expected = request.cookies.get(settings.oauth_state_cookie_name)
    if not expected or not state or not secrets.compare_digest(expected, state):
        raise ValidationError("Invalid state")

    try:
        profile = await oauth.authenticate(provider, code)
    except OAuthError as e:
        logger.error(f"{provider} OAuth exchange failed: {e}")
        raise InternalError("Failed to complete OAuth sign-in")

    principal = await service.upsert_oauth_principal(profile)
    credentials = await service.issue_credentials(principal)

    response = RedirectResponse(url=settings.post_login_redirect, status_code=307)
    _clear_cookie(response, settings, settings.oauth_state_cookie_name)
    deliver_credentials(response, settings, service, credentials)
    logger.info(f"{provider} sign-in for {principal.id}")
    return response


@router.get("/{provider}")
async def oauth_authorize(
    provider: str,
    settings: Settings = Depends(get_settings_dep),
    oauth: OAuthManager = Depends(get_oauth),
):
    """Start the OAuth flow: set the state cookie and redirect to the provider."""
    if provider not in oauth.providers:
        raise NotFoundError(f"Unknown provider: {provider}")

    state = oauth.create_state()
    try:
        url = oauth.get_authorize_url(provider, state)
    except OAuthError as e:
        logger.error(f"Cannot start {provider} OAuth: {e}")
        raise InternalError(str(e))

    response = RedirectResponse(url=url, status_code=307)
    _set_cookie(
        response,
        settings,
        settings.oauth_state_cookie_name,
        state,
        settings.oauth_state_ttl_seconds,
    )
    return response
