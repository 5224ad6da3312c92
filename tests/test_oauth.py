"""Tests for the OAuth bridge against a mocked provider."""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from fastapi.testclient import TestClient

from clubhouse.api.app import create_app
from clubhouse.integrations.oauth import OAuthError, OAuthManager


class FakeProvider:
    """Serves the Google and GitHub endpoints the bridge talks to."""

    def __init__(self, github_email="octo@example.com", token_status=200):
        self.github_email = github_email
        self.token_status = token_status
        self.google_profile = {
            "id": "g-123",
            "email": "gina@example.com",
            "name": "Gina Google",
            "picture": "https://img.example.com/g.png",
        }
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.calls.append(url)

        if url.startswith("https://oauth2.googleapis.com/token"):
            if self.token_status != 200:
                return httpx.Response(self.token_status, text="bad code")
            return httpx.Response(200, json={"access_token": "google-access"})
        if url.startswith("https://www.googleapis.com/oauth2/v2/userinfo"):
            return httpx.Response(200, json=self.google_profile)

        if url.startswith("https://github.com/login/oauth/access_token"):
            return httpx.Response(200, json={"access_token": "github-access"})
        if url == "https://api.github.com/user":
            return httpx.Response(200, json={
                "id": 42,
                "login": "octocat",
                "name": None,
                "email": self.github_email,
                "avatar_url": "https://img.example.com/o.png",
            })
        if url == "https://api.github.com/user/emails":
            return httpx.Response(200, json=[
                {"email": "secondary@example.com", "primary": False},
                {"email": "primary@example.com", "primary": True},
            ])

        return httpx.Response(404)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def oauth(settings, provider):
    return OAuthManager(settings, transport=httpx.MockTransport(provider))


@pytest.fixture
def oauth_client(settings, storage, oauth):
    app = create_app(settings=settings, storage=storage, oauth=oauth)
    with TestClient(app, follow_redirects=False) as client:
        yield client


def _start(client, provider_name):
    response = client.get(f"/auth/{provider_name}")
    assert response.status_code == 307
    return parse_qs(urlparse(response.headers["location"]).query)["state"][0]


# =============================================================================
# OAuthManager
# =============================================================================


class TestOAuthManager:
    def test_available_providers(self, oauth):
        assert oauth.get_available_providers() == ["google", "github"]

    def test_unconfigured_provider_hidden(self, settings_factory):
        manager = OAuthManager(settings_factory(github_client_id="", github_client_secret=""))
        assert manager.get_available_providers() == ["google"]

    def test_google_authorize_url(self, oauth):
        url = urlparse(oauth.get_authorize_url("google", "state-1"))
        params = parse_qs(url.query)

        assert url.netloc == "accounts.google.com"
        assert params["state"] == ["state-1"]
        assert params["redirect_uri"] == ["http://localhost:8000/auth/callback/google"]
        assert params["access_type"] == ["offline"]
        assert "https://www.googleapis.com/auth/userinfo.email" in params["scope"][0]

    def test_unknown_provider(self, oauth):
        with pytest.raises(OAuthError):
            oauth.get_authorize_url("myspace", "s")

    def test_states_are_random(self):
        assert OAuthManager.create_state() != OAuthManager.create_state()

    @pytest.mark.asyncio
    async def test_google_profile(self, oauth):
        profile = await oauth.authenticate("google", "code-1")

        assert profile.provider == "google"
        assert profile.provider_user_id == "g-123"
        assert profile.email == "gina@example.com"
        assert profile.picture_url == "https://img.example.com/g.png"

    @pytest.mark.asyncio
    async def test_github_public_email(self, oauth):
        profile = await oauth.authenticate("github", "code-1")

        assert profile.provider_user_id == "42"
        assert profile.email == "octo@example.com"
        assert profile.name == "octocat"

    @pytest.mark.asyncio
    async def test_github_private_email_uses_primary(self, settings):
        provider = FakeProvider(github_email=None)
        manager = OAuthManager(settings, transport=httpx.MockTransport(provider))

        profile = await manager.authenticate("github", "code-1")

        assert profile.email == "primary@example.com"
        assert "https://api.github.com/user/emails" in provider.calls

    @pytest.mark.asyncio
    async def test_failed_exchange(self, settings):
        provider = FakeProvider(token_status=400)
        manager = OAuthManager(settings, transport=httpx.MockTransport(provider))

        with pytest.raises(OAuthError):
            await manager.authenticate("google", "bad-code")


# =============================================================================
# HTTP flow
# =============================================================================


class TestOAuthFlow:
    def test_authorize_sets_state_cookie(self, oauth_client, settings):
        response = oauth_client.get("/auth/google")

        assert response.status_code == 307
        assert response.headers["location"].startswith("https://accounts.google.com/")
        set_cookie = response.headers["set-cookie"]
        assert f"{settings.oauth_state_cookie_name}=" in set_cookie
        assert "HttpOnly" in set_cookie
        assert "Max-Age=300" in set_cookie

    def test_unknown_provider_404(self, oauth_client):
        assert oauth_client.get("/auth/myspace").status_code == 404

    def test_callback_creates_account_and_signs_in(self, oauth_client, settings):
        state = _start(oauth_client, "google")

        response = oauth_client.get(f"/auth/callback/google?state={state}&code=abc")

        assert response.status_code == 307
        assert response.headers["location"] == settings.post_login_redirect
        me = oauth_client.get("/api/me").json()
        assert me["email"] == "gina@example.com"
        assert me["provider"] == "google"
        assert me["provider_id"] == "g-123"
        assert me["first_name"] == "Gina"
        assert me["last_name"] == "Google"

    def test_second_login_refreshes_profile(self, oauth_client, provider):
        state = _start(oauth_client, "google")
        oauth_client.get(f"/auth/callback/google?state={state}&code=abc")
        first = oauth_client.get("/api/me").json()

        provider.google_profile = {**provider.google_profile, "name": "Gina Renamed"}
        state = _start(oauth_client, "google")
        oauth_client.get(f"/auth/callback/google?state={state}&code=abc")
        second = oauth_client.get("/api/me").json()

        assert second["id"] == first["id"]
        assert second["last_name"] == "Renamed"

    def test_state_mismatch(self, oauth_client):
        _start(oauth_client, "google")

        response = oauth_client.get("/auth/callback/google?state=forged&code=abc")

        assert response.status_code == 400
        assert response.json() == {"detail": "Invalid state"}

    def test_missing_state_cookie(self, oauth_client):
        response = oauth_client.get("/auth/callback/google?state=anything&code=abc")

        assert response.status_code == 400

    def test_exchange_failure_is_500(self, settings, storage):
        oauth = OAuthManager(settings, transport=httpx.MockTransport(FakeProvider(token_status=401)))
        app = create_app(settings=settings, storage=storage, oauth=oauth)

        with TestClient(app, follow_redirects=False) as client:
            state = _start(client, "google")
            response = client.get(f"/auth/callback/google?state={state}&code=abc")

        assert response.status_code == 500

    def test_providers_endpoint(self, oauth_client):
        assert oauth_client.get("/auth/providers").json() == {"providers": ["google", "github"]}
