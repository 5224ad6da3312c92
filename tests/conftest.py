"""Shared fixtures."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from clubhouse.api.app import create_app
from clubhouse.auth import CredentialStore, LocalAuthService, create_verifier
from clubhouse.config import Settings
from clubhouse.core.models import AuthMode
from clubhouse.storage import create_local_storage


def make_settings(**overrides) -> Settings:
    """Settings isolated from the environment, with a cheap hash cost."""
    values = {
        "password_hash_iterations": 1000,
        "jwt_secret_key": "test-secret",
        "google_client_id": "google-id",
        "google_client_secret": "google-secret",
        "github_client_id": "github-id",
        "github_client_secret": "github-secret",
        "sentry_dsn": "",
        "database_url": "",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def jwt_settings():
    return make_settings(auth_mode=AuthMode.JWT)


@pytest.fixture
def storage():
    """In-memory store with unique fields registered."""
    provider = create_local_storage()
    asyncio.run(provider.connect())
    return provider


@pytest.fixture
def credentials(storage):
    return CredentialStore(storage.metadata)


@pytest.fixture
def auth_service(settings, credentials):
    return LocalAuthService(settings, credentials, create_verifier(settings, credentials))


@pytest.fixture
def jwt_auth_service(jwt_settings, credentials):
    return LocalAuthService(jwt_settings, credentials, create_verifier(jwt_settings, credentials))


@pytest.fixture
def client(settings, storage):
    """Session-mode API client (cookies)."""
    app = create_app(settings=settings, storage=storage)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def jwt_client(jwt_settings, storage):
    """JWT-mode API client (bearer header)."""
    app = create_app(settings=jwt_settings, storage=storage)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def settings_factory():
    """Build Settings with overrides."""
    return make_settings
