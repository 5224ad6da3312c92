"""Tests for local registration, login, refresh and password change."""

from datetime import timedelta

import pytest

from clubhouse.auth.passwords import hash_password, verify_password
from clubhouse.core.models import Role
from clubhouse.errors import AuthError, ConflictError, ForbiddenError, ValidationError
from clubhouse.storage import Collections

PASSWORD = "correct-horse-battery"


# =============================================================================
# Password hashing
# =============================================================================


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = hash_password("s3cret-pass", iterations=1000)

        assert hashed.startswith("pbkdf2_sha256$1000$")
        assert verify_password("s3cret-pass", hashed)
        assert not verify_password("wrong-pass", hashed)

    def test_salted(self):
        assert hash_password("same", iterations=1000) != hash_password("same", iterations=1000)

    def test_garbage_hash_rejected(self):
        assert not verify_password("anything", "not-a-hash")
        assert not verify_password("anything", None)
        assert not verify_password("anything", "md5$1$salt$abc")


# =============================================================================
# Register
# =============================================================================


class TestRegister:
    @pytest.mark.asyncio
    async def test_register_then_login(self, auth_service):
        principal, issued = await auth_service.register("Ann@Example.com", PASSWORD, "Ann Lee")

        assert principal.email == "ann@example.com"
        assert principal.first_name == "Ann"
        assert principal.last_name == "Lee"
        assert principal.provider == "local"
        assert principal.role == Role.CLASSES.value
        assert principal.active
        assert issued.access_token and issued.refresh_token
        assert "password_hash" not in principal.public()

        logged_in, _ = await auth_service.login("ann@example.com", PASSWORD)
        assert logged_in.id == principal.id
        assert "password_hash" not in logged_in.public()

    @pytest.mark.asyncio
    async def test_duplicate_email_conflicts(self, auth_service):
        await auth_service.register("dup@example.com", PASSWORD, "First")

        with pytest.raises(ConflictError):
            await auth_service.register("DUP@example.com", PASSWORD, "Second")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "email,password",
        [
            ("", PASSWORD),
            ("no-at-sign.example.com", PASSWORD),
            ("@", PASSWORD),
            ("user@", PASSWORD),
            ("short@example.com", "abc"),
            ("empty@example.com", ""),
        ],
    )
    async def test_invalid_input(self, auth_service, email, password):
        with pytest.raises(ValidationError):
            await auth_service.register(email, password, "Someone")

    @pytest.mark.asyncio
    async def test_default_role_from_settings(self, settings_factory, credentials):
        from clubhouse.auth import LocalAuthService, create_verifier

        settings = settings_factory(registration_default_role="office")
        service = LocalAuthService(settings, credentials, create_verifier(settings, credentials))

        principal, _ = await service.register("office@example.com", PASSWORD, "Olga")
        assert principal.role == "office"


# =============================================================================
# Login
# =============================================================================


class TestLogin:
    @pytest.mark.asyncio
    async def test_wrong_password_and_unknown_email_look_identical(self, auth_service):
        await auth_service.register("bob@example.com", PASSWORD, "Bob")

        with pytest.raises(AuthError) as wrong_password:
            await auth_service.login("bob@example.com", "not-the-password")
        with pytest.raises(AuthError) as unknown_email:
            await auth_service.login("nobody@example.com", PASSWORD)

        assert wrong_password.value.message == unknown_email.value.message
        assert wrong_password.value.status_code == unknown_email.value.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_email_still_verifies_a_hash(self, auth_service, monkeypatch):
        from clubhouse.auth import service as service_module

        checked = []

        def counting_verify(password, password_hash):
            checked.append(password_hash)
            return verify_password(password, password_hash)

        monkeypatch.setattr(service_module, "verify_password", counting_verify)

        with pytest.raises(AuthError):
            await auth_service.login("nobody@example.com", PASSWORD)

        assert checked == [auth_service._dummy_hash]

    @pytest.mark.asyncio
    async def test_inactive_account_forbidden(self, auth_service, credentials):
        principal, _ = await auth_service.register("off@example.com", PASSWORD, "Off")
        await credentials.update_principal(principal.id, {"active": False})

        with pytest.raises(ForbiddenError):
            await auth_service.login("off@example.com", PASSWORD)

    @pytest.mark.asyncio
    async def test_login_keeps_existing_sessions(self, auth_service, credentials):
        _, first = await auth_service.register("multi@example.com", PASSWORD, "Multi")
        _, second = await auth_service.login("multi@example.com", PASSWORD)

        assert first.access_token != second.access_token
        assert await credentials.resolve_session(first.access_token) is not None
        assert await credentials.resolve_session(second.access_token) is not None

    @pytest.mark.asyncio
    async def test_login_touches_updated_at(self, auth_service):
        principal, _ = await auth_service.register("touch@example.com", PASSWORD, "Touch")
        logged_in, _ = await auth_service.login("touch@example.com", PASSWORD)

        assert logged_in.updated_at >= principal.updated_at


# =============================================================================
# Refresh
# =============================================================================


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_mints_new_access_token(self, auth_service, credentials):
        principal, issued = await auth_service.register("r@example.com", PASSWORD, "R")

        refreshed_for, access_token = await auth_service.refresh(issued.refresh_token)

        assert refreshed_for.id == principal.id
        assert access_token != issued.access_token
        session = await credentials.resolve_session(access_token)
        assert session.user_id == principal.id

    @pytest.mark.asyncio
    async def test_refresh_token_is_reusable_and_not_extended(self, auth_service, credentials):
        _, issued = await auth_service.register("reuse@example.com", PASSWORD, "Re")
        before = await credentials.resolve_refresh_token(issued.refresh_token)

        await auth_service.refresh(issued.refresh_token)
        await auth_service.refresh(issued.refresh_token)

        after = await credentials.resolve_refresh_token(issued.refresh_token)
        assert after.expires_at == before.expires_at

    @pytest.mark.asyncio
    async def test_missing_or_unknown_refresh_token(self, auth_service):
        with pytest.raises(AuthError):
            await auth_service.refresh(None)
        with pytest.raises(AuthError):
            await auth_service.refresh("not-a-token")

    @pytest.mark.asyncio
    async def test_expired_refresh_token_is_purged(self, auth_service, storage):
        _, issued = await auth_service.register("exp@example.com", PASSWORD, "Exp")
        row = await storage.metadata.find_one(
            Collections.REFRESH_TOKENS, {"token": issued.refresh_token}
        )
        await storage.metadata.update(
            Collections.REFRESH_TOKENS,
            row["id"],
            {"expires_at": row["expires_at"] - timedelta(days=30)},
        )

        with pytest.raises(AuthError):
            await auth_service.refresh(issued.refresh_token)
        assert await storage.metadata.get(Collections.REFRESH_TOKENS, row["id"]) is None


# =============================================================================
# Change password
# =============================================================================


class TestChangePassword:
    @pytest.mark.asyncio
    async def test_change_password(self, auth_service, credentials):
        principal, _ = await auth_service.register("cp@example.com", PASSWORD, "Cp")

        await auth_service.change_password(principal, PASSWORD, "brand-new-password")

        with pytest.raises(AuthError):
            await auth_service.login("cp@example.com", PASSWORD)
        logged_in, _ = await auth_service.login("cp@example.com", "brand-new-password")
        assert logged_in.id == principal.id

    @pytest.mark.asyncio
    async def test_wrong_current_password(self, auth_service):
        principal, _ = await auth_service.register("cp2@example.com", PASSWORD, "Cp")

        with pytest.raises(AuthError):
            await auth_service.change_password(principal, "nope-nope-nope", "brand-new-password")

    @pytest.mark.asyncio
    async def test_validation(self, auth_service):
        principal, _ = await auth_service.register("cp3@example.com", PASSWORD, "Cp")

        with pytest.raises(ValidationError):
            await auth_service.change_password(principal, "", "brand-new-password")
        with pytest.raises(ValidationError):
            await auth_service.change_password(principal, PASSWORD, "short")
