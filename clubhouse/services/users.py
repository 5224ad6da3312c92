"""
Staff user administration.

CRUD over principals on behalf of an authenticated actor, with the
role rules from clubhouse.auth.roles applied before any write.
"""

from __future__ import annotations

import logging
from typing import Any

from clubhouse.auth.credentials import CredentialStore
from clubhouse.auth.passwords import hash_password
from clubhouse.auth.roles import authorize_user_create, authorize_user_update, validate_role
from clubhouse.config import Settings
from clubhouse.core.models import AuthProvider, Principal
from clubhouse.core.utils import is_valid_email, normalize_email
from clubhouse.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class UserService:
    """User management with the club-manager escalation guards."""

    def __init__(self, settings: Settings, store: CredentialStore):
        self.settings = settings
        self.store = store

    async def list_users(
        self,
        role: str | None = None,
        club_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Principal]:
        filters: dict[str, Any] = {}
        if role:
            filters["role"] = validate_role(role).value
        if club_id:
            filters["assigned_club_ids"] = club_id
        return await self.store.list_principals(filters, limit=limit, offset=offset)

    async def get_user(self, user_id: str) -> Principal:
        principal = await self.store.get_principal(user_id)
        if principal is None:
            raise NotFoundError("User not found")
        return principal

    async def create_user(self, actor: Principal, data: dict[str, Any]) -> Principal:
        """
        Create a local staff account.

        Raises:
            ValidationError: missing field, bad role or short password
            ForbiddenError: actor may not grant that role
            ConflictError: email already registered
        """
        required = ("email", "first_name", "last_name", "password", "role")
        if any(not data.get(key) for key in required):
            raise ValidationError("Email, first name, last name, password, and role are required")

        email = normalize_email(data["email"])
        if not is_valid_email(email):
            raise ValidationError("Invalid email format")

        role = validate_role(data["role"])
        authorize_user_create(actor, role)
        self._check_password(data["password"])

        principal = Principal(
            email=email,
            first_name=data["first_name"].strip(),
            last_name=data["last_name"].strip(),
            password_hash=hash_password(data["password"], self.settings.password_hash_iterations),
            provider=AuthProvider.LOCAL,
            role=role,
            assigned_club_ids=list(data.get("assigned_club_ids") or []),
            active=bool(data.get("active", True)),
        )
        principal = await self.store.create_principal(principal)
        logger.info(f"{actor.id} created user {principal.id} with role {principal.role}")
        return principal

    async def update_user(self, actor: Principal, user_id: str, data: dict[str, Any]) -> Principal:
        """Partial update; empty values leave the field unchanged."""
        target = await self.get_user(user_id)

        new_role = None
        if data.get("role"):
            new_role = validate_role(data["role"])
        authorize_user_update(actor, target, new_role)

        updates: dict[str, Any] = {}
        for key in ("first_name", "last_name"):
            if data.get(key):
                updates[key] = data[key].strip()
        if new_role is not None:
            updates["role"] = new_role.value
        if data.get("assigned_club_ids") is not None:
            updates["assigned_club_ids"] = list(data["assigned_club_ids"])
        if data.get("active") is not None:
            updates["active"] = bool(data["active"])
        if data.get("password"):
            self._check_password(data["password"])
            updates["password_hash"] = hash_password(
                data["password"], self.settings.password_hash_iterations
            )

        principal = await self.store.update_principal(user_id, updates)
        if principal is None:
            raise NotFoundError("User not found")
        logger.info(f"{actor.id} updated user {user_id}")
        return principal

    async def delete_user(self, actor: Principal, user_id: str) -> None:
        target = await self.get_user(user_id)
        authorize_user_update(actor, target)
        await self.store.delete_principal(user_id)
        logger.info(f"{actor.id} deleted user {user_id}")

    def _check_password(self, password: str) -> None:
        minimum = self.settings.min_password_length
        if len(password) < minimum:
            raise ValidationError(f"Password must be at least {minimum} characters")
