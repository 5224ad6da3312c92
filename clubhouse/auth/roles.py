"""
Role-based authorization rules for user administration.

Evaluated inside handlers after the gatekeeper has resolved the actor.
Only club managers are restricted; every other role may manage users
freely.
"""

from __future__ import annotations

from clubhouse.core.models import Principal, Role
from clubhouse.errors import ForbiddenError, ValidationError

# Roles a club manager may neither grant nor edit
PRIVILEGED_ROLES = (Role.ADMIN, Role.CLUB_MANAGER)


def validate_role(value: str | Role | None) -> Role:
    """Parse a role at the boundary, rejecting anything outside the enum."""
    try:
        return Role(value)
    except ValueError:
        raise ValidationError(f"Invalid role. Valid roles: {', '.join(Role.values())}")


def _is_club_manager(actor: Principal) -> bool:
    return actor.role == Role.CLUB_MANAGER


def authorize_user_create(actor: Principal, role: Role) -> None:
    """A club manager cannot create admins or other club managers."""
    if _is_club_manager(actor) and role in PRIVILEGED_ROLES:
        raise ForbiddenError("Club managers cannot create admin or club manager users")


def authorize_user_update(actor: Principal, target: Principal, new_role: Role | None = None) -> None:
    """
    Club managers may only edit non-privileged users they share a club with,
    and may not promote anyone into a privileged role.
    """
    if not _is_club_manager(actor):
        return

    if not actor.shares_club_with(target):
        raise ForbiddenError("You can only update users at your assigned clubs")

    if target.role in PRIVILEGED_ROLES:
        raise ForbiddenError("You cannot update admin or club manager users")

    if new_role is not None and new_role in PRIVILEGED_ROLES:
        raise ForbiddenError("You cannot assign admin or club manager roles")
