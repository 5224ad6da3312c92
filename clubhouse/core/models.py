"""
Core data models for the clubhouse backend.

These models represent the fundamental entities of the auth subsystem:
Principals (users), the opaque tokens issued to them, and scheduled
classes with their enrollment rosters.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from clubhouse.core.utils import as_utc, generate_id, utc_now


# =============================================================================
# Enums
# =============================================================================


class Role(str, Enum):
    """Staff role of a principal."""

    ADMIN = "admin"                  # Full control
    CLUB_MANAGER = "club_manager"    # Scoped to assigned clubs
    ALL_SERVICES = "all_services"
    RESTAURANT = "restaurant"
    OFFICE = "office"
    CLASSES = "classes"

    @classmethod
    def values(cls) -> list[str]:
        return [role.value for role in cls]


class AuthProvider(str, Enum):
    """Mechanism an account was created with."""

    LOCAL = "local"
    GOOGLE = "google"
    GITHUB = "github"


class AuthMode(str, Enum):
    """How access tokens are issued and verified (one per deployment)."""

    SESSION = "session"  # Opaque token row + cookie
    JWT = "jwt"          # Signed claims in the Authorization header


class ClassStatus(str, Enum):
    """Lifecycle status of a scheduled class."""

    SCHEDULED = "scheduled"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# =============================================================================
# Principal
# =============================================================================


class Principal(BaseModel):
    """
    An identity that can authenticate.

    Local accounts always carry a password hash; OAuth accounts are
    identified by (provider, provider_id) and have no password.
    """

    model_config = {"use_enum_values": True, "validate_default": True}

    id: str = Field(default_factory=lambda: generate_id("user"))
    email: str

    # Names (first/last are canonical, `name` is the legacy full name)
    first_name: str = ""
    last_name: str = ""
    name: str | None = None
    picture: str | None = None

    # Auth
    password_hash: str | None = None
    provider: AuthProvider = AuthProvider.LOCAL
    provider_id: str | None = None

    # Access
    role: Role = Role.CLASSES
    assigned_club_ids: list[str] = Field(default_factory=list)
    active: bool = True

    # Timestamps
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def display_name(self) -> str:
        """First and last name; the email when both are empty."""
        return f"{self.first_name} {self.last_name}".strip() or self.email

    def shares_club_with(self, other: Principal) -> bool:
        """Whether the two principals have at least one assigned club in common."""
        return bool(set(self.assigned_club_ids) & set(other.assigned_club_ids))

    def to_document(self) -> dict[str, Any]:
        return self.model_dump()

    def public(self) -> dict[str, Any]:
        """Serializable view without the password hash."""
        data = self.model_dump(mode="json", exclude={"password_hash"})
        data["display_name"] = self.display_name
        return data


# =============================================================================
# Stored tokens (sessions and refresh tokens)
# =============================================================================


class StoredToken(BaseModel):
    """
    An opaque bearer credential persisted server-side.

    Used for both access sessions and refresh tokens; only the
    collection and lifetime differ.
    """

    id: str = Field(default_factory=lambda: generate_id("tok"))
    user_id: str
    token: str
    expires_at: datetime
    created_at: datetime = Field(default_factory=utc_now)

    def is_expired(self, now: datetime | None = None) -> bool:
        return as_utc(self.expires_at) <= (now or utc_now())


# =============================================================================
# Class
# =============================================================================


class GymClass(BaseModel):
    """
    A scheduled activity with a capacity-bounded roster.

    `enrolled_members` never exceeds `capacity`; `wait_list` is FIFO and a
    member id appears in at most one of the two lists.
    """

    model_config = {"use_enum_values": True, "validate_default": True}

    id: str = Field(default_factory=lambda: generate_id("class"))
    name: str
    description: str = ""
    instructor: str = ""
    date: str | None = None        # YYYY-MM-DD
    start_time: str | None = None  # HH:MM
    end_time: str | None = None    # HH:MM
    duration: int = 0              # minutes
    capacity: int = 0
    enrolled_members: list[str] = Field(default_factory=list)
    wait_list: list[str] = Field(default_factory=list)
    recurring: bool = False
    recurring_days: list[str] = Field(default_factory=list)
    status: ClassStatus = ClassStatus.SCHEDULED

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump()

    def public(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
