"""
Core module - data models and the roster state machine.

This module contains:
- models: Principal, StoredToken, GymClass and their enums
- enrollment: Roster, the capacity/waitlist state machine
- utils: Shared utility functions
"""

from clubhouse.core.models import (
    AuthMode,
    AuthProvider,
    ClassStatus,
    GymClass,
    Principal,
    Role,
    StoredToken,
)
from clubhouse.core.enrollment import EnrollmentOutcome, Roster
from clubhouse.core.utils import generate_id, normalize_email, utc_now

__all__ = [
    "AuthMode",
    "AuthProvider",
    "ClassStatus",
    "GymClass",
    "Principal",
    "Role",
    "StoredToken",
    "EnrollmentOutcome",
    "Roster",
    "generate_id",
    "normalize_email",
    "utc_now",
]
