"""
Shared utility functions for the clubhouse backend.

This module contains common utilities used across the codebase.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from email_validator import EmailNotValidError, validate_email


def generate_id(prefix: str = "") -> str:
    """
    Generate a unique ID with optional prefix.
    
    Args:
        prefix: Optional prefix (e.g., "user", "class", "sess")
        
    Returns:
        A unique ID like "user_a1b2c3d4e5f6"
    """
    uid = uuid.uuid4().hex[:12]
    return f"{prefix}_{uid}" if prefix else uid


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes coming back from a store as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def normalize_email(email: str) -> str:
    """Lowercase and trim an email address."""
    return (email or "").strip().lower()


def is_valid_email(email: str) -> bool:
    """Syntax check of an address (no DNS lookup)."""
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def split_full_name(full_name: str) -> tuple[str, str]:
    """Split a legacy full name on the first space into (first, last)."""
    parts = (full_name or "").strip().split(" ", 1)
    first = parts[0]
    last = parts[1].strip() if len(parts) > 1 else ""
    return first, last
