"""
Class roster state machine.

Per (class, member) pair the states are NotEnrolled, Enrolled and
Waitlisted. Transitions:

    NotEnrolled -> Enrolled     enroll() with a free seat
    NotEnrolled -> Waitlisted   enroll() when the class is full
    Enrolled    -> NotEnrolled  unenroll()
    Waitlisted  -> NotEnrolled  unenroll()
    Waitlisted  -> Enrolled     promotion after a seat frees up

The Roster is a pure in-memory value. Persistence applies its result as a
single conditional document write (see EnrollmentService).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from clubhouse.errors import ValidationError


class EnrollmentOutcome(str, Enum):
    """Result of a successful enroll call."""

    ENROLLED = "enrolled"
    WAITLISTED = "waitlisted"


@dataclass
class Roster:
    """Capacity-bounded enrolled list plus a FIFO waitlist."""

    capacity: int
    enrolled: list[str] = field(default_factory=list)
    wait_list: list[str] = field(default_factory=list)

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> Roster:
        return cls(
            capacity=int(doc.get("capacity") or 0),
            enrolled=list(doc.get("enrolled_members") or []),
            wait_list=list(doc.get("wait_list") or []),
        )

    def to_updates(self) -> dict[str, Any]:
        return {
            "capacity": self.capacity,
            "enrolled_members": list(self.enrolled),
            "wait_list": list(self.wait_list),
        }

    @property
    def is_full(self) -> bool:
        return len(self.enrolled) >= self.capacity

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def enroll(self, member_id: str) -> EnrollmentOutcome:
        """
        Enroll a member, or waitlist them when the class is full.

        Raises:
            ValidationError: member is already enrolled
        """
        if member_id in self.enrolled:
            raise ValidationError("Member already enrolled in this class")

        if not self.is_full:
            if member_id in self.wait_list:
                self.wait_list.remove(member_id)
            self.enrolled.append(member_id)
            return EnrollmentOutcome.ENROLLED

        if member_id not in self.wait_list:
            self.wait_list.append(member_id)
        return EnrollmentOutcome.WAITLISTED

    def unenroll(self, member_id: str) -> str | None:
        """
        Remove a member from both lists and promote at most one waitlisted member.

        Absence is not an error. Returns the promoted member id, if any.
        """
        if member_id in self.enrolled:
            self.enrolled.remove(member_id)
        if member_id in self.wait_list:
            self.wait_list.remove(member_id)
        return self.promote_next()

    def promote_next(self) -> str | None:
        """Move the earliest waitlisted member into a free seat."""
        if not self.wait_list or self.is_full:
            return None
        promoted = self.wait_list.pop(0)
        self.enrolled.append(promoted)
        return promoted

    def resize(self, capacity: int) -> list[str]:
        """
        Change the capacity and fill every newly opened seat from the waitlist.

        Raises:
            ValidationError: capacity is negative or below the enrolled count
        """
        if capacity < 0:
            raise ValidationError("Capacity must not be negative")
        if capacity < len(self.enrolled):
            raise ValidationError(
                f"Capacity {capacity} is below the {len(self.enrolled)} members already enrolled"
            )
        self.capacity = capacity

        promoted = []
        while True:
            member_id = self.promote_next()
            if member_id is None:
                break
            promoted.append(member_id)
        return promoted
