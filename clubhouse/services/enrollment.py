"""
Class service - scheduling and the enrollment/waitlist flow.

Roster changes never write the whole document blindly: each one is a
pure Roster transition applied through `MetadataStorage.atomic_update`,
so concurrent enroll/unenroll calls cannot lose updates or double-promote.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Callable

from clubhouse.core.enrollment import EnrollmentOutcome, Roster
from clubhouse.core.models import ClassStatus, GymClass
from clubhouse.core.utils import utc_now
from clubhouse.errors import NotFoundError, ValidationError
from clubhouse.storage import Collections, MetadataStorage

logger = logging.getLogger(__name__)

ENROLL_MESSAGES = {
    EnrollmentOutcome.ENROLLED: "Member enrolled successfully",
    EnrollmentOutcome.WAITLISTED: "Class is full. Member added to waitlist.",
}

# Fields a client may set on create/update; rosters are managed separately
SCHEDULE_FIELDS = (
    "name",
    "description",
    "instructor",
    "date",
    "start_time",
    "end_time",
    "duration",
    "recurring",
    "recurring_days",
    "status",
)


class EnrollmentService:
    """CRUD for classes plus enroll/unenroll."""

    def __init__(self, metadata: MetadataStorage, clock: Callable = utc_now):
        self.metadata = metadata
        self.clock = clock

    # =========================================================================
    # Classes
    # =========================================================================

    async def create_class(self, data: dict[str, Any]) -> GymClass:
        fields = _clean_schedule(data)
        if not (fields.get("name") or "").strip():
            raise ValidationError("Class name is required")

        capacity = _check_capacity(data.get("capacity", 0))
        now = self.clock()
        gym_class = GymClass(
            **fields,
            capacity=capacity,
            created_at=now,
            updated_at=now,
        )
        await self.metadata.insert(Collections.CLASSES, gym_class.id, gym_class.to_document())
        logger.info(f"Created class {gym_class.id} ({gym_class.name}, capacity {capacity})")
        return gym_class

    async def get_class(self, class_id: str) -> GymClass:
        doc = await self.metadata.get(Collections.CLASSES, class_id)
        if doc is None:
            raise NotFoundError("Class not found")
        return GymClass.model_validate(doc)

    async def list_classes(
        self,
        filters: dict[str, Any] | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[GymClass]:
        docs = await self.metadata.query(Collections.CLASSES, filters, limit=limit, offset=offset)
        return [GymClass.model_validate(doc) for doc in docs]

    async def update_class(self, class_id: str, data: dict[str, Any]) -> GymClass:
        """
        Update schedule fields and, optionally, the capacity.

        Raising the capacity fills the new seats from the waitlist in
        FIFO order; lowering it below the enrolled count is rejected.
        """
        fields = _clean_schedule(data)
        if "name" in fields and not (fields["name"] or "").strip():
            raise ValidationError("Class name is required")
        capacity = _check_capacity(data["capacity"]) if data.get("capacity") is not None else None
        promoted: list[str] = []

        def mutate(doc: dict[str, Any]) -> dict[str, Any]:
            updates = dict(fields)
            if capacity is not None:
                roster = Roster.from_document(doc)
                promoted[:] = roster.resize(capacity)
                updates.update(roster.to_updates())
            updates["updated_at"] = self.clock()
            return updates

        doc = await self.metadata.atomic_update(Collections.CLASSES, class_id, mutate)
        if doc is None:
            raise NotFoundError("Class not found")

        if promoted:
            logger.info(f"Capacity change on {class_id} promoted {len(promoted)} member(s)")
        return GymClass.model_validate(doc)

    async def delete_class(self, class_id: str) -> None:
        if not await self.metadata.delete(Collections.CLASSES, class_id):
            raise NotFoundError("Class not found")

    # =========================================================================
    # Enrollment
    # =========================================================================

    async def enroll(self, class_id: str, member_id: str) -> EnrollmentOutcome:
        """
        Enroll a member, or waitlist them when the class is full.

        Raises:
            ValidationError: empty member id, or member already enrolled
            NotFoundError: class does not exist
        """
        member_id = _check_member(member_id)
        outcome: list[EnrollmentOutcome] = []

        def mutate(doc: dict[str, Any]) -> dict[str, Any]:
            roster = Roster.from_document(doc)
            outcome[:] = [roster.enroll(member_id)]
            return {**roster.to_updates(), "updated_at": self.clock()}

        doc = await self.metadata.atomic_update(Collections.CLASSES, class_id, mutate)
        if doc is None:
            raise NotFoundError("Class not found")

        logger.info(f"Member {member_id} {outcome[0].value} in class {class_id}")
        return outcome[0]

    async def unenroll(self, class_id: str, member_id: str) -> str | None:
        """
        Remove a member from the class and its waitlist.

        Idempotent. If a seat is free afterwards, the earliest waitlisted
        member is promoted; returns that member's id.
        """
        member_id = _check_member(member_id)
        promoted: list[str | None] = [None]

        def mutate(doc: dict[str, Any]) -> dict[str, Any] | None:
            roster = Roster.from_document(doc)
            before = roster.to_updates()
            promoted[0] = roster.unenroll(member_id)
            after = roster.to_updates()
            if after == before:
                return None
            return {**after, "updated_at": self.clock()}

        doc = await self.metadata.atomic_update(Collections.CLASSES, class_id, mutate)
        if doc is None:
            raise NotFoundError("Class not found")

        if promoted[0]:
            logger.info(f"Promoted {promoted[0]} from waitlist in class {class_id}")
        return promoted[0]


# =============================================================================
# Validation helpers
# =============================================================================


def _check_member(member_id: str | None) -> str:
    member_id = (member_id or "").strip()
    if not member_id:
        raise ValidationError("Invalid member ID")
    return member_id


def _check_capacity(value: Any) -> int:
    try:
        capacity = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Capacity must be an integer")
    if capacity < 0:
        raise ValidationError("Capacity must not be negative")
    return capacity


def _clean_schedule(data: dict[str, Any]) -> dict[str, Any]:
    fields = {key: data[key] for key in SCHEDULE_FIELDS if data.get(key) is not None}

    if "date" in fields:
        try:
            date.fromisoformat(fields["date"])
        except (TypeError, ValueError):
            raise ValidationError("Invalid date format. Use YYYY-MM-DD")

    if "status" in fields:
        try:
            fields["status"] = ClassStatus(fields["status"]).value
        except ValueError:
            valid = ", ".join(status.value for status in ClassStatus)
            raise ValidationError(f"Invalid status. Valid statuses: {valid}")

    return fields
