"""Services - the business operations behind the HTTP routes."""

from clubhouse.services.enrollment import EnrollmentService
from clubhouse.services.migrations import backfill_split_names
from clubhouse.services.users import UserService

__all__ = [
    "EnrollmentService",
    "UserService",
    "backfill_split_names",
]
