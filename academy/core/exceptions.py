"""Domain exceptions raised by services and mapped to HTTP responses in main."""
from typing import Any


class AcademyError(Exception):
    """Base class for errors raised by domain services."""

    status_code = 500

    def __init__(self, message: str, extra: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}


class NotFoundError(AcademyError):
    """Program, session, branch, player or freeze missing."""

    status_code = 404


class ValidationError(AcademyError):
    """Bad input: date ordering, scope fields, illegal transitions, overlapping freezes."""

    status_code = 400


class ScheduleConflictError(AcademyError):
    """Coach or facility interval collision.

    Carries both conflict lists so callers can render the specifics.
    """

    status_code = 409

    def __init__(
        self,
        message: str,
        coach_conflicts: list[Any],
        facility_conflicts: list[Any],
    ):
        super().__init__(message)
        self.coach_conflicts = coach_conflicts
        self.facility_conflicts = facility_conflicts


class UnauthorizedError(AcademyError):
    status_code = 401


class ForbiddenError(AcademyError):
    """Scope-based access denied, e.g. a branch admin outside their branch."""

    status_code = 403
