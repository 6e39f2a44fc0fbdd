"""
Domain errors raised by the check-in services.

Every error carries a user-facing message, the HTTP status it maps to
and a stable machine code. The services raise these; the API layer
translates them in `checkin.exception_handlers`.
"""

from typing import Any, Optional


class CheckinError(Exception):
    """Base class for all domain errors."""

    code = "error"
    status_code = 400
    informational = False

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.code}


class NotFoundError(CheckinError):
    code = "not_found"
    status_code = 404


class AlreadyProcessedError(CheckinError):
    """
    Registration was already checked in (or completed).

    The UI treats this as a soft success, so the current ticket / seat
    travels with the error.
    """

    code = "already_processed"
    status_code = 409
    informational = True

    def __init__(
        self,
        message: str,
        status: Optional[str] = None,
        display_queue_number: Optional[str] = None,
        seat_number: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.display_queue_number = display_queue_number
        self.seat_number = seat_number

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            status=self.status,
            display_queue_number=self.display_queue_number,
            seat_number=self.seat_number,
        )
        return data


class MissingCourseError(CheckinError):
    code = "missing_course"
    status_code = 422


class ConfigurationError(CheckinError):
    code = "configuration_error"
    status_code = 422


class SeatRequiredError(CheckinError):
    code = "seat_required"
    status_code = 422


class QueueEmptyError(CheckinError):
    code = "queue_empty"
    status_code = 404
    informational = True


class NothingToRecallError(CheckinError):
    code = "nothing_to_recall"
    status_code = 409
    informational = True


class SeatAssignmentInProgressError(CheckinError):
    code = "seat_assignment_in_progress"
    status_code = 409


class ContentionError(CheckinError):
    """Retry budget exhausted while competing for the same rows."""

    code = "contention"
    status_code = 503


class TransactionConflict(Exception):
    """
    A compare-and-swap write lost a race.

    Internal only: the retry loop in `checkin.services.transactions`
    consumes it and starts a fresh transaction.
    """
