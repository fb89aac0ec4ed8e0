"""Typed failures raised by the reservation ledger.

Every concrete error carries a stable ``code`` so the HTTP layer can tell
conflicts (refresh and retry) apart from validation failures (fix the input).
"""


class ReservationError(Exception):
    code = "reservation_error"


# validation


class ValidationFailed(ReservationError):
    code = "validation_failed"


class InvalidSlotError(ValidationFailed):
    code = "invalid_slot"


class InvalidDateError(ValidationFailed):
    code = "invalid_date"


class InvalidParticipantCountError(ValidationFailed):
    code = "invalid_participant_count"


# authorization


class AuthorizationFailed(ReservationError):
    code = "authorization_failed"


class UnauthorizedError(AuthorizationFailed):
    code = "unauthorized"


class ForbiddenError(AuthorizationFailed):
    code = "forbidden"


# not found


class NotFoundError(ReservationError):
    code = "not_found"


class ActivityNotFoundError(NotFoundError):
    code = "activity_not_found"


class ReservationNotFoundError(NotFoundError):
    code = "reservation_not_found"


class ActivityUnavailableError(ReservationError):
    code = "activity_unavailable"


# conflict


class ConflictError(ReservationError):
    code = "conflict"


class CapacityExceededError(ConflictError):
    code = "capacity_exceeded"


class AlreadyCancelledError(ConflictError):
    code = "already_cancelled"


class InvalidTransitionError(ConflictError):
    code = "invalid_transition"


class DuplicateReservationError(ConflictError):
    code = "duplicate_reservation"


class ScheduleConflictError(ConflictError):
    code = "schedule_conflict"


class VersionConflictError(ConflictError):
    code = "version_conflict"


class UpstreamServiceError(ReservationError):
    """A collaborator service (activities, users) could not be reached or answered badly."""

    code = "upstream_unavailable"
