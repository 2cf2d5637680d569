"""Scheduling domain errors

Every error carries a `kind` so the API layer can map it to a status code
without parsing messages.
"""


class SchedulingError(Exception):
    kind = "internal"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code, "kind": self.kind}


# ============================================================================
# VALIDATION (bad input)
# ============================================================================


class ValidationFailed(SchedulingError):
    kind = "validation"
    status_code = 400


class InvalidDate(ValidationFailed):
    pass


class InvalidTime(ValidationFailed):
    pass


class NotQuarterHour(ValidationFailed):
    pass


class DurationNotQuarterHour(ValidationFailed):
    """Sum of service durations does not land on the 15 minute grid"""


class InvalidDuration(ValidationFailed):
    pass


class MissingField(ValidationFailed):
    pass


class NothingToUpdate(ValidationFailed):
    pass


# ============================================================================
# REFERENTIAL (unknown or foreign ids)
# ============================================================================


class ReferenceFailed(SchedulingError):
    kind = "referential"
    status_code = 400


class BranchNotFound(ReferenceFailed):
    pass


class EmployeeNotFound(ReferenceFailed):
    pass


class ClientNotFound(ReferenceFailed):
    pass


class ServiceUnavailable(ReferenceFailed):
    pass


class ProductUnavailable(ReferenceFailed):
    pass


class MissingMasterRank(ReferenceFailed):
    pass


class MissingPriceForRank(ReferenceFailed):
    pass


# ============================================================================
# CONFLICT (valid input, current state disallows it)
# ============================================================================


class ConflictError(SchedulingError):
    kind = "conflict"
    status_code = 409


class TimeSlotTaken(ConflictError):
    pass


class InsufficientStock(ConflictError):
    pass


class InvalidTransition(ConflictError):
    pass


class AlreadyInStatus(ConflictError):
    pass


class BlockImmutable(ConflictError):
    pass


class AppointmentCanceled(ConflictError):
    pass


class WrongAppointmentType(ConflictError):
    """Operation does not apply to this appointment type"""


# ============================================================================
# NOT FOUND
# ============================================================================


class NotFound(SchedulingError):
    kind = "not_found"
    status_code = 404


class AppointmentNotFound(NotFound):
    pass


class ScheduleEntryNotFound(NotFound):
    pass
