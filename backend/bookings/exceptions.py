from __future__ import annotations


class BookingError(Exception):
    """Base class for booking failures surfaced to callers with a reason code."""

    code = "booking_error"
    status_code = 400

    def __init__(self, message: str = "", *, code: str | None = None):
        super().__init__(message or self.__class__.__doc__ or self.code)
        if code:
            self.code = code

    @property
    def detail(self) -> str:
        return str(self)

    def as_payload(self) -> dict:
        return {"detail": self.detail, "code": self.code}


class BookingValidationError(BookingError):
    """The booking request is malformed."""

    code = "invalid"
    status_code = 400


class SlotNotAvailable(BookingError):
    """The requested slot cannot be booked."""

    status_code = 409

    def __init__(self, reason: str, message: str = ""):
        super().__init__(message or f"Slot is not available ({reason}).", code=reason)
        self.reason = reason


class SeriesNotAvailable(SlotNotAvailable):
    """One or more occurrences of a recurring series cannot be booked."""

    def __init__(self, failures: list[dict]):
        first = failures[0]
        message = (
            f"Lesson {first['sequence']} on {first['date']} is not available ({first['reason']})."
        )
        if len(failures) > 1:
            message += f" {len(failures) - 1} other occurrence(s) also unavailable."
        super().__init__(first["reason"], message)
        self.failures = failures

    def as_payload(self) -> dict:
        payload = super().as_payload()
        payload["failures"] = [
            {**failure, "date": str(failure["date"])} for failure in self.failures
        ]
        return payload


class SlotConflict(BookingError):
    """Slot no longer available: another booking claimed it first."""

    code = "conflict"
    status_code = 409


class BookingNotFound(BookingError):
    """Booking not found."""

    code = "not_found"
    status_code = 404


class BookingForbidden(BookingError):
    """You are not permitted to manage this booking."""

    code = "forbidden"
    status_code = 403


class AlreadyCancelled(BookingError):
    """Booking has already been cancelled."""

    code = "already_cancelled"
    status_code = 409
