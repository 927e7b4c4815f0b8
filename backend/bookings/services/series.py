from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, time, timedelta
from typing import Optional

from django.conf import settings

from availability.services.calendar import WEEKDAY_NAMES
from availability.services.resolver import check_availability
from bookings.exceptions import BookingValidationError, SeriesNotAvailable
from bookings.models import Booking
from bookings.services.context import Requester
from bookings.services.ledger import (
    build_booking,
    insert_bookings,
    resolve_currency,
    validate_request,
)
from payments.models import PaymentLog, record_payment_event
from payments.services import scheduler

logger = logging.getLogger(__name__)

WEEK = timedelta(days=7)


@dataclass
class SeriesResult:
    series_id: uuid.UUID
    bookings: list[Booking] = field(default_factory=list)
    setup_charge: Optional[object] = None

    @property
    def first(self) -> Booking:
        return self.bookings[0]


def _weekday_index(weekday) -> int:
    if isinstance(weekday, bool):
        raise BookingValidationError("Weekday is invalid.")
    if isinstance(weekday, int):
        if 0 <= weekday <= 6:
            return weekday
        raise BookingValidationError("Weekday is invalid.")
    name = str(weekday or "").strip().lower()
    for index, candidate in enumerate(WEEKDAY_NAMES):
        if candidate.lower() == name:
            return index
    raise BookingValidationError("Weekday is invalid.")


def occurrence_dates(anchor_date: date, occurrence_count: int) -> list[date]:
    """Weekly dates starting at the anchor. No holiday skipping."""
    return [anchor_date + WEEK * offset for offset in range(occurrence_count)]


def create_series(
    requester: Requester,
    *,
    service_kind: str,
    anchor_date: date,
    weekday,
    occurrence_time: time,
    amount_cents: int,
    occurrence_count: int,
    currency: str | None = None,
    student_email: str = "",
    take_setup_charge: bool = False,
    now=None,
) -> SeriesResult:
    """
    Book a weekly recurring series as one row per occurrence.

    Every occurrence is checked before anything is written; if any is
    unavailable the whole request fails with the complete list of failures.
    Rows go in together, so a lost race rolls the whole series back.

    Each occurrence is charged on its own by the payment scheduler. With
    ``take_setup_charge`` the first occurrence is charged straight away
    through the same claim-and-charge path.
    """
    validate_request(
        service_kind=service_kind,
        occurrence_date=anchor_date,
        occurrence_time=occurrence_time,
        amount_cents=amount_cents,
    )
    if _weekday_index(weekday) != anchor_date.weekday():
        raise BookingValidationError(
            f"{anchor_date} is a {WEEKDAY_NAMES[anchor_date.weekday()]}, not the requested weekday."
        )
    if (
        not isinstance(occurrence_count, int)
        or isinstance(occurrence_count, bool)
        or not 1 <= occurrence_count <= settings.RECURRING_MAX_OCCURRENCES
    ):
        raise BookingValidationError(
            f"A series must have between 1 and {settings.RECURRING_MAX_OCCURRENCES} lessons."
        )

    dates = occurrence_dates(anchor_date, occurrence_count)
    failures = []
    for sequence, occurrence_date in enumerate(dates, start=1):
        decision = check_availability(
            occurrence_date,
            occurrence_time,
            service_kind=service_kind,
            now=now,
        )
        if not decision.available:
            failures.append(
                {"sequence": sequence, "date": occurrence_date, "reason": decision.reason}
            )
    if failures:
        raise SeriesNotAvailable(failures)

    series_id = uuid.uuid4()
    currency = resolve_currency(currency)
    bookings = insert_bookings(
        build_booking(
            requester.user_id,
            service_kind=service_kind,
            lesson_type=Booking.RECURRING,
            occurrence_date=occurrence_date,
            occurrence_time=occurrence_time,
            amount_cents=amount_cents,
            currency=currency,
            student_email=student_email,
            series_id=series_id,
            series_sequence=sequence,
            series_total=occurrence_count,
        )
        for sequence, occurrence_date in enumerate(dates, start=1)
    )
    record_payment_event(
        bookings[0],
        PaymentLog.SERIES_CREATED,
        message=f"{occurrence_count} weekly lessons",
        payload={
            "series_id": str(series_id),
            "dates": [str(d) for d in dates],
        },
    )
    logger.info(
        "Created series %s for user %s: %s x %s from %s at %s",
        series_id,
        requester.user_id,
        occurrence_count,
        service_kind,
        anchor_date,
        occurrence_time.strftime("%H:%M"),
    )

    result = SeriesResult(series_id=series_id, bookings=bookings)
    if take_setup_charge:
        result.setup_charge = scheduler.charge_booking(bookings[0], now=now)
    return result
