from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import Iterable

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from availability.services.resolver import check_availability
from bookings.exceptions import BookingValidationError, SlotConflict, SlotNotAvailable
from bookings.models import Booking, GroupSession
from bookings.services.context import Requester

logger = logging.getLogger(__name__)


def resolve_currency(currency: str | None) -> str:
    return (currency or settings.DEFAULT_CURRENCY).lower()


def validate_request(*, service_kind, occurrence_date, occurrence_time, amount_cents) -> None:
    if service_kind not in dict(Booking.SERVICE_KINDS):
        raise BookingValidationError("A valid service is required.")
    if isinstance(occurrence_date, datetime) or not isinstance(occurrence_date, date):
        raise BookingValidationError("A lesson date is required.")
    if not isinstance(occurrence_time, time):
        raise BookingValidationError("A lesson time is required.")
    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool):
        raise BookingValidationError("Amount must be a whole number of pence.")
    if amount_cents < settings.MINIMUM_CHARGE_CENTS:
        raise BookingValidationError(
            f"Amount must be at least {settings.MINIMUM_CHARGE_CENTS} pence."
        )


def build_booking(
    owner_id,
    *,
    service_kind: str,
    lesson_type: str,
    occurrence_date: date,
    occurrence_time: time,
    amount_cents: int,
    currency: str,
    student_email: str = "",
    **extra,
) -> Booking:
    """Unsaved ledger row with its derived slot columns filled in."""
    return Booking(
        owner_id=owner_id,
        service_kind=service_kind,
        lesson_type=lesson_type,
        occurrence_date=occurrence_date,
        occurrence_time=occurrence_time,
        amount_cents=amount_cents,
        currency=currency,
        student_email=student_email or "",
        status=Booking.SCHEDULED,
        payment_status=Booking.PAYMENT_PENDING,
        **Booking.slot_fields(occurrence_date, occurrence_time),
        **extra,
    )


def lock_slot(occurrence_date: date, occurrence_time: time) -> GroupSession:
    """Create the slot's counter row if needed and lock it until the transaction ends."""
    session, _ = GroupSession.objects.get_or_create(
        occurrence_date=occurrence_date,
        occurrence_time=occurrence_time,
        defaults={"capacity": settings.GROUP_SESSION_CAPACITY},
    )
    return GroupSession.objects.select_for_update().get(pk=session.pk)


def take_group_seat(session: GroupSession) -> GroupSession:
    if Booking.objects.occupying_slot(session.occurrence_date, session.occurrence_time).exists():
        raise SlotConflict("This slot was booked for a private lesson while you were booking.")
    taken = GroupSession.objects.filter(
        pk=session.pk,
        seats_taken__lt=F("capacity"),
    ).update(seats_taken=F("seats_taken") + 1, updated_at=timezone.now())
    if not taken:
        raise SlotConflict("This group session filled up while you were booking.")
    return session


def release_group_seat(group_session_id) -> None:
    if group_session_id is None:
        return
    GroupSession.objects.filter(pk=group_session_id, seats_taken__gt=0).update(
        seats_taken=F("seats_taken") - 1,
        updated_at=timezone.now(),
    )


def insert_bookings(bookings: Iterable[Booking]) -> list[Booking]:
    """
    Write ledger rows in a single transaction.

    Each slot's counter row is locked before its booking is written, so a
    group seat and an exclusive lesson cannot land on the same slot. Two
    exclusive lessons racing for a slot are stopped by the partial unique
    index instead, whose IntegrityError rolls back every row and seat taken
    here.
    """
    bookings = list(bookings)
    try:
        with transaction.atomic():
            for booking in bookings:
                session = lock_slot(booking.occurrence_date, booking.occurrence_time)
                if booking.service_kind == Booking.GROUP:
                    booking.group_session = take_group_seat(session)
                elif session.seats_taken:
                    raise SlotConflict("This slot was taken by a group session while you were booking.")
            Booking.objects.bulk_create(bookings)
    except IntegrityError as exc:
        logger.warning(
            "Lost booking race for %s",
            ", ".join(f"{b.occurrence_date} {b.occurrence_time:%H:%M}" for b in bookings),
        )
        raise SlotConflict() from exc
    return bookings


def book_lesson(
    requester: Requester,
    *,
    service_kind: str,
    occurrence_date: date,
    occurrence_time: time,
    amount_cents: int,
    currency: str | None = None,
    student_email: str = "",
    now=None,
) -> Booking:
    """Reserve one standalone lesson (single individual/exam-prep or a group seat)."""
    validate_request(
        service_kind=service_kind,
        occurrence_date=occurrence_date,
        occurrence_time=occurrence_time,
        amount_cents=amount_cents,
    )
    decision = check_availability(
        occurrence_date,
        occurrence_time,
        service_kind=service_kind,
        now=now,
    )
    if not decision.available:
        raise SlotNotAvailable(decision.reason, decision.message)

    lesson_type = Booking.GROUP_LESSON if service_kind == Booking.GROUP else Booking.SINGLE
    booking = build_booking(
        requester.user_id,
        service_kind=service_kind,
        lesson_type=lesson_type,
        occurrence_date=occurrence_date,
        occurrence_time=occurrence_time,
        amount_cents=amount_cents,
        currency=resolve_currency(currency),
        student_email=student_email,
    )
    insert_bookings([booking])
    logger.info(
        "Booked %s lesson %s for user %s on %s %s",
        service_kind,
        booking.id,
        requester.user_id,
        occurrence_date,
        occurrence_time.strftime("%H:%M"),
    )
    return booking
