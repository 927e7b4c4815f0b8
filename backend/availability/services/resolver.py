from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time
from typing import Optional

from django.conf import settings
from django.utils import timezone

from availability.services.calendar import (
    WeeklyTemplate,
    is_calendar_slot,
    list_slots_for_date,
    slot_start,
)
from bookings.models import Booking, GroupSession

SLOT_NOT_OFFERED = "slot_not_offered"
TOO_SOON = "too_soon"
ALREADY_BOOKED = "already_booked"
CAPACITY_FULL = "capacity_full"

REASON_MESSAGES = {
    SLOT_NOT_OFFERED: "This date and time is not offered.",
    TOO_SOON: "Lessons must be booked at least 24 hours in advance.",
    ALREADY_BOOKED: "This slot is already booked.",
    CAPACITY_FULL: "This group session is full.",
}


@dataclass(frozen=True)
class AvailabilityDecision:
    available: bool
    reason: Optional[str] = None
    capacity: int = 1
    booked: int = 0

    def __bool__(self) -> bool:
        return self.available

    @property
    def message(self) -> str:
        return REASON_MESSAGES.get(self.reason, "") if self.reason else ""


def _reject(reason: str, *, capacity: int = 1, booked: int = 0) -> AvailabilityDecision:
    return AvailabilityDecision(False, reason, capacity, booked)


def _group_occupancy(occurrence_date: date, occurrence_time: time) -> tuple[int, int]:
    session = GroupSession.objects.filter(
        occurrence_date=occurrence_date,
        occurrence_time=occurrence_time,
    ).first()
    if session is None:
        return settings.GROUP_SESSION_CAPACITY, 0
    return session.capacity, session.seats_taken


def check_availability(
    occurrence_date,
    occurrence_time,
    *,
    service_kind: str = Booking.INDIVIDUAL,
    now=None,
    template: Optional[WeeklyTemplate] = None,
) -> AvailabilityDecision:
    """
    Decide whether a new booking of ``service_kind`` may take this slot.

    Never raises; the rejection reason is returned alongside the decision.
    """
    now = now or timezone.now()
    today = timezone.localtime(now).date()
    if not is_calendar_slot(occurrence_date, occurrence_time, today=today, template=template):
        return _reject(SLOT_NOT_OFFERED)

    if slot_start(occurrence_date, occurrence_time) - now < settings.ADVANCE_BOOKING_NOTICE:
        return _reject(TOO_SOON)

    if service_kind == Booking.GROUP:
        if Booking.objects.occupying_slot(occurrence_date, occurrence_time).exists():
            return _reject(ALREADY_BOOKED, booked=1)
        capacity, taken = _group_occupancy(occurrence_date, occurrence_time)
        if taken >= capacity:
            return _reject(CAPACITY_FULL, capacity=capacity, booked=taken)
        return AvailabilityDecision(True, None, capacity, taken)

    if service_kind not in Booking.EXCLUSIVE_KINDS:
        return _reject(SLOT_NOT_OFFERED)

    # Any active booking, group seats included, blocks an exclusive lesson.
    held = Booking.objects.active_at_slot(occurrence_date, occurrence_time).count()
    if held:
        return _reject(ALREADY_BOOKED, booked=held)
    return AvailabilityDecision(True)


def is_available(occurrence_date, occurrence_time, *, service_kind: str = Booking.INDIVIDUAL, now=None) -> bool:
    return check_availability(
        occurrence_date,
        occurrence_time,
        service_kind=service_kind,
        now=now,
    ).available


@dataclass(frozen=True)
class SlotAvailability:
    time: time
    decision: AvailabilityDecision


def describe_day(occurrence_date, *, service_kind: str = Booking.INDIVIDUAL, now=None) -> list[SlotAvailability]:
    """Availability of every template slot on one day, in slot order."""
    now = now or timezone.now()
    return [
        SlotAvailability(
            time=slot_time,
            decision=check_availability(
                occurrence_date,
                slot_time,
                service_kind=service_kind,
                now=now,
            ),
        )
        for slot_time in list_slots_for_date(occurrence_date)
    ]
