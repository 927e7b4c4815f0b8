from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional

from django.conf import settings
from django.utils import timezone

WEEKDAY_NAMES = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


@dataclass(frozen=True)
class WeeklyTemplate:
    """Days of the week the tutor teaches and the fixed daily slot grid."""

    open_weekdays: frozenset[int]
    day_start: time
    day_end: time
    slot_minutes: int = 60

    def slots(self) -> list[time]:
        if self.slot_minutes <= 0:
            return []
        anchor = date(2000, 1, 1)
        cursor = datetime.combine(anchor, self.day_start)
        last = datetime.combine(anchor, self.day_end)
        step = timedelta(minutes=self.slot_minutes)
        result = []
        while cursor <= last:
            result.append(cursor.time())
            cursor += step
        return result


def _parse_clock(value) -> time:
    if isinstance(value, time):
        return value
    return datetime.strptime(str(value), "%H:%M").time()


def default_template() -> WeeklyTemplate:
    return WeeklyTemplate(
        open_weekdays=frozenset(int(day) for day in settings.LESSON_OPEN_WEEKDAYS),
        day_start=_parse_clock(settings.LESSON_DAY_START),
        day_end=_parse_clock(settings.LESSON_DAY_END),
        slot_minutes=settings.LESSON_SLOT_MINUTES,
    )


def weekday_name(value: date) -> str:
    return WEEKDAY_NAMES[value.weekday()]


def local_today() -> date:
    return timezone.localdate()


def list_slots_for_date(value, *, template: Optional[WeeklyTemplate] = None) -> list[time]:
    """Return the ordered daily slot grid for an open day, or [] when closed."""
    if not isinstance(value, date):
        return []
    template = template or default_template()
    if value.weekday() not in template.open_weekdays:
        return []
    return template.slots()


def is_calendar_slot(
    value,
    slot_time,
    *,
    today: Optional[date] = None,
    template: Optional[WeeklyTemplate] = None,
) -> bool:
    """
    Whether (date, time) is a slot that could ever be offered.

    Same-day dates qualify here; the advance-notice rule is applied by the
    availability resolver, not the calendar.
    """
    if isinstance(value, datetime) or not isinstance(value, date):
        return False
    if not isinstance(slot_time, time):
        return False
    today = today or local_today()
    if value < today:
        return False
    return slot_time.replace(tzinfo=None) in list_slots_for_date(value, template=template)


def slot_start(value: date, slot_time: time):
    """Aware datetime at which a lesson in this slot begins."""
    return timezone.make_aware(datetime.combine(value, slot_time))
