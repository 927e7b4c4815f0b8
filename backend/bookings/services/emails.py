from __future__ import annotations

import logging
from typing import Iterable

from django.conf import settings
from django.core.mail import send_mail

from bookings.models import Booking
from bookings.pricing import format_amount
from payments.services.scheduler import FAILED

logger = logging.getLogger(__name__)


def _recipients(booking: Booking) -> list[str]:
    emails = [booking.owner.email, booking.student_email]
    return sorted({email for email in emails if email})


def _greeting(booking: Booking) -> str:
    owner = booking.owner
    return f"Hi {owner.display_name or owner.first_name or owner.email},"


def _lesson_line(booking: Booking) -> str:
    return (
        f" • {booking.get_service_kind_display()} lesson, "
        f"{booking.occurrence_weekday.title()} {booking.occurrence_date:%d %B %Y} at {booking.occurrence_time:%H:%M}"
    )


def _send(subject: str, body_lines: list[str], recipients: Iterable[str]) -> None:
    recipients = list(recipients)
    if not recipients:
        return
    send_mail(
        subject,
        "\n".join(body_lines),
        settings.DEFAULT_FROM_EMAIL,
        recipients,
        fail_silently=False,
    )


def send_booking_confirmation_email(bookings: list[Booking]):
    first = bookings[0]
    total = sum(booking.amount_cents for booking in bookings)
    subject = "Lesson booked" if len(bookings) == 1 else f"{len(bookings)} weekly lessons booked"
    body_lines = [
        _greeting(first),
        "",
        "Your booking is confirmed:",
        *[_lesson_line(booking) for booking in bookings],
        "",
        f"Total: {format_amount(total, first.currency)}. "
        "Each lesson is charged to your saved card 24 hours before it starts.",
        "Cancel more than 24 hours ahead for a full refund.",
        "",
        f"Manage your lessons: {settings.FRONTEND_URL}/bookings",
    ]
    _send(subject, body_lines, _recipients(first))


def send_cancellation_email(result):
    booking = result.booking
    if result.refunded:
        outcome = f"Your payment of {format_amount(booking.amount_cents, booking.currency)} has been refunded."
    elif result.refund_unresolved:
        outcome = "We could not process your refund automatically; we will be in touch."
    elif booking.payment_status == Booking.PAYMENT_PAID:
        outcome = "As this was less than 24 hours before the lesson, the payment is not refundable."
    else:
        outcome = "You have not been charged for this lesson."
    body_lines = [
        _greeting(booking),
        "",
        "This lesson has been cancelled:",
        _lesson_line(booking),
        "",
        outcome,
    ]
    _send("Lesson cancelled", body_lines, _recipients(booking))


def send_payment_failed_email(booking: Booking):
    body_lines = [
        _greeting(booking),
        "",
        "We could not take payment for:",
        _lesson_line(booking),
        "",
        f"Reason: {booking.payment_failure_reason or 'The card was declined.'}",
        f"Please update your card: {settings.FRONTEND_URL}/account",
    ]
    _send("Lesson payment failed", body_lines, _recipients(booking))


def notify_sweep_failures(sweep) -> int:
    """Mail the owners of lessons whose charge was declined in a sweep."""
    failed_ids = [item.booking_id for item in sweep.outcomes if item.outcome == FAILED]
    sent = 0
    for booking in Booking.objects.filter(pk__in=failed_ids).select_related("owner"):
        send_payment_failed_email(booking)
        sent += 1
    if sent:
        logger.info("Sent %s payment failure email(s)", sent)
    return sent
