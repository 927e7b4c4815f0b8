from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from django.conf import settings
from django.utils import timezone

from bookings.models import Booking
from payments.exceptions import PaymentError, PaymentFailure, PaymentIndeterminate
from payments.models import PaymentLog, record_payment_event
from payments.services import gateway

logger = logging.getLogger(__name__)

PAID = "paid"
FAILED = "payment_failed"
INDETERMINATE = "indeterminate"
SKIPPED = "skipped"
REFUNDED = "refunded"


@dataclass
class ChargeOutcome:
    booking_id: object
    outcome: str
    provider_ref: str = ""
    message: str = ""

    def as_dict(self) -> dict:
        return {
            "booking_id": str(self.booking_id),
            "outcome": self.outcome,
            "provider_ref": self.provider_ref,
            "message": self.message,
        }


@dataclass
class SweepResult:
    window_start: datetime
    window_end: datetime
    released: int = 0
    outcomes: list[ChargeOutcome] = field(default_factory=list)

    def count(self, outcome: str) -> int:
        return sum(1 for item in self.outcomes if item.outcome == outcome)

    def summary(self) -> dict:
        return {
            outcome: self.count(outcome)
            for outcome in (PAID, FAILED, INDETERMINATE, SKIPPED, REFUNDED)
        }

    def as_dict(self) -> dict:
        return {
            "window_start": self.window_start.isoformat(),
            "window_end": self.window_end.isoformat(),
            "released": self.released,
            "summary": self.summary(),
            "outcomes": [item.as_dict() for item in self.outcomes],
        }


def charge_idempotency_key(booking) -> str:
    return f"booking-{booking.pk}-charge"


def refund_idempotency_key(booking) -> str:
    return f"booking-{booking.pk}-refund"


def payment_due_at(booking) -> datetime:
    """When the scheduler first becomes willing to charge this lesson."""
    return booking.starts_at - settings.PAYMENT_LEAD_TIME


def time_until_payment(booking, now=None) -> timedelta:
    """Time left before the charge is taken; zero once it is due."""
    now = now or timezone.now()
    return max(payment_due_at(booking) - now, timedelta(0))


def release_stale_claims(*, now=None) -> int:
    now = now or timezone.now()
    cutoff = now - settings.PAYMENT_CLAIM_TIMEOUT
    released = Booking.objects.filter(
        payment_status=Booking.PAYMENT_PROCESSING,
        payment_claimed_at__lt=cutoff,
    ).update(
        payment_status=Booking.PAYMENT_PENDING,
        payment_claimed_at=None,
        updated_at=now,
    )
    if released:
        logger.warning("Released %s stale payment claim(s) older than %s", released, cutoff)
    return released


def _claim(booking, now) -> bool:
    return bool(
        Booking.objects.filter(
            pk=booking.pk,
            status=Booking.SCHEDULED,
            payment_status=Booking.PAYMENT_PENDING,
        ).update(
            payment_status=Booking.PAYMENT_PROCESSING,
            payment_claimed_at=now,
            updated_at=now,
        )
    )


def _release_claim(booking, now) -> None:
    Booking.objects.filter(
        pk=booking.pk,
        payment_status=Booking.PAYMENT_PROCESSING,
    ).update(
        payment_status=Booking.PAYMENT_PENDING,
        payment_claimed_at=None,
        updated_at=now,
    )


def _refund_cancelled_charge(booking, provider_ref: str, now) -> ChargeOutcome:
    """The booking was cancelled while its charge was in flight; give the money back."""
    try:
        refund = gateway.refund(
            provider_ref=provider_ref,
            idempotency_key=refund_idempotency_key(booking),
            metadata={"booking_id": str(booking.pk), "reason": "cancelled_during_charge"},
        )
    except PaymentError as exc:
        Booking.objects.filter(pk=booking.pk, payment_status=Booking.PAYMENT_PROCESSING).update(
            payment_status=Booking.PAYMENT_PAID,
            payment_provider_ref=provider_ref,
            paid_at=now,
            payment_claimed_at=None,
            refund_unresolved=True,
            updated_at=now,
        )
        record_payment_event(booking, PaymentLog.REFUND_FAILED, provider_ref=provider_ref, message=str(exc))
        logger.warning("Refund after cancelled charge failed for booking %s: %s", booking.pk, exc)
        return ChargeOutcome(booking.pk, PAID, provider_ref, str(exc))

    Booking.objects.filter(pk=booking.pk, payment_status=Booking.PAYMENT_PROCESSING).update(
        payment_status=Booking.PAYMENT_REFUNDED,
        payment_provider_ref=provider_ref,
        refund_provider_ref=refund.refund_ref,
        paid_at=now,
        payment_claimed_at=None,
        updated_at=now,
    )
    record_payment_event(booking, PaymentLog.REFUND_SUCCEEDED, provider_ref=refund.refund_ref)
    logger.info("Booking %s was cancelled mid-charge; refunded %s", booking.pk, refund.refund_ref)
    return ChargeOutcome(booking.pk, REFUNDED, refund.refund_ref)


def charge_booking(booking, *, now=None) -> ChargeOutcome:
    """
    Claim one pending booking and charge it.

    The claim is a conditional update from ``pending`` to ``processing``, so
    a booking is charged by at most one worker at a time. Only a definite
    decline is terminal; an unknown outcome puts the row back to ``pending``
    and the next sweep retries with the same idempotency key.
    """
    now = now or timezone.now()
    if not _claim(booking, now):
        return ChargeOutcome(booking.pk, SKIPPED)
    logger.info("Claimed booking %s for payment of %s %s", booking.pk, booking.amount_cents, booking.currency)

    try:
        result = gateway.charge(
            amount_cents=booking.amount_cents,
            currency=booking.currency,
            payer=gateway.Payer.for_user(booking.owner),
            idempotency_key=charge_idempotency_key(booking),
            description=f"{booking.get_service_kind_display()} lesson on {booking.occurrence_date} at {booking.occurrence_time:%H:%M}",
            metadata={"booking_id": str(booking.pk)},
        )
    except PaymentFailure as exc:
        Booking.objects.filter(pk=booking.pk, payment_status=Booking.PAYMENT_PROCESSING).update(
            payment_status=Booking.PAYMENT_FAILED,
            payment_failure_reason=str(exc)[:500],
            payment_claimed_at=None,
            updated_at=now,
        )
        record_payment_event(booking, PaymentLog.CHARGE_FAILED, message=str(exc))
        logger.warning("Charge failed for booking %s: %s", booking.pk, exc)
        booking.refresh_from_db()
        return ChargeOutcome(booking.pk, FAILED, message=str(exc))
    except PaymentIndeterminate as exc:
        _release_claim(booking, now)
        record_payment_event(booking, PaymentLog.CHARGE_INDETERMINATE, message=str(exc))
        logger.warning("Charge outcome unknown for booking %s; will retry: %s", booking.pk, exc)
        booking.refresh_from_db()
        return ChargeOutcome(booking.pk, INDETERMINATE, message=str(exc))
    except Exception as exc:
        logger.exception("Unexpected error charging booking %s", booking.pk)
        _release_claim(booking, now)
        record_payment_event(booking, PaymentLog.CHARGE_INDETERMINATE, message=str(exc))
        booking.refresh_from_db()
        return ChargeOutcome(booking.pk, INDETERMINATE, message=str(exc))

    paid = Booking.objects.filter(
        pk=booking.pk,
        status=Booking.SCHEDULED,
        payment_status=Booking.PAYMENT_PROCESSING,
    ).update(
        payment_status=Booking.PAYMENT_PAID,
        payment_provider_ref=result.provider_ref,
        paid_at=now,
        payment_claimed_at=None,
        payment_failure_reason="",
        updated_at=now,
    )
    record_payment_event(booking, PaymentLog.CHARGE_SUCCEEDED, provider_ref=result.provider_ref)
    if paid:
        logger.info("Booking %s paid (%s)", booking.pk, result.provider_ref)
        outcome = ChargeOutcome(booking.pk, PAID, result.provider_ref)
    else:
        outcome = _refund_cancelled_charge(booking, result.provider_ref, now)
    booking.refresh_from_db()
    return outcome


def process_due_payments(*, now=None) -> SweepResult:
    """
    Charge every scheduled, unpaid lesson whose payment is now due.

    A lesson is due once it starts within ``PAYMENT_LEAD_TIME`` and stays due
    until it starts, so a row put back to ``pending`` is retried by every
    later sweep and a trigger that runs late still finds it. Running the sweep
    twice charges nothing twice.
    """
    now = now or timezone.now()
    released = release_stale_claims(now=now)
    window_start = now
    window_end = now + settings.PAYMENT_LEAD_TIME
    result = SweepResult(window_start=window_start, window_end=window_end, released=released)

    due = Booking.objects.payment_due(window_start, window_end).select_related("owner")
    for booking in due:
        result.outcomes.append(charge_booking(booking, now=now))

    logger.info(
        "Payment sweep %s to %s: %s",
        window_start.isoformat(),
        window_end.isoformat(),
        result.summary(),
    )
    return result
