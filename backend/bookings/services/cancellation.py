from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from bookings.exceptions import AlreadyCancelled, BookingForbidden, BookingNotFound
from bookings.models import Booking
from bookings.services.context import Requester
from bookings.services.ledger import release_group_seat
from payments.exceptions import PaymentError
from payments.models import PaymentLog, record_payment_event
from payments.services import gateway
from payments.services.scheduler import refund_idempotency_key

logger = logging.getLogger(__name__)


@dataclass
class CancellationResult:
    booking: Booking
    refunded: bool = False
    refund_unresolved: bool = False
    refund_ref: Optional[str] = None
    within_refund_window: bool = False

    def as_dict(self) -> dict:
        return {
            "booking_id": str(self.booking.pk),
            "status": self.booking.status,
            "payment_status": self.booking.payment_status,
            "refunded": self.refunded,
            "refund_unresolved": self.refund_unresolved,
            "refund_ref": self.refund_ref,
            "within_refund_window": self.within_refund_window,
        }


def _load(booking_id) -> Booking:
    try:
        return Booking.objects.select_related("owner").get(pk=booking_id)
    except (Booking.DoesNotExist, ValidationError, ValueError):
        raise BookingNotFound()


def refund_eligibility(booking: Booking, *, now=None) -> dict:
    """What cancelling right now would do, without doing it."""
    now = now or timezone.now()
    can_cancel = booking.status == Booking.SCHEDULED
    within_window = now < booking.cancellation_deadline
    return {
        "can_cancel": can_cancel,
        "within_refund_window": within_window,
        "refund_available": can_cancel and within_window and booking.payment_status == Booking.PAYMENT_PAID,
        "cancellation_deadline": booking.cancellation_deadline,
        "payment_status": booking.payment_status,
    }


def _cancel(booking_id, actor: Requester, *, refund_owed, event: str, now) -> CancellationResult:
    with transaction.atomic():
        try:
            booking = Booking.objects.select_for_update().get(pk=booking_id)
        except Booking.DoesNotExist:
            raise BookingNotFound()
        if booking.status == Booking.CANCELLED:
            raise AlreadyCancelled()
        within_window = now < booking.cancellation_deadline
        owes_refund = refund_owed(booking, within_window)

    # No transaction is open while the provider is called.
    result = CancellationResult(booking=booking, within_refund_window=within_window)
    updates = {
        "status": Booking.CANCELLED,
        "cancelled_at": now,
        "cancelled_by_id": actor.user_id,
        "updated_at": now,
    }
    if owes_refund:
        try:
            refund = gateway.refund(
                provider_ref=booking.payment_provider_ref,
                idempotency_key=refund_idempotency_key(booking),
                metadata={"booking_id": str(booking.pk)},
            )
        except PaymentError as exc:
            updates["refund_unresolved"] = True
            result.refund_unresolved = True
            record_payment_event(
                booking,
                PaymentLog.REFUND_FAILED,
                provider_ref=booking.payment_provider_ref,
                message=str(exc),
            )
            logger.warning("Refund failed for booking %s; cancelling anyway: %s", booking.pk, exc)
        else:
            updates["payment_status"] = Booking.PAYMENT_REFUNDED
            updates["refund_provider_ref"] = refund.refund_ref
            result.refunded = True
            result.refund_ref = refund.refund_ref
            record_payment_event(booking, PaymentLog.REFUND_SUCCEEDED, provider_ref=refund.refund_ref)

    with transaction.atomic():
        # Status goes last, and only if nobody cancelled the row meanwhile.
        written = Booking.objects.filter(pk=booking.pk, status=Booking.SCHEDULED).update(**updates)
        if not written:
            raise AlreadyCancelled()
        release_group_seat(booking.group_session_id)
        booking.refresh_from_db()
        record_payment_event(
            booking,
            event,
            provider_ref=result.refund_ref or "",
            payload={
                "refunded": result.refunded,
                "refund_unresolved": result.refund_unresolved,
                "within_refund_window": within_window,
                "payment_status": booking.payment_status,
            },
        )

    logger.info(
        "Booking %s cancelled by user %s (refunded=%s, payment_status=%s)",
        booking.pk,
        actor.user_id,
        result.refunded,
        booking.payment_status,
    )
    return result


def cancel_booking(booking_id, requester: Requester, *, now=None) -> CancellationResult:
    """
    Cancel one of the requester's own lessons.

    A paid lesson cancelled before its cancellation deadline is refunded in
    full. Inside the deadline the booking is cancelled and the payment kept.
    A pending lesson is simply cancelled; the scheduler never charges it.
    """
    now = now or timezone.now()
    booking = _load(booking_id)
    if booking.owner_id != requester.user_id:
        raise BookingForbidden()
    return _cancel(
        booking.pk,
        requester,
        refund_owed=lambda row, within_window: within_window and row.payment_status == Booking.PAYMENT_PAID,
        event=PaymentLog.CANCELLED,
        now=now,
    )


def admin_cancel_booking(booking_id, actor: Requester, *, now=None) -> CancellationResult:
    """Staff cancellation; a paid lesson is always refunded, whatever the notice."""
    now = now or timezone.now()
    if not actor.is_staff_role:
        raise BookingForbidden()
    booking = _load(booking_id)
    return _cancel(
        booking.pk,
        actor,
        refund_owed=lambda row, within_window: row.payment_status == Booking.PAYMENT_PAID,
        event=PaymentLog.ADMIN_CANCELLED,
        now=now,
    )
