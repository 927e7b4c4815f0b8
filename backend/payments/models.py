from django.db import models


class PaymentLog(models.Model):
    """Audit trail of every charge, refund and cancellation decision on a booking."""

    SERIES_CREATED = "series_created"
    CHARGE_SUCCEEDED = "charge_succeeded"
    CHARGE_FAILED = "charge_failed"
    CHARGE_INDETERMINATE = "charge_indeterminate"
    REFUND_SUCCEEDED = "refund_succeeded"
    REFUND_FAILED = "refund_failed"
    CANCELLED = "cancelled"
    ADMIN_CANCELLED = "admin_cancelled"
    EVENTS = [
        (SERIES_CREATED, "Series created"),
        (CHARGE_SUCCEEDED, "Charge succeeded"),
        (CHARGE_FAILED, "Charge failed"),
        (CHARGE_INDETERMINATE, "Charge outcome unknown"),
        (REFUND_SUCCEEDED, "Refund succeeded"),
        (REFUND_FAILED, "Refund failed"),
        (CANCELLED, "Cancelled"),
        (ADMIN_CANCELLED, "Cancelled by staff"),
    ]

    booking = models.ForeignKey('bookings.Booking', on_delete=models.CASCADE, related_name='payment_logs')
    event = models.CharField(max_length=30, choices=EVENTS)
    amount_cents = models.PositiveIntegerField(default=0)
    currency = models.CharField(max_length=10, default='gbp')
    provider_ref = models.CharField(max_length=255, blank=True)
    message = models.CharField(max_length=500, blank=True)
    payload = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at', 'id']

    def __str__(self):
        return f"{self.get_event_display()} for {self.booking_id}"


def record_payment_event(booking, event: str, *, provider_ref: str | None = "", message: str = "", payload=None):
    return PaymentLog.objects.create(
        booking=booking,
        event=event,
        amount_cents=booking.amount_cents,
        currency=booking.currency,
        provider_ref=provider_ref or "",
        message=(message or "")[:500],
        payload=payload or {},
    )
