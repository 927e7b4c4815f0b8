import uuid

from django.conf import settings
from django.db import models
from django.db.models import Q

from availability.services.calendar import slot_start, weekday_name


class GroupSession(models.Model):
    """
    Seat counter for a group lesson slot; one row per (date, time).

    Every booking insert locks this row first, whatever its kind, so group
    seats and exclusive lessons at the same slot are written one at a time.
    """

    occurrence_date = models.DateField()
    occurrence_time = models.TimeField()
    capacity = models.PositiveIntegerField()
    seats_taken = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["occurrence_date", "occurrence_time"]
        constraints = [
            models.UniqueConstraint(
                fields=["occurrence_date", "occurrence_time"],
                name="unique_group_session_slot",
            ),
        ]

    def __str__(self):
        return f"Group {self.occurrence_date} {self.occurrence_time:%H:%M} ({self.seats_taken}/{self.capacity})"

    @property
    def seats_left(self) -> int:
        return max(self.capacity - self.seats_taken, 0)


class BookingQuerySet(models.QuerySet):
    def scheduled(self):
        return self.filter(status=Booking.SCHEDULED)

    def active_at_slot(self, occurrence_date, occurrence_time):
        """Bookings of any kind holding a slot; cancelled rows never do."""
        return (
            self.scheduled()
            .filter(occurrence_date=occurrence_date, occurrence_time=occurrence_time)
            .exclude(payment_status=Booking.PAYMENT_REFUNDED)
        )

    def occupying_slot(self, occurrence_date, occurrence_time):
        return self.active_at_slot(occurrence_date, occurrence_time).filter(
            service_kind__in=Booking.EXCLUSIVE_KINDS,
        )

    def payment_due(self, window_start, window_end):
        """Unpaid lessons starting after ``window_start`` and no later than ``window_end``."""
        return self.scheduled().filter(
            payment_status=Booking.PAYMENT_PENDING,
            starts_at__gt=window_start,
            starts_at__lte=window_end,
        )

    def in_series(self, series_id):
        return self.filter(series_id=series_id).order_by("series_sequence")


class Booking(models.Model):
    """One lesson occurrence. Recurring series are stored as one row per week."""

    INDIVIDUAL = "individual"
    GROUP = "group"
    EXAM_PREP = "exam_prep"
    SERVICE_KINDS = [
        (INDIVIDUAL, "Individual"),
        (GROUP, "Group"),
        (EXAM_PREP, "Exam preparation"),
    ]
    # Kinds that occupy the tutor exclusively; at most one active per slot.
    EXCLUSIVE_KINDS = (INDIVIDUAL, EXAM_PREP)

    SINGLE = "single"
    RECURRING = "recurring"
    GROUP_LESSON = "group"
    LESSON_TYPES = [
        (SINGLE, "Single"),
        (RECURRING, "Recurring"),
        (GROUP_LESSON, "Group"),
    ]

    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"
    STATUSES = [
        (SCHEDULED, "Scheduled"),
        (CANCELLED, "Cancelled"),
    ]

    PAYMENT_PENDING = "pending"
    PAYMENT_PROCESSING = "processing"
    PAYMENT_PAID = "paid"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_REFUNDED = "refunded"
    PAYMENT_STATUSES = [
        (PAYMENT_PENDING, "Pending"),
        (PAYMENT_PROCESSING, "Processing"),
        (PAYMENT_PAID, "Paid"),
        (PAYMENT_FAILED, "Payment failed"),
        (PAYMENT_REFUNDED, "Refunded"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="bookings",
    )
    student_email = models.EmailField(blank=True)
    service_kind = models.CharField(max_length=20, choices=SERVICE_KINDS)
    lesson_type = models.CharField(max_length=20, choices=LESSON_TYPES)
    occurrence_date = models.DateField()
    occurrence_time = models.TimeField()
    occurrence_weekday = models.CharField(max_length=10)
    starts_at = models.DateTimeField()
    cancellation_deadline = models.DateTimeField()
    status = models.CharField(max_length=12, choices=STATUSES, default=SCHEDULED)
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUSES, default=PAYMENT_PENDING)
    amount_cents = models.PositiveIntegerField()
    currency = models.CharField(max_length=10, default="gbp")

    series_id = models.UUIDField(null=True, blank=True, db_index=True)
    series_sequence = models.PositiveIntegerField(null=True, blank=True)
    series_total = models.PositiveIntegerField(null=True, blank=True)
    group_session = models.ForeignKey(
        "GroupSession",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="bookings",
    )

    payment_provider_ref = models.CharField(max_length=255, null=True, blank=True)
    payment_claimed_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    payment_failure_reason = models.CharField(max_length=500, blank=True)
    refund_provider_ref = models.CharField(max_length=255, null=True, blank=True)
    refund_unresolved = models.BooleanField(default=False)

    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="cancelled_bookings",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = BookingQuerySet.as_manager()

    class Meta:
        ordering = ["starts_at", "series_sequence"]
        constraints = [
            models.UniqueConstraint(
                fields=["occurrence_date", "occurrence_time"],
                condition=Q(status="scheduled", service_kind__in=["individual", "exam_prep"])
                & ~Q(payment_status="refunded"),
                name="unique_active_exclusive_slot",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "payment_status", "starts_at"], name="booking_payment_due_idx"),
        ]

    def __str__(self):
        return f"{self.get_service_kind_display()} {self.occurrence_date} {self.occurrence_time:%H:%M}"

    @staticmethod
    def slot_fields(occurrence_date, occurrence_time) -> dict:
        """Derived scheduling columns, fixed at creation and never recomputed."""
        starts_at = slot_start(occurrence_date, occurrence_time)
        return {
            "occurrence_weekday": weekday_name(occurrence_date),
            "starts_at": starts_at,
            "cancellation_deadline": starts_at - settings.CANCELLATION_NOTICE,
        }

    def save(self, *args, **kwargs):
        if self._state.adding and not self.starts_at:
            for field, value in self.slot_fields(self.occurrence_date, self.occurrence_time).items():
                setattr(self, field, value)
        return super().save(*args, **kwargs)

    @property
    def is_exclusive(self) -> bool:
        return self.service_kind in self.EXCLUSIVE_KINDS

    @property
    def is_active(self) -> bool:
        return self.status == self.SCHEDULED

    @property
    def is_last_in_series(self) -> bool:
        return self.series_id is not None and self.series_sequence == self.series_total
