from django.conf import settings
from rest_framework import serializers

from accounts.models import User
from availability.services.calendar import WEEKDAY_NAMES
from bookings.models import Booking
from bookings.pricing import format_amount
from payments.services.scheduler import payment_due_at, time_until_payment


class BookingSerializer(serializers.ModelSerializer):
    service_kind_display = serializers.CharField(source="get_service_kind_display", read_only=True)
    owner_email = serializers.EmailField(source="owner.email", read_only=True)
    amount_display = serializers.SerializerMethodField()
    payment_due_at = serializers.SerializerMethodField()
    seconds_until_payment = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = [
            "id",
            "owner",
            "owner_email",
            "student_email",
            "service_kind",
            "service_kind_display",
            "lesson_type",
            "occurrence_date",
            "occurrence_time",
            "occurrence_weekday",
            "starts_at",
            "cancellation_deadline",
            "status",
            "payment_status",
            "amount_cents",
            "amount_display",
            "currency",
            "payment_due_at",
            "seconds_until_payment",
            "paid_at",
            "payment_failure_reason",
            "refund_unresolved",
            "series_id",
            "series_sequence",
            "series_total",
            "cancelled_at",
            "created_at",
        ]
        read_only_fields = fields

    def get_amount_display(self, obj):
        return format_amount(obj.amount_cents, obj.currency)

    def get_payment_due_at(self, obj):
        return serializers.DateTimeField().to_representation(payment_due_at(obj))

    def get_seconds_until_payment(self, obj):
        """Countdown to the charge; null once the lesson is no longer waiting for payment."""
        if obj.status != Booking.SCHEDULED or obj.payment_status != Booking.PAYMENT_PENDING:
            return None
        return int(time_until_payment(obj).total_seconds())


class BookingCreateSerializer(serializers.Serializer):
    service_kind = serializers.ChoiceField(choices=Booking.SERVICE_KINDS)
    occurrence_date = serializers.DateField()
    occurrence_time = serializers.TimeField()
    student_email = serializers.EmailField(required=False, allow_blank=True, default="")

    def validate_student_email(self, value):
        request = self.context.get("request")
        if value and request and getattr(request.user, "role", None) not in {User.PARENT, *User.STAFF_ROLES}:
            raise serializers.ValidationError("Only a parent or staff member can book for a student.")
        return value


class SeriesCreateSerializer(BookingCreateSerializer):
    weekday = serializers.CharField(required=False)
    occurrence_count = serializers.IntegerField(
        min_value=1,
        required=False,
        default=settings.RECURRING_DEFAULT_OCCURRENCES,
    )
    take_setup_charge = serializers.BooleanField(required=False, default=False)

    def validate_weekday(self, value):
        value = value.strip().lower()
        if value.isdigit() and int(value) < len(WEEKDAY_NAMES):
            return int(value)
        if value not in WEEKDAY_NAMES:
            raise serializers.ValidationError("Unknown weekday.")
        return value

    def validate(self, attrs):
        attrs.setdefault("weekday", attrs["occurrence_date"].weekday())
        return attrs
