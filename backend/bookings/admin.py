from django.contrib import admin

from payments.models import PaymentLog
from .models import Booking, GroupSession


@admin.register(GroupSession)
class GroupSessionAdmin(admin.ModelAdmin):
    list_display = ("occurrence_date", "occurrence_time", "seats_taken", "capacity")
    ordering = ("-occurrence_date", "occurrence_time")


class PaymentLogInline(admin.TabularInline):
    model = PaymentLog
    extra = 0
    can_delete = False
    readonly_fields = ("event", "amount_cents", "currency", "provider_ref", "message", "payload", "created_at")


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = (
        "occurrence_date",
        "occurrence_time",
        "service_kind",
        "owner",
        "status",
        "payment_status",
        "series_sequence",
        "series_total",
    )
    list_filter = ("status", "payment_status", "service_kind", "lesson_type", "refund_unresolved")
    search_fields = ("owner__email", "student_email", "payment_provider_ref")
    readonly_fields = (
        "occurrence_weekday",
        "starts_at",
        "cancellation_deadline",
        "series_id",
        "payment_provider_ref",
        "refund_provider_ref",
        "payment_claimed_at",
        "paid_at",
    )
    inlines = [PaymentLogInline]
