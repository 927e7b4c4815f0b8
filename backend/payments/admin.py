from django.contrib import admin

from .models import PaymentLog


@admin.register(PaymentLog)
class PaymentLogAdmin(admin.ModelAdmin):
    list_display = ("created_at", "event", "booking", "amount_cents", "currency", "provider_ref")
    list_filter = ("event",)
    search_fields = ("provider_ref", "booking__owner__email")
