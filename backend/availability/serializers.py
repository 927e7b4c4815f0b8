from rest_framework import serializers

from bookings.models import Booking


class SlotQuerySerializer(serializers.Serializer):
    """Query parameters for the slot listing and single-slot check."""

    date = serializers.DateField()
    time = serializers.TimeField(required=False)
    service_kind = serializers.ChoiceField(choices=Booking.SERVICE_KINDS, required=False, default=Booking.INDIVIDUAL)


class AvailabilityDecisionSerializer(serializers.Serializer):
    available = serializers.BooleanField()
    reason = serializers.CharField(allow_null=True)
    message = serializers.CharField()
    capacity = serializers.IntegerField()
    booked = serializers.IntegerField()


class SlotAvailabilitySerializer(serializers.Serializer):
    time = serializers.TimeField(format="%H:%M")
    available = serializers.BooleanField(source="decision.available")
    reason = serializers.CharField(source="decision.reason", allow_null=True)
    capacity = serializers.IntegerField(source="decision.capacity")
    booked = serializers.IntegerField(source="decision.booked")
