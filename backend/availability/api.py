from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from availability.serializers import (
    AvailabilityDecisionSerializer,
    SlotAvailabilitySerializer,
    SlotQuerySerializer,
)
from availability.services.calendar import weekday_name
from availability.services.resolver import check_availability, describe_day


class SlotListView(APIView):
    """Every slot on one day with whether a booking of the given kind can take it."""

    def get(self, request, *args, **kwargs):
        query = SlotQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        day = query.validated_data["date"]
        service_kind = query.validated_data["service_kind"]
        slots = describe_day(day, service_kind=service_kind)
        return Response(
            {
                "date": day.isoformat(),
                "weekday": weekday_name(day),
                "service_kind": service_kind,
                "slots": SlotAvailabilitySerializer(slots, many=True).data,
            }
        )


class SlotCheckView(APIView):
    """Whether one date and time can be booked."""

    def get(self, request, *args, **kwargs):
        query = SlotQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        slot_time = query.validated_data.get("time")
        if slot_time is None:
            return Response({"time": ["This field is required."]}, status=status.HTTP_400_BAD_REQUEST)
        decision = check_availability(
            query.validated_data["date"],
            slot_time,
            service_kind=query.validated_data["service_kind"],
        )
        return Response(AvailabilityDecisionSerializer(decision).data)
