import logging

from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from accounts.permissions import IsStaffRole
from bookings.exceptions import BookingError, BookingValidationError
from bookings.models import Booking
from bookings.pricing import price_per_lesson_cents
from bookings.serializers import BookingCreateSerializer, BookingSerializer, SeriesCreateSerializer
from bookings.services.cancellation import admin_cancel_booking, cancel_booking, refund_eligibility
from bookings.services.context import Requester
from bookings.services.emails import send_booking_confirmation_email, send_cancellation_email
from bookings.services.ledger import book_lesson
from bookings.services.series import create_series
from payments.services.scheduler import FAILED

logger = logging.getLogger(__name__)


def _error_response(exc: BookingError) -> Response:
    return Response(exc.as_payload(), status=exc.status_code)


def _lesson_price(service_kind: str) -> int:
    amount_cents = price_per_lesson_cents(service_kind)
    if amount_cents is None:
        raise BookingValidationError("This service has no price configured.")
    return amount_cents


class BookingViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = BookingSerializer
    permission_classes = [permissions.IsAuthenticated]
    filterset_fields = ["status", "payment_status", "service_kind", "occurrence_date", "series_id"]
    ordering_fields = ["starts_at", "created_at"]

    def get_queryset(self):
        queryset = Booking.objects.select_related("owner").order_by("starts_at", "series_sequence")
        if self.request.user.is_staff_role:
            return queryset
        return queryset.filter(owner=self.request.user)

    def _send_quietly(self, send, *args):
        # Mail problems must not undo a booking that is already committed.
        try:
            send(*args)
        except Exception:
            logger.exception("Failed to send %s", send.__name__)

    def create(self, request, *args, **kwargs):
        serializer = BookingCreateSerializer(data=request.data, context={"request": request})
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            booking = book_lesson(
                Requester.from_user(request.user),
                service_kind=data["service_kind"],
                occurrence_date=data["occurrence_date"],
                occurrence_time=data["occurrence_time"],
                amount_cents=_lesson_price(data["service_kind"]),
                student_email=data.get("student_email", ""),
            )
        except BookingError as exc:
            return _error_response(exc)

        booking.owner = request.user
        self._send_quietly(send_booking_confirmation_email, [booking])
        return Response(BookingSerializer(booking).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["post"], url_path="series")
    def series(self, request):
        serializer = SeriesCreateSerializer(data=request.data, context={"request": request})
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            result = create_series(
                Requester.from_user(request.user),
                service_kind=data["service_kind"],
                anchor_date=data["occurrence_date"],
                weekday=data["weekday"],
                occurrence_time=data["occurrence_time"],
                amount_cents=_lesson_price(data["service_kind"]),
                occurrence_count=data["occurrence_count"],
                student_email=data.get("student_email", ""),
                take_setup_charge=data["take_setup_charge"],
            )
        except BookingError as exc:
            return _error_response(exc)

        for booking in result.bookings:
            booking.owner = request.user
        self._send_quietly(send_booking_confirmation_email, result.bookings)

        payload = {
            "series_id": str(result.series_id),
            "bookings": BookingSerializer(result.bookings, many=True).data,
            "setup_charge": result.setup_charge.as_dict() if result.setup_charge else None,
        }
        if result.setup_charge and result.setup_charge.outcome == FAILED:
            payload["detail"] = result.setup_charge.message or "The first lesson could not be charged."
            payload["code"] = FAILED
            return Response(payload, status=status.HTTP_402_PAYMENT_REQUIRED)
        return Response(payload, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["get"], url_path="refund-eligibility", url_name="refund-eligibility")
    def eligibility(self, request, pk=None):
        booking = self.get_object()
        return Response(refund_eligibility(booking))

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        try:
            result = cancel_booking(pk, Requester.from_user(request.user))
        except BookingError as exc:
            return _error_response(exc)
        self._send_quietly(send_cancellation_email, result)
        return Response(result.as_dict())

    @action(detail=True, methods=["post"], url_path="admin-cancel", permission_classes=[IsStaffRole])
    def admin_cancel(self, request, pk=None):
        try:
            result = admin_cancel_booking(pk, Requester.from_user(request.user))
        except BookingError as exc:
            return _error_response(exc)
        self._send_quietly(send_cancellation_email, result)
        return Response(result.as_dict())
