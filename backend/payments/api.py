from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.permissions import IsStaffRole
from bookings.services.emails import notify_sweep_failures
from payments.services.scheduler import process_due_payments


class ProcessDuePaymentsView(APIView):
    """Run the payment sweep on demand, for staff without shell access."""

    permission_classes = [IsStaffRole]

    def post(self, request, *args, **kwargs):
        result = process_due_payments()
        notify_sweep_failures(result)
        return Response(result.as_dict())
