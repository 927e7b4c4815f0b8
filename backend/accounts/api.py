from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.tokens import RefreshToken
from rest_framework_simplejwt.views import TokenObtainPairView

from payments.exceptions import PaymentError, PaymentIndeterminate
from payments.services import gateway

from .serializers import (
    EmailTokenObtainPairSerializer,
    PaymentMethodConfirmSerializer,
    ProfileUpdateSerializer,
    RegisterSerializer,
    UserSerializer,
)


class RegisterView(APIView):
    """Create a new user account and issue an initial JWT pair."""

    permission_classes = [AllowAny]

    def post(self, request, *args, **kwargs):
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        refresh = RefreshToken.for_user(user)
        return Response(
            {
                "user": UserSerializer(user).data,
                "access": str(refresh.access_token),
                "refresh": str(refresh),
            },
            status=status.HTTP_201_CREATED,
        )


class LoginView(TokenObtainPairView):
    """Authenticate an existing user via email + password."""

    serializer_class = EmailTokenObtainPairSerializer


class MeView(APIView):
    """Return the serialized profile for the current authenticated user."""

    def get(self, request, *args, **kwargs):
        return Response(UserSerializer(request.user).data)

    def patch(self, request, *args, **kwargs):
        """Update the current user's profile."""
        serializer = ProfileUpdateSerializer(
            instance=request.user, data=request.data, partial=True
        )
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        return Response(UserSerializer(user).data)


def _payment_error_response(exc: PaymentError) -> Response:
    if isinstance(exc, PaymentIndeterminate):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        code = status.HTTP_402_PAYMENT_REQUIRED
    return Response({"detail": str(exc), "code": exc.code}, status=code)


class PaymentMethodSetupView(APIView):
    """Start saving a card; the client confirms the returned SetupIntent."""

    def post(self, request, *args, **kwargs):
        user = request.user
        try:
            setup = gateway.start_setup(customer_ref=user.payment_customer_ref, email=user.email)
        except PaymentError as exc:
            return _payment_error_response(exc)

        if setup.customer_ref != user.payment_customer_ref:
            user.payment_customer_ref = setup.customer_ref
            user.save(update_fields=["payment_customer_ref"])
        return Response(
            {"setup_ref": setup.setup_ref, "client_secret": setup.client_secret},
            status=status.HTTP_201_CREATED,
        )


class PaymentMethodView(APIView):
    """Store the card from a confirmed SetupIntent as the user's saved payment method."""

    def post(self, request, *args, **kwargs):
        serializer = PaymentMethodConfirmSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = request.user
        if not user.payment_customer_ref:
            return Response(
                {"detail": "Start card setup before saving a card."},
                status=status.HTTP_400_BAD_REQUEST,
            )
        try:
            setup = gateway.confirm_setup(
                setup_ref=serializer.validated_data["setup_ref"],
                customer_ref=user.payment_customer_ref,
            )
        except PaymentError as exc:
            return _payment_error_response(exc)

        user.payment_method_ref = setup.method_ref
        user.save(update_fields=["payment_method_ref"])
        return Response(UserSerializer(user).data)
