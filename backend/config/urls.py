from django.contrib import admin
from django.urls import include, path
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenRefreshView

from accounts.api import LoginView, MeView, PaymentMethodSetupView, PaymentMethodView, RegisterView
from availability.api import SlotCheckView, SlotListView
from bookings.api import BookingViewSet
from payments.api import ProcessDuePaymentsView

router = DefaultRouter()
router.register(r"bookings", BookingViewSet, basename="booking")

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/auth/register/", RegisterView.as_view(), name="auth-register"),
    path("api/auth/login/", LoginView.as_view(), name="auth-login"),
    path("api/auth/refresh/", TokenRefreshView.as_view(), name="auth-refresh"),
    path("api/auth/me/", MeView.as_view(), name="auth-me"),
    path(
        "api/auth/payment-method/setup/",
        PaymentMethodSetupView.as_view(),
        name="auth-payment-method-setup",
    ),
    path("api/auth/payment-method/", PaymentMethodView.as_view(), name="auth-payment-method"),
    path("api/availability/slots/", SlotListView.as_view(), name="availability-slots"),
    path("api/availability/check/", SlotCheckView.as_view(), name="availability-check"),
    path(
        "api/payments/process-due/",
        ProcessDuePaymentsView.as_view(),
        name="payments-process-due",
    ),
    path("api/", include(router.urls)),
]
