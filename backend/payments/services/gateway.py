from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional
from uuid import uuid4

import stripe
from django.conf import settings

from payments.exceptions import PaymentFailure, PaymentIndeterminate

logger = logging.getLogger(__name__)


@dataclass
class Payer:
    """Saved Stripe references used for an off-session charge."""

    customer_ref: str = ""
    method_ref: str = ""

    @classmethod
    def for_user(cls, user) -> "Payer":
        return cls(
            customer_ref=getattr(user, "payment_customer_ref", "") or "",
            method_ref=getattr(user, "payment_method_ref", "") or "",
        )


@dataclass
class ChargeResult:
    provider_ref: str
    status: str = "succeeded"


@dataclass
class RefundResult:
    refund_ref: str
    status: str = "succeeded"
    metadata: dict = field(default_factory=dict)


def _get_stripe_api_key() -> Optional[str]:
    key = getattr(settings, "STRIPE_SECRET_KEY", "")
    return key or None


def _should_use_stub() -> bool:
    if getattr(settings, "STRIPE_USE_STUB", False):
        return True
    return _get_stripe_api_key() is None


def _configure_stripe() -> None:
    api_key = _get_stripe_api_key()
    if not api_key:
        raise RuntimeError("Stripe secret key is not configured.")
    stripe.api_key = api_key
    # Bounded provider calls; retries are left to the next sweep.
    stripe.max_network_retries = 0
    stripe.default_http_client = stripe.RequestsClient(timeout=settings.STRIPE_TIMEOUT_SECONDS)


def _translate_stripe_error(exc: stripe.error.StripeError, action: str):
    if isinstance(
        exc,
        (stripe.error.APIConnectionError, stripe.error.RateLimitError, stripe.error.APIError),
    ):
        logger.warning("Stripe %s outcome unknown: %s", action, exc)
        return PaymentIndeterminate(str(exc))
    message = getattr(exc, "user_message", None) or str(exc)
    logger.warning("Stripe %s failed: %s", action, message)
    return PaymentFailure(message)


def charge(
    *,
    amount_cents: int,
    currency: str,
    payer: Payer,
    idempotency_key: str,
    description: str = "",
    metadata: dict | None = None,
) -> ChargeResult:
    """
    Charge a saved card off-session.

    Raises PaymentFailure when the provider gives a definite decline and
    PaymentIndeterminate when the call timed out or the outcome is unknown.
    The idempotency key makes a retried call return the original charge.
    """

    if _should_use_stub():
        return ChargeResult(provider_ref=f"pi_test_{uuid4().hex}")

    if not payer.method_ref:
        raise PaymentFailure("No saved payment method on file.")

    _configure_stripe()
    try:
        intent = stripe.PaymentIntent.create(
            amount=amount_cents,
            currency=currency,
            customer=payer.customer_ref or None,
            payment_method=payer.method_ref,
            off_session=True,
            confirm=True,
            description=description or None,
            metadata=metadata or {},
            idempotency_key=idempotency_key,
        )
    except stripe.error.StripeError as exc:
        raise _translate_stripe_error(exc, "charge") from exc

    if intent.status != "succeeded":
        raise PaymentFailure(f"Payment {intent.id} ended in status {intent.status}.")
    return ChargeResult(provider_ref=intent.id, status=intent.status)


def refund(
    *,
    provider_ref: str,
    idempotency_key: str,
    metadata: dict | None = None,
) -> RefundResult:
    """Refund a previous charge in full."""

    if _should_use_stub():
        return RefundResult(refund_ref=f"re_test_{uuid4().hex}", metadata=metadata or {})

    if not provider_ref:
        raise PaymentFailure("Booking has no charge to refund.")

    _configure_stripe()
    try:
        result = stripe.Refund.create(
            payment_intent=provider_ref,
            reason="requested_by_customer",
            metadata=metadata or {},
            idempotency_key=idempotency_key,
        )
    except stripe.error.StripeError as exc:
        raise _translate_stripe_error(exc, "refund") from exc

    if result.status not in {"succeeded", "pending"}:
        raise PaymentFailure(f"Refund {result.id} ended in status {result.status}.")
    return RefundResult(refund_ref=result.id, status=result.status, metadata=metadata or {})


@dataclass
class SetupResult:
    customer_ref: str
    setup_ref: str = ""
    client_secret: str = ""
    method_ref: str = ""


def start_setup(*, customer_ref: str, email: str) -> SetupResult:
    """Open a SetupIntent so the client can save a card for off-session charges."""

    if _should_use_stub():
        return SetupResult(
            customer_ref=customer_ref or f"cus_test_{uuid4().hex}",
            setup_ref=f"seti_test_{uuid4().hex}",
            client_secret=f"seti_test_secret_{uuid4().hex}",
        )

    _configure_stripe()
    try:
        if not customer_ref:
            customer_ref = stripe.Customer.create(email=email).id
        intent = stripe.SetupIntent.create(
            customer=customer_ref,
            usage="off_session",
            payment_method_types=["card"],
        )
    except stripe.error.StripeError as exc:
        raise _translate_stripe_error(exc, "card setup") from exc
    return SetupResult(customer_ref=customer_ref, setup_ref=intent.id, client_secret=intent.client_secret)


def confirm_setup(*, setup_ref: str, customer_ref: str) -> SetupResult:
    """
    Read back a SetupIntent the client has confirmed and return the saved card.

    The intent must have succeeded and belong to ``customer_ref``.
    """

    if _should_use_stub():
        return SetupResult(customer_ref=customer_ref, setup_ref=setup_ref, method_ref=f"pm_test_{uuid4().hex}")

    _configure_stripe()
    try:
        intent = stripe.SetupIntent.retrieve(setup_ref)
    except stripe.error.StripeError as exc:
        raise _translate_stripe_error(exc, "card setup") from exc

    if intent.customer != customer_ref:
        raise PaymentFailure("This card setup belongs to a different customer.")
    if intent.status != "succeeded" or not intent.payment_method:
        raise PaymentFailure(f"Card setup {intent.id} ended in status {intent.status}.")
    return SetupResult(customer_ref=customer_ref, setup_ref=intent.id, method_ref=intent.payment_method)
