from datetime import date, datetime, time, timedelta
from io import StringIO
from zoneinfo import ZoneInfo

import pytest
from django.core import mail
from django.core.management import call_command
from django.utils import timezone
from rest_framework.test import APIClient

from accounts.models import User
from bookings.models import Booking
from payments.exceptions import PaymentFailure, PaymentIndeterminate
from payments.models import PaymentLog
from payments.services import gateway, scheduler

LONDON = ZoneInfo("Europe/London")
TUESDAY = date(2025, 8, 19)
TWO_PM = time(14, 0)
# 23.5 hours before the Tuesday lesson.
SWEEP_AT = datetime(2025, 8, 18, 14, 30, tzinfo=LONDON)


@pytest.fixture
def student(db):
    return User.objects.create_user(
        username="student@example.com",
        email="student@example.com",
        password="examplepass",
        payment_customer_ref="cus_123",
        payment_method_ref="pm_123",
    )


@pytest.fixture
def booking(student):
    return Booking.objects.create(
        owner=student,
        service_kind=Booking.INDIVIDUAL,
        lesson_type=Booking.SINGLE,
        occurrence_date=TUESDAY,
        occurrence_time=TWO_PM,
        amount_cents=3000,
    )


@pytest.fixture
def charges(monkeypatch):
    calls = []

    def fake_charge(**kwargs):
        calls.append(kwargs)
        return gateway.ChargeResult(provider_ref=f"pi_{len(calls)}")

    monkeypatch.setattr(gateway, "charge", fake_charge)
    return calls


def test_due_booking_is_charged(booking, charges):
    result = scheduler.process_due_payments(now=SWEEP_AT)

    booking.refresh_from_db()
    assert [item.outcome for item in result.outcomes] == [scheduler.PAID]
    assert booking.payment_status == Booking.PAYMENT_PAID
    assert booking.payment_provider_ref == "pi_1"
    assert booking.paid_at == SWEEP_AT
    assert booking.payment_claimed_at is None
    assert charges[0]["amount_cents"] == 3000
    assert charges[0]["currency"] == "gbp"
    assert charges[0]["idempotency_key"] == f"booking-{booking.pk}-charge"
    assert charges[0]["payer"] == gateway.Payer(customer_ref="cus_123", method_ref="pm_123")
    assert PaymentLog.objects.filter(booking=booking, event=PaymentLog.CHARGE_SUCCEEDED).count() == 1


def test_two_sweeps_in_one_window_charge_once(booking, charges):
    scheduler.process_due_payments(now=SWEEP_AT)
    second = scheduler.process_due_payments(now=SWEEP_AT + timedelta(minutes=20))

    assert len(charges) == 1
    assert second.outcomes == []


def test_charge_booking_skips_rows_already_claimed(booking, charges):
    Booking.objects.filter(pk=booking.pk).update(payment_status=Booking.PAYMENT_PAID)

    outcome = scheduler.charge_booking(booking, now=SWEEP_AT)

    assert outcome.outcome == scheduler.SKIPPED
    assert charges == []


def test_bookings_outside_the_window_are_left_alone(student, booking, charges):
    later = Booking.objects.create(
        owner=student,
        service_kind=Booking.INDIVIDUAL,
        lesson_type=Booking.SINGLE,
        occurrence_date=date(2025, 8, 20),
        occurrence_time=TWO_PM,
        amount_cents=3000,
    )

    result = scheduler.process_due_payments(now=SWEEP_AT)

    later.refresh_from_db()
    assert [item.booking_id for item in result.outcomes] == [booking.pk]
    assert later.payment_status == Booking.PAYMENT_PENDING


def test_cancelled_booking_is_never_charged(booking, charges):
    Booking.objects.filter(pk=booking.pk).update(status=Booking.CANCELLED)

    result = scheduler.process_due_payments(now=SWEEP_AT)

    assert result.outcomes == []
    assert charges == []


def test_declined_charge_is_terminal(booking, monkeypatch):
    calls = []

    def decline(**kwargs):
        calls.append(kwargs)
        raise PaymentFailure("Your card was declined.")

    monkeypatch.setattr(gateway, "charge", decline)

    result = scheduler.process_due_payments(now=SWEEP_AT)
    scheduler.process_due_payments(now=SWEEP_AT + timedelta(minutes=30))

    booking.refresh_from_db()
    assert result.summary()[scheduler.FAILED] == 1
    assert booking.payment_status == Booking.PAYMENT_FAILED
    assert booking.payment_failure_reason == "Your card was declined."
    assert booking.status == Booking.SCHEDULED
    assert len(calls) == 1


def test_indeterminate_charge_is_retried_with_same_key(booking, monkeypatch):
    keys = []

    def flaky(**kwargs):
        keys.append(kwargs["idempotency_key"])
        if len(keys) == 1:
            raise PaymentIndeterminate("Request timed out")
        return gateway.ChargeResult(provider_ref="pi_retry")

    monkeypatch.setattr(gateway, "charge", flaky)

    first = scheduler.process_due_payments(now=SWEEP_AT)
    booking.refresh_from_db()
    assert first.outcomes[0].outcome == scheduler.INDETERMINATE
    assert booking.payment_status == Booking.PAYMENT_PENDING

    # The next hourly run, by which time the lesson is only 22.5 hours away.
    scheduler.process_due_payments(now=SWEEP_AT + timedelta(hours=1))

    booking.refresh_from_db()
    assert booking.payment_status == Booking.PAYMENT_PAID
    assert booking.payment_provider_ref == "pi_retry"
    assert keys == [f"booking-{booking.pk}-charge"] * 2


def test_indeterminate_charge_keeps_retrying_until_the_lesson(booking, monkeypatch):
    calls = []

    def timing_out(**kwargs):
        calls.append(kwargs)
        if len(calls) < 5:
            raise PaymentIndeterminate("Request timed out")
        return gateway.ChargeResult(provider_ref="pi_fifth")

    monkeypatch.setattr(gateway, "charge", timing_out)

    for hour in range(23):
        scheduler.process_due_payments(now=SWEEP_AT + timedelta(hours=hour))

    booking.refresh_from_db()
    assert len(calls) == 5
    assert booking.payment_status == Booking.PAYMENT_PAID
    assert booking.payment_provider_ref == "pi_fifth"


def test_infrequent_trigger_still_charges_the_lesson(booking, charges):
    # Runs every two hours: 24.5 hours before the lesson, then 22.5 hours before.
    early = scheduler.process_due_payments(now=datetime(2025, 8, 18, 13, 30, tzinfo=LONDON))
    late = scheduler.process_due_payments(now=datetime(2025, 8, 18, 15, 30, tzinfo=LONDON))

    booking.refresh_from_db()
    assert early.outcomes == []
    assert [item.outcome for item in late.outcomes] == [scheduler.PAID]
    assert booking.payment_status == Booking.PAYMENT_PAID
    assert len(charges) == 1


def test_lesson_that_has_started_is_not_charged(booking, charges):
    result = scheduler.process_due_payments(now=datetime(2025, 8, 19, 14, 0, tzinfo=LONDON))

    booking.refresh_from_db()
    assert result.outcomes == []
    assert booking.payment_status == Booking.PAYMENT_PENDING
    assert charges == []


def test_one_failure_does_not_abort_the_sweep(student, booking, monkeypatch):
    other = Booking.objects.create(
        owner=student,
        service_kind=Booking.GROUP,
        lesson_type=Booking.GROUP_LESSON,
        occurrence_date=TUESDAY,
        occurrence_time=time(14, 15),
        amount_cents=2000,
    )

    def charge(**kwargs):
        if kwargs["amount_cents"] == 3000:
            raise RuntimeError("boom")
        return gateway.ChargeResult(provider_ref="pi_ok")

    monkeypatch.setattr(gateway, "charge", charge)

    result = scheduler.process_due_payments(now=SWEEP_AT)

    booking.refresh_from_db()
    other.refresh_from_db()
    assert booking.payment_status == Booking.PAYMENT_PENDING
    assert other.payment_status == Booking.PAYMENT_PAID
    assert result.summary()[scheduler.INDETERMINATE] == 1
    assert result.summary()[scheduler.PAID] == 1


def test_stale_claim_is_released_and_charged(booking, charges):
    Booking.objects.filter(pk=booking.pk).update(
        payment_status=Booking.PAYMENT_PROCESSING,
        payment_claimed_at=SWEEP_AT - timedelta(minutes=20),
    )

    result = scheduler.process_due_payments(now=SWEEP_AT)

    booking.refresh_from_db()
    assert result.released == 1
    assert booking.payment_status == Booking.PAYMENT_PAID


def test_recent_claim_is_left_to_its_worker(booking, charges):
    Booking.objects.filter(pk=booking.pk).update(
        payment_status=Booking.PAYMENT_PROCESSING,
        payment_claimed_at=SWEEP_AT - timedelta(minutes=5),
    )

    result = scheduler.process_due_payments(now=SWEEP_AT)

    booking.refresh_from_db()
    assert result.released == 0
    assert booking.payment_status == Booking.PAYMENT_PROCESSING
    assert charges == []


def test_booking_cancelled_mid_charge_is_refunded(booking, monkeypatch):
    refunds = []

    def charge_while_cancelling(**kwargs):
        Booking.objects.filter(pk=booking.pk).update(status=Booking.CANCELLED)
        return gateway.ChargeResult(provider_ref="pi_late")

    def fake_refund(**kwargs):
        refunds.append(kwargs)
        return gateway.RefundResult(refund_ref="re_late")

    monkeypatch.setattr(gateway, "charge", charge_while_cancelling)
    monkeypatch.setattr(gateway, "refund", fake_refund)

    outcome = scheduler.charge_booking(booking, now=SWEEP_AT)

    booking.refresh_from_db()
    assert outcome.outcome == scheduler.REFUNDED
    assert booking.payment_status == Booking.PAYMENT_REFUNDED
    assert booking.refund_provider_ref == "re_late"
    assert refunds[0]["provider_ref"] == "pi_late"
    assert refunds[0]["idempotency_key"] == f"booking-{booking.pk}-refund"


def test_payment_due_helpers(booking):
    assert scheduler.payment_due_at(booking) == datetime(2025, 8, 18, 14, 0, tzinfo=LONDON)
    assert scheduler.time_until_payment(booking, now=datetime(2025, 8, 18, 10, 0, tzinfo=LONDON)) == timedelta(hours=4)
    assert scheduler.time_until_payment(booking, now=SWEEP_AT) == timedelta(0)


def test_management_command_runs_sweep(booking, charges):
    out = StringIO()

    call_command("process_due_payments", "--now", "2025-08-18T14:30:00+01:00", stdout=out)

    booking.refresh_from_db()
    assert booking.payment_status == Booking.PAYMENT_PAID
    assert "1 paid" in out.getvalue()


def test_management_command_emails_declined_owners(booking, monkeypatch):
    def decline(**kwargs):
        raise PaymentFailure("Your card was declined.")

    monkeypatch.setattr(gateway, "charge", decline)

    call_command("process_due_payments", "--now", "2025-08-18T14:30:00+01:00", stdout=StringIO())

    assert len(mail.outbox) == 1
    assert mail.outbox[0].subject == "Lesson payment failed"
    assert "Your card was declined." in mail.outbox[0].body


def test_api_process_due_is_staff_only(student, charges):
    tutor = User.objects.create_user(
        username="tutor@example.com",
        email="tutor@example.com",
        password="examplepass",
        role=User.TUTOR,
    )
    starts_at = timezone.localtime(timezone.now() + timedelta(hours=23, minutes=30))
    due = Booking.objects.create(
        owner=student,
        service_kind=Booking.INDIVIDUAL,
        lesson_type=Booking.SINGLE,
        occurrence_date=starts_at.date(),
        occurrence_time=starts_at.time().replace(second=0, microsecond=0),
        amount_cents=3000,
    )
    client = APIClient()

    client.force_authenticate(user=student)
    assert client.post("/api/payments/process-due/").status_code == 403

    client.force_authenticate(user=tutor)
    response = client.post("/api/payments/process-due/")

    assert response.status_code == 200
    assert response.json()["summary"]["paid"] == 1
    due.refresh_from_db()
    assert due.payment_status == Booking.PAYMENT_PAID
