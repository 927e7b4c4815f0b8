from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from accounts.models import User
from bookings.exceptions import BookingValidationError, SeriesNotAvailable
from bookings.models import Booking
from bookings.services.context import Requester
from bookings.services.series import create_series, occurrence_dates
from payments.exceptions import PaymentFailure
from payments.models import PaymentLog
from payments.services import gateway

LONDON = ZoneInfo("Europe/London")
NOW = datetime(2025, 1, 10, 12, 0, tzinfo=LONDON)
ANCHOR = date(2025, 1, 20)
TEN_AM = time(10, 0)


@pytest.fixture
def student(db):
    return User.objects.create_user(
        username="student@example.com",
        email="student@example.com",
        password="examplepass",
    )


@pytest.fixture
def api_client(student):
    client = APIClient()
    client.force_authenticate(user=student)
    return client


def _series(user, **overrides):
    params = {
        "service_kind": Booking.INDIVIDUAL,
        "anchor_date": ANCHOR,
        "weekday": "monday",
        "occurrence_time": TEN_AM,
        "amount_cents": 3000,
        "occurrence_count": 6,
        "now": NOW,
    }
    params.update(overrides)
    return create_series(Requester.from_user(user), **params)


def _next_open_monday():
    day = timezone.localdate() + timedelta(days=7)
    while day.weekday() != 0:
        day += timedelta(days=1)
    return day


def test_six_week_series_from_monday_anchor(student):
    result = _series(student)

    rows = list(Booking.objects.in_series(result.series_id))
    assert [row.occurrence_date for row in rows] == [
        date(2025, 1, 20),
        date(2025, 1, 27),
        date(2025, 2, 3),
        date(2025, 2, 10),
        date(2025, 2, 17),
        date(2025, 2, 24),
    ]
    assert [row.series_sequence for row in rows] == [1, 2, 3, 4, 5, 6]
    assert {row.series_total for row in rows} == {6}
    assert {row.series_id for row in rows} == {result.series_id}
    assert {row.lesson_type for row in rows} == {Booking.RECURRING}
    assert {row.payment_status for row in rows} == {Booking.PAYMENT_PENDING}
    assert rows[-1].is_last_in_series
    assert result.setup_charge is None


def test_series_creation_is_logged_once(student):
    result = _series(student)

    logs = PaymentLog.objects.filter(event=PaymentLog.SERIES_CREATED)
    assert logs.count() == 1
    assert logs.get().booking == result.first
    assert logs.get().payload["series_id"] == str(result.series_id)


def test_weekday_must_match_anchor(student):
    with pytest.raises(BookingValidationError):
        _series(student, weekday="tuesday")

    assert not Booking.objects.exists()


def test_numeric_weekday_is_accepted(student):
    result = _series(student, weekday=0, occurrence_count=2)

    assert len(result.bookings) == 2


@pytest.mark.parametrize("count", [0, 13, -1, True])
def test_occurrence_count_is_bounded(student, count):
    with pytest.raises(BookingValidationError):
        _series(student, occurrence_count=count)


def test_series_is_all_or_nothing(student):
    blocker = Booking.objects.create(
        owner=student,
        service_kind=Booking.INDIVIDUAL,
        lesson_type=Booking.SINGLE,
        occurrence_date=date(2025, 2, 3),
        occurrence_time=TEN_AM,
        amount_cents=3000,
        payment_status=Booking.PAYMENT_PAID,
    )

    with pytest.raises(SeriesNotAvailable) as excinfo:
        _series(student)

    assert excinfo.value.failures == [{"sequence": 3, "date": date(2025, 2, 3), "reason": "already_booked"}]
    assert list(Booking.objects.all()) == [blocker]
    assert not PaymentLog.objects.exists()


def test_every_failing_occurrence_is_reported(student):
    for day in (date(2025, 1, 27), date(2025, 2, 17)):
        Booking.objects.create(
            owner=student,
            service_kind=Booking.EXAM_PREP,
            lesson_type=Booking.SINGLE,
            occurrence_date=day,
            occurrence_time=TEN_AM,
            amount_cents=3500,
        )

    with pytest.raises(SeriesNotAvailable) as excinfo:
        _series(student)

    payload = excinfo.value.as_payload()
    assert [failure["sequence"] for failure in payload["failures"]] == [2, 5]
    assert payload["failures"][0]["date"] == "2025-01-27"
    assert payload["code"] == "already_booked"


def test_series_starting_too_soon_is_rejected(student):
    with pytest.raises(SeriesNotAvailable) as excinfo:
        _series(student, now=datetime(2025, 1, 19, 18, 0, tzinfo=LONDON))

    assert excinfo.value.failures[0]["sequence"] == 1
    assert excinfo.value.failures[0]["reason"] == "too_soon"


def test_occurrence_dates_do_not_skip_holidays():
    assert occurrence_dates(date(2025, 12, 22), 3) == [
        date(2025, 12, 22),
        date(2025, 12, 29),
        date(2026, 1, 5),
    ]


def test_setup_charge_pays_first_occurrence_only(student):
    result = _series(student, occurrence_count=3, take_setup_charge=True)

    rows = list(Booking.objects.in_series(result.series_id))
    assert result.setup_charge.outcome == "paid"
    assert rows[0].payment_status == Booking.PAYMENT_PAID
    assert rows[0].payment_provider_ref.startswith("pi_test_")
    assert [row.payment_status for row in rows[1:]] == [Booking.PAYMENT_PENDING] * 2


def test_failed_setup_charge_keeps_the_series(student, monkeypatch):
    def decline(**kwargs):
        raise PaymentFailure("Your card was declined.")

    monkeypatch.setattr(gateway, "charge", decline)

    result = _series(student, occurrence_count=2, take_setup_charge=True)

    assert result.setup_charge.outcome == "payment_failed"
    first = Booking.objects.get(pk=result.first.pk)
    assert first.payment_status == Booking.PAYMENT_FAILED
    assert first.payment_failure_reason == "Your card was declined."
    assert Booking.objects.count() == 2


def test_api_creates_default_four_week_series(api_client):
    monday = _next_open_monday()

    response = api_client.post(
        "/api/bookings/series/",
        {"service_kind": "individual", "occurrence_date": monday.isoformat(), "occurrence_time": "16:00"},
        format="json",
    )

    assert response.status_code == 201
    body = response.json()
    assert len(body["bookings"]) == 4
    assert [row["series_sequence"] for row in body["bookings"]] == [1, 2, 3, 4]
    assert body["bookings"][3]["occurrence_date"] == (monday + timedelta(weeks=3)).isoformat()
    assert body["setup_charge"] is None


def test_api_reports_series_failures(api_client, student):
    monday = _next_open_monday()
    Booking.objects.create(
        owner=student,
        service_kind=Booking.INDIVIDUAL,
        lesson_type=Booking.SINGLE,
        occurrence_date=monday + timedelta(weeks=1),
        occurrence_time=time(16, 0),
        amount_cents=3000,
    )

    response = api_client.post(
        "/api/bookings/series/",
        {
            "service_kind": "individual",
            "occurrence_date": monday.isoformat(),
            "occurrence_time": "16:00",
            "weekday": "Monday",
            "occurrence_count": 3,
        },
        format="json",
    )

    assert response.status_code == 409
    assert response.json()["failures"] == [
        {"sequence": 2, "date": (monday + timedelta(weeks=1)).isoformat(), "reason": "already_booked"}
    ]
    assert Booking.objects.count() == 1


def test_api_setup_charge_failure_is_payment_required(api_client, monkeypatch):
    def decline(**kwargs):
        raise PaymentFailure("Insufficient funds.")

    monkeypatch.setattr(gateway, "charge", decline)

    response = api_client.post(
        "/api/bookings/series/",
        {
            "service_kind": "individual",
            "occurrence_date": _next_open_monday().isoformat(),
            "occurrence_time": "16:00",
            "occurrence_count": 2,
            "take_setup_charge": True,
        },
        format="json",
    )

    assert response.status_code == 402
    body = response.json()
    assert body["code"] == "payment_failed"
    assert body["detail"] == "Insufficient funds."
    assert len(body["bookings"]) == 2
