import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="GroupSession",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("occurrence_date", models.DateField()),
                ("occurrence_time", models.TimeField()),
                ("capacity", models.PositiveIntegerField()),
                ("seats_taken", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["occurrence_date", "occurrence_time"],
            },
        ),
        migrations.AddConstraint(
            model_name="groupsession",
            constraint=models.UniqueConstraint(
                fields=("occurrence_date", "occurrence_time"),
                name="unique_group_session_slot",
            ),
        ),
        migrations.CreateModel(
            name="Booking",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("student_email", models.EmailField(blank=True, max_length=254)),
                (
                    "service_kind",
                    models.CharField(
                        choices=[("individual", "Individual"), ("group", "Group"), ("exam_prep", "Exam preparation")],
                        max_length=20,
                    ),
                ),
                (
                    "lesson_type",
                    models.CharField(
                        choices=[("single", "Single"), ("recurring", "Recurring"), ("group", "Group")],
                        max_length=20,
                    ),
                ),
                ("occurrence_date", models.DateField()),
                ("occurrence_time", models.TimeField()),
                ("occurrence_weekday", models.CharField(max_length=10)),
                ("starts_at", models.DateTimeField()),
                ("cancellation_deadline", models.DateTimeField()),
                (
                    "status",
                    models.CharField(
                        choices=[("scheduled", "Scheduled"), ("cancelled", "Cancelled")],
                        default="scheduled",
                        max_length=12,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("paid", "Paid"),
                            ("payment_failed", "Payment failed"),
                            ("refunded", "Refunded"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("amount_cents", models.PositiveIntegerField()),
                ("currency", models.CharField(default="gbp", max_length=10)),
                ("series_id", models.UUIDField(blank=True, db_index=True, null=True)),
                ("series_sequence", models.PositiveIntegerField(blank=True, null=True)),
                ("series_total", models.PositiveIntegerField(blank=True, null=True)),
                ("payment_provider_ref", models.CharField(blank=True, max_length=255, null=True)),
                ("payment_claimed_at", models.DateTimeField(blank=True, null=True)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("payment_failure_reason", models.CharField(blank=True, max_length=500)),
                ("refund_provider_ref", models.CharField(blank=True, max_length=255, null=True)),
                ("refund_unresolved", models.BooleanField(default=False)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "cancelled_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="cancelled_bookings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "group_session",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings",
                        to="bookings.groupsession",
                    ),
                ),
                (
                    "owner",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["starts_at", "series_sequence"],
            },
        ),
        migrations.AddIndex(
            model_name="booking",
            index=models.Index(fields=["status", "payment_status", "starts_at"], name="booking_payment_due_idx"),
        ),
        migrations.AddConstraint(
            model_name="booking",
            constraint=models.UniqueConstraint(
                condition=models.Q(("status", "scheduled"), ("service_kind__in", ["individual", "exam_prep"]))
                & ~models.Q(("payment_status", "refunded")),
                fields=("occurrence_date", "occurrence_time"),
                name="unique_active_exclusive_slot",
            ),
        ),
    ]
