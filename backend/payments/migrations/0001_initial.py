import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("bookings", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="PaymentLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "event",
                    models.CharField(
                        choices=[
                            ("series_created", "Series created"),
                            ("charge_succeeded", "Charge succeeded"),
                            ("charge_failed", "Charge failed"),
                            ("charge_indeterminate", "Charge outcome unknown"),
                            ("refund_succeeded", "Refund succeeded"),
                            ("refund_failed", "Refund failed"),
                            ("cancelled", "Cancelled"),
                            ("admin_cancelled", "Cancelled by staff"),
                        ],
                        max_length=30,
                    ),
                ),
                ("amount_cents", models.PositiveIntegerField(default=0)),
                ("currency", models.CharField(default="gbp", max_length=10)),
                ("provider_ref", models.CharField(blank=True, max_length=255)),
                ("message", models.CharField(blank=True, max_length=500)),
                ("payload", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="payment_logs",
                        to="bookings.booking",
                    ),
                ),
            ],
            options={
                "ordering": ["created_at", "id"],
            },
        ),
    ]
