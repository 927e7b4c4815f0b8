from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from bookings.services.emails import notify_sweep_failures
from payments.services.scheduler import FAILED, INDETERMINATE, process_due_payments


class Command(BaseCommand):
    help = "Charge every scheduled lesson whose payment is now due. Safe to run repeatedly."

    def add_arguments(self, parser):
        parser.add_argument(
            "--now",
            help="Run the sweep as if it were this ISO-8601 time (for replaying a missed run).",
        )
        parser.add_argument(
            "--no-email",
            action="store_true",
            help="Do not send payment failure emails.",
        )

    def handle(self, *args, **options):
        now = None
        if options.get("now"):
            now = parse_datetime(options["now"])
            if now is None:
                raise CommandError(f"Could not parse --now value {options['now']!r}.")
            if timezone.is_naive(now):
                now = timezone.make_aware(now)

        result = process_due_payments(now=now)
        if not options["no_email"]:
            notify_sweep_failures(result)

        self.stdout.write(
            self.style.MIGRATE_HEADING(
                f"Payment window {result.window_start:%Y-%m-%d %H:%M} to {result.window_end:%Y-%m-%d %H:%M}"
            )
        )
        if result.released:
            self.stdout.write(self.style.WARNING(f"Released {result.released} stale claim(s)."))
        for item in result.outcomes:
            line = f"{item.booking_id}: {item.outcome}"
            if item.message:
                line += f" ({item.message})"
            if item.outcome == FAILED:
                self.stdout.write(self.style.ERROR(line))
            elif item.outcome == INDETERMINATE:
                self.stdout.write(self.style.WARNING(line))
            else:
                self.stdout.write(line)
        summary = ", ".join(f"{count} {outcome}" for outcome, count in result.summary().items())
        self.stdout.write(self.style.SUCCESS(f"Sweep complete: {summary}."))
