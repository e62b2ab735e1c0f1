from __future__ import annotations

from django.core.management.base import BaseCommand

from memberships.payments import cancel_stale_pending_payments


class Command(BaseCommand):
    help = "Cancel pending payments older than PAYMENT_STALE_AFTER_DAYS and release their codes."

    def handle(self, *args, **options):
        cancelled = cancel_stale_pending_payments()
        self.stdout.write(self.style.SUCCESS(f"Cancelled stale payments: {cancelled}"))
