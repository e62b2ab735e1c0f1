from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from memberships.billing import BillingAlreadyRunningError, generate_billing_statements


class Command(BaseCommand):
    help = "Generate renewal statements and pending payments for recurring subscriptions that are due."

    def handle(self, *args, **options):
        try:
            result = generate_billing_statements()
        except BillingAlreadyRunningError as exc:
            raise CommandError(str(exc)) from exc

        summary = f"Billing statements: created={result.created} skipped={result.skipped} failed={result.failed}"
        if result.failed:
            raise CommandError(summary)
        self.stdout.write(self.style.SUCCESS(summary))
