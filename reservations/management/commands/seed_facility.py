from __future__ import annotations

from django.core.management.base import BaseCommand

from reservations.seed import seed_facility


class Command(BaseCommand):
    help = "Seed facility settings and the default weekly schedule (idempotent)."

    def add_arguments(self, parser):
        parser.add_argument(
            "--update-existing",
            action="store_true",
            help="Reset existing weekdays to the default opening hours.",
        )

    def handle(self, *args, **options):
        result = seed_facility(update_existing=options["update_existing"])
        self.stdout.write(
            self.style.SUCCESS(
                f"Seed completed: created={result['created']} updated={result['updated']} skipped={result['skipped']}"
            )
        )
