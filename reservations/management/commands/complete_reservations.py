from __future__ import annotations

from django.core.management.base import BaseCommand

from reservations.services import complete_past_reservations


class Command(BaseCommand):
    help = "Mark confirmed reservations whose end time has passed as completed."

    def handle(self, *args, **options):
        updated = complete_past_reservations()
        self.stdout.write(self.style.SUCCESS(f"Completed reservations: {updated}"))
