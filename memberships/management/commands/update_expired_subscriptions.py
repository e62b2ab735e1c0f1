from __future__ import annotations

from django.core.management.base import BaseCommand

from memberships.subscriptions import update_expired_subscriptions


class Command(BaseCommand):
    help = "Mark active subscriptions whose end date has passed as expired."

    def handle(self, *args, **options):
        updated = update_expired_subscriptions()
        self.stdout.write(self.style.SUCCESS(f"Expired subscriptions: {updated}"))
