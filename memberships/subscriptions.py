from __future__ import annotations

import logging
from datetime import date as date_type

from django.utils import timezone

from .models import MembershipSubscription, SubscriptionStatus


logger = logging.getLogger(__name__)


def has_active_membership(user, category: str) -> bool:
    return MembershipSubscription.objects.filter(
        user=user,
        status=SubscriptionStatus.ACTIVE,
        end_date__gte=timezone.localdate(),
        membership_offer__category=category,
    ).exists()


def update_expired_subscriptions(*, today: date_type | None = None) -> int:
    """
    Move ACTIVE subscriptions whose end date has passed to EXPIRED.
    Returns the number of rows updated; a second run finds nothing to do.
    """
    today = today or timezone.localdate()
    updated = 0
    for subscription in MembershipSubscription.objects.filter(
        status=SubscriptionStatus.ACTIVE,
        end_date__lt=today,
    ).iterator():
        subscription.status = SubscriptionStatus.EXPIRED
        subscription.save(update_fields=["status", "updated_at"])
        updated += 1

    logger.info("Expired %s subscriptions", updated)
    return updated
