"""
Recurring billing: materialize one renewal statement and one pending payment
per subscription per cycle.

A subscription is due when it is ACTIVE, recurring, and ends within
BILLING_RENEWAL_WINDOW_DAYS. Each subscription is processed in its own
transaction, so a failure leaves the others untouched and a rerun simply skips
subscriptions that already have a PENDING statement.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date as date_type
from datetime import datetime, timedelta

from django.conf import settings
from django.core.cache import cache
from django.db import IntegrityError, transaction
from django.utils import timezone

from .dates import add_duration
from .documents import issue_invoice
from .emails import notify_billing_statement_generated
from .models import (
    BillingStatement,
    BillingStatementStatus,
    MembershipSubscription,
    Payment,
    PaymentMethod,
    PaymentStatus,
    SubscriptionStatus,
)
from .payments import MembershipError, generate_payment_code


logger = logging.getLogger(__name__)

BILLING_LOCK_KEY = "memberships:billing-run"


class BillingAlreadyRunningError(MembershipError):
    """Raised when another billing run holds the lock."""


@dataclass
class BillingRunResult:
    created: int = 0
    skipped: int = 0
    failed: int = 0


def due_subscriptions(today: date_type):
    window = int(getattr(settings, "BILLING_RENEWAL_WINDOW_DAYS", 5))
    return (
        MembershipSubscription.objects.filter(
            status=SubscriptionStatus.ACTIVE,
            is_recurring=True,
            end_date__gte=today,
            end_date__lte=today + timedelta(days=window),
        )
        .select_related("user", "membership_offer")
        .order_by("end_date", "id")
    )


def has_pending_statement(subscription_id: int) -> bool:
    return BillingStatement.objects.filter(
        membership_subscription_id=subscription_id,
        status=BillingStatementStatus.PENDING,
    ).exists()


def create_statement(subscription_id: int, *, today: date_type) -> BillingStatement | None:
    """
    Create the statement and its pending payment for one subscription, or
    return None when a PENDING statement already exists.
    """
    with transaction.atomic():
        subscription = (
            MembershipSubscription.objects.select_for_update()
            .select_related("membership_offer")
            .get(pk=subscription_id)
        )
        if has_pending_statement(subscription.pk):
            return None

        offer = subscription.membership_offer
        period_start = subscription.end_date
        period_end = add_duration(period_start, offer.duration_type, offer.duration_value)

        statement = BillingStatement.objects.create(
            user_id=subscription.user_id,
            membership_subscription=subscription,
            statement_date=today,
            period_start=period_start,
            period_end=period_end,
            amount=offer.price,
            status=BillingStatementStatus.PENDING,
            due_date=subscription.end_date,
        )
        payment = Payment.objects.create(
            user_id=subscription.user_id,
            membership_offer=offer,
            payment_method=PaymentMethod.CASH,
            amount=offer.price,
            status=PaymentStatus.PENDING,
            payment_code=generate_payment_code(),
        )
        statement.payment = payment
        statement.save(update_fields=["payment", "updated_at"])
        issue_invoice(statement)
    return statement


def _run(today: date_type) -> BillingRunResult:
    result = BillingRunResult()

    for subscription in due_subscriptions(today):
        if has_pending_statement(subscription.pk):
            result.skipped += 1
            continue

        try:
            statement = create_statement(subscription.pk, today=today)
        except IntegrityError:
            logger.warning("Billing statement for subscription %s was created concurrently; skipping", subscription.pk)
            result.skipped += 1
            continue
        except Exception:
            logger.exception("Failed to process recurring billing for subscription %s", subscription.pk)
            result.failed += 1
            continue

        if statement is None:
            result.skipped += 1
            continue

        result.created += 1
        logger.info(
            "Billing statement %s generated for subscription %s (due %s)",
            statement.pk,
            subscription.pk,
            statement.due_date,
        )
        notify_billing_statement_generated(statement)

    return result


def generate_billing_statements(*, now: datetime | None = None) -> BillingRunResult:
    """
    Run one billing cycle. Only one run may be in progress at a time.
    """
    today = timezone.localdate(now) if now is not None else timezone.localdate()
    timeout = int(getattr(settings, "BILLING_LOCK_TIMEOUT_SECONDS", 3600))

    if not cache.add(BILLING_LOCK_KEY, timezone.now().isoformat(), timeout=timeout):
        raise BillingAlreadyRunningError("Another billing run is in progress.")

    try:
        result = _run(today)
    finally:
        cache.delete(BILLING_LOCK_KEY)

    logger.info(
        "Billing run for %s finished: created=%s skipped=%s failed=%s",
        today,
        result.created,
        result.skipped,
        result.failed,
    )
    return result
