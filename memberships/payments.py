from __future__ import annotations

import logging
import string
from datetime import datetime, timedelta
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from django.utils.crypto import get_random_string

from .dates import add_duration
from .documents import issue_receipt, set_invoice_status
from .models import (
    BillingStatement,
    BillingStatementStatus,
    FirstTimeDiscount,
    InvoiceStatus,
    MembershipOffer,
    MembershipSubscription,
    Payment,
    PaymentMethod,
    PaymentStatus,
    Promo,
    SubscriptionStatus,
)


logger = logging.getLogger(__name__)

PAYMENT_CODE_LENGTH = 8
PAYMENT_CODE_ALPHABET = string.ascii_uppercase + string.digits


class MembershipError(Exception):
    """Base error type for membership and payment domain errors."""


class PurchaseError(MembershipError):
    """Raised when a purchase request breaks a business rule."""


class PaymentStateError(MembershipError):
    """Raised on an illegal payment status transition."""


def generate_payment_code() -> str:
    """
    Return an 8-character uppercase alphanumeric code no payment holds yet.
    """
    while True:
        code = get_random_string(PAYMENT_CODE_LENGTH, allowed_chars=PAYMENT_CODE_ALPHABET)
        if not Payment.objects.filter(payment_code=code).exists():
            return code


def is_eligible_for_first_time_discount(user) -> bool:
    """
    Only members who never subscribed and never paid with a promo or a
    first-time discount qualify.
    """
    if MembershipSubscription.objects.filter(user=user).exists():
        return False
    return not (
        Payment.objects.filter(user=user, status=PaymentStatus.PAID)
        .filter(Q(promo__isnull=False) | Q(first_time_discount__isnull=False))
        .exists()
    )


def quote_price(
    offer: MembershipOffer,
    *,
    promo: Promo | None = None,
    first_time_discount: FirstTimeDiscount | None = None,
) -> Decimal:
    price = offer.price
    if promo is not None:
        price = promo.apply(price)
    if first_time_discount is not None:
        price = first_time_discount.apply(price)
    return price


def initiate_purchase(
    *,
    user,
    offer: MembershipOffer,
    payment_method: str = PaymentMethod.CASH,
    promo: Promo | None = None,
    first_time_discount: FirstTimeDiscount | None = None,
) -> Payment:
    """
    Create the PENDING payment for a membership purchase. The subscription
    itself is created when the payment is confirmed (see mark_payment_paid).
    """
    if not offer.is_active:
        raise PurchaseError("This membership offer is not available.")
    if payment_method not in PaymentMethod.values:
        raise PurchaseError("Unsupported payment method.")
    if promo is not None and first_time_discount is not None:
        raise PurchaseError(
            "You cannot use both a promo and a first-time discount on the same membership purchase. Please choose one."
        )

    if MembershipSubscription.objects.filter(
        user=user,
        status=SubscriptionStatus.ACTIVE,
        membership_offer__category=offer.category,
    ).exists():
        raise PurchaseError(
            f"You already have an active {offer.category} membership. "
            "You cannot have multiple active memberships of the same category."
        )
    if Payment.objects.filter(
        user=user,
        status=PaymentStatus.PENDING,
        membership_offer__category=offer.category,
    ).exists():
        raise PurchaseError(
            f"You already have a pending payment for a {offer.category} membership. "
            "Please complete or cancel that payment first."
        )

    if promo is not None:
        if not promo.is_currently_active():
            raise PurchaseError("The selected promo is not currently active.")
        if not promo.applies_to(offer.category):
            raise PurchaseError("This promo is not applicable to this membership category.")

    if first_time_discount is not None:
        if not is_eligible_for_first_time_discount(user):
            raise PurchaseError(
                "You are not eligible for first-time discounts. "
                "You have already used a promo or purchased a membership."
            )
        if not first_time_discount.is_currently_active():
            raise PurchaseError("The selected first-time discount is not currently active.")
        if not first_time_discount.applies_to(offer.category):
            raise PurchaseError("This first-time discount is not applicable to this membership category.")

    amount = quote_price(offer, promo=promo, first_time_discount=first_time_discount)

    with transaction.atomic():
        payment = Payment.objects.create(
            user=user,
            membership_offer=offer,
            promo=promo,
            first_time_discount=first_time_discount,
            payment_code=generate_payment_code(),
            payment_method=payment_method,
            amount=amount,
            status=PaymentStatus.PENDING,
        )

    logger.info(
        "Payment %s initiated: user=%s offer=%s method=%s amount=%s",
        payment.id,
        user.id,
        offer.id,
        payment_method,
        amount,
    )
    return payment


def mark_payment_paid(payment: Payment, *, paid_at: datetime | None = None) -> MembershipSubscription:
    """
    Confirm a PENDING payment and apply it.

    A renewal payment (linked to a billing statement) settles the statement and
    extends its subscription to the statement's period end. Any other payment
    starts a new subscription from the payment date.
    """
    paid_at = paid_at or timezone.now()

    with transaction.atomic():
        payment = (
            Payment.objects.select_for_update()
            .select_related("membership_offer")
            .get(pk=payment.pk)
        )
        if payment.status != PaymentStatus.PENDING:
            raise PaymentStateError("Only pending payments can be marked as paid.")

        payment.status = PaymentStatus.PAID
        payment.payment_date = paid_at
        payment.payment_code = None
        payment.save(update_fields=["status", "payment_date", "payment_code", "updated_at"])
        issue_receipt(payment)

        statement = (
            payment.billing_statements.select_related("membership_subscription")
            .filter(status=BillingStatementStatus.PENDING)
            .first()
        )
        if statement is not None:
            statement.status = BillingStatementStatus.PAID
            statement.save(update_fields=["status", "updated_at"])
            set_invoice_status([statement.pk], InvoiceStatus.PAID)

            subscription = statement.membership_subscription
            subscription.end_date = max(subscription.end_date, statement.period_end)
            if subscription.status == SubscriptionStatus.EXPIRED:
                subscription.status = SubscriptionStatus.ACTIVE
            subscription.save(update_fields=["end_date", "status", "updated_at"])
            logger.info("Payment %s renewed subscription %s until %s", payment.id, subscription.id, subscription.end_date)
            return subscription

        offer = payment.membership_offer
        start_date = timezone.localtime(paid_at).date()
        subscription = MembershipSubscription.objects.create(
            user_id=payment.user_id,
            membership_offer=offer,
            payment=payment,
            promo_id=payment.promo_id,
            first_time_discount_id=payment.first_time_discount_id,
            price_paid=payment.amount,
            start_date=start_date,
            end_date=add_duration(start_date, offer.duration_type, offer.duration_value),
            status=SubscriptionStatus.ACTIVE,
            is_recurring=offer.is_recurring,
        )
    logger.info("Payment %s started subscription %s", payment.id, subscription.id)
    return subscription


def _close_pending_statements(payment_ids, *, now: datetime) -> int:
    """
    Cancel the PENDING statements (and their invoices) billed through the given
    payments, so the next billing run can issue a fresh one.
    """
    statement_ids = list(
        BillingStatement.objects.filter(
            payment_id__in=payment_ids,
            status=BillingStatementStatus.PENDING,
        ).values_list("pk", flat=True)
    )
    if not statement_ids:
        return 0
    BillingStatement.objects.filter(pk__in=statement_ids).update(
        status=BillingStatementStatus.CANCELLED,
        updated_at=now,
    )
    set_invoice_status(statement_ids, InvoiceStatus.CANCELLED)
    logger.info("Cancelled %s billing statements with unpaid payments", len(statement_ids))
    return len(statement_ids)


def cancel_payment(payment: Payment) -> Payment:
    """
    Cancel a PENDING payment and release its payment code. A renewal payment
    takes its pending billing statement down with it.
    """
    if payment.status != PaymentStatus.PENDING:
        raise PaymentStateError("Only pending payments can be cancelled.")
    with transaction.atomic():
        payment.status = PaymentStatus.CANCELLED
        payment.payment_code = None
        payment.save(update_fields=["status", "payment_code", "updated_at"])
        _close_pending_statements([payment.pk], now=timezone.now())
    return payment


def mark_payment_failed(payment: Payment) -> Payment:
    if payment.status != PaymentStatus.PENDING:
        raise PaymentStateError("Only pending payments can fail.")
    with transaction.atomic():
        payment.status = PaymentStatus.FAILED
        payment.save(update_fields=["status", "updated_at"])
        _close_pending_statements([payment.pk], now=timezone.now())
    return payment


def cancel_stale_pending_payments(*, now: datetime | None = None) -> int:
    """
    Cancel PENDING payments older than PAYMENT_STALE_AFTER_DAYS and clear their
    codes so they can be reused.
    """
    now = now or timezone.now()
    days = int(getattr(settings, "PAYMENT_STALE_AFTER_DAYS", 15))
    cutoff = now - timedelta(days=days)
    with transaction.atomic():
        stale_ids = list(
            Payment.objects.select_for_update()
            .filter(status=PaymentStatus.PENDING, created_at__lt=cutoff)
            .values_list("pk", flat=True)
        )
        cancelled = Payment.objects.filter(pk__in=stale_ids, status=PaymentStatus.PENDING).update(
            status=PaymentStatus.CANCELLED,
            payment_code=None,
            updated_at=now,
        )
        _close_pending_statements(stale_ids, now=now)
    logger.info("Cancelled %s pending payments older than %s days", cancelled, days)
    return cancelled
