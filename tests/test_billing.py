from datetime import date, timedelta
from decimal import Decimal
from unittest import mock

import pytest
from django.core import mail
from django.core.cache import cache

from memberships import billing
from memberships.billing import BILLING_LOCK_KEY, BillingAlreadyRunningError, generate_billing_statements
from memberships.dates import add_duration, add_months
from memberships.documents import generate_invoice_number
from memberships.models import (
    BillingStatement,
    BillingStatementStatus,
    Invoice,
    InvoiceStatus,
    Payment,
    PaymentStatus,
    Receipt,
    SubscriptionStatus,
)
from memberships.payments import cancel_payment, cancel_stale_pending_payments, mark_payment_failed, mark_payment_paid

from .factories import MembershipOfferFactory, SubscriptionFactory
from .helpers import local


pytestmark = pytest.mark.django_db


@pytest.fixture
def billing_day(freeze):
    return freeze(local(2026, 1, 2, 9))


@pytest.fixture
def recurring_offer(db):
    return MembershipOfferFactory(recurring=True, price=Decimal("1500.00"))


@pytest.fixture
def due_subscription(billing_day, recurring_offer):
    return SubscriptionFactory(
        membership_offer=recurring_offer,
        start_date=date(2025, 12, 5),
        end_date=date(2026, 1, 5),
    )


@pytest.mark.parametrize(
    "start, months, expected",
    [
        (date(2026, 1, 5), 1, date(2026, 2, 5)),
        (date(2026, 1, 31), 1, date(2026, 2, 28)),
        (date(2028, 1, 31), 1, date(2028, 2, 29)),
        (date(2025, 12, 15), 1, date(2026, 1, 15)),
        (date(2025, 11, 30), 3, date(2026, 2, 28)),
    ],
)
def test_add_months_clamps_to_month_end(start, months, expected):
    assert add_months(start, months) == expected


def test_add_duration_years():
    assert add_duration(date(2024, 2, 29), "YEAR", 1) == date(2025, 2, 28)
    with pytest.raises(ValueError):
        add_duration(date(2026, 1, 1), "WEEK", 1)


def test_statement_periods_follow_the_subscription_end(due_subscription):
    result = generate_billing_statements()

    assert (result.created, result.skipped, result.failed) == (1, 0, 0)
    statement = BillingStatement.objects.get()
    assert statement.membership_subscription == due_subscription
    assert statement.statement_date == date(2026, 1, 2)
    assert statement.period_start == date(2026, 1, 5)
    assert statement.period_end == date(2026, 2, 5)
    assert statement.due_date == date(2026, 1, 5)
    assert statement.amount == Decimal("1500.00")
    assert statement.status == BillingStatementStatus.PENDING

    payment = statement.payment
    assert payment.status == PaymentStatus.PENDING
    assert payment.amount == Decimal("1500.00")
    assert len(payment.payment_code) == 8


def test_renewal_notice_is_emailed(due_subscription):
    generate_billing_statements()

    assert len(mail.outbox) == 1
    assert mail.outbox[0].to == [due_subscription.user.email]
    assert "Renewal" in mail.outbox[0].subject


def test_second_run_is_a_no_op(due_subscription):
    generate_billing_statements()
    result = generate_billing_statements()

    assert (result.created, result.skipped, result.failed) == (0, 1, 0)
    assert BillingStatement.objects.count() == 1
    assert Payment.objects.count() == 1


def test_only_recurring_subscriptions_inside_the_window_are_due(billing_day, recurring_offer):
    SubscriptionFactory(membership_offer=recurring_offer, start_date=date(2025, 12, 10), end_date=date(2026, 1, 8))
    SubscriptionFactory(
        membership_offer=MembershipOfferFactory(),
        start_date=date(2025, 12, 5),
        end_date=date(2026, 1, 5),
    )
    cancelled = SubscriptionFactory(membership_offer=recurring_offer, start_date=date(2025, 12, 5), end_date=date(2026, 1, 4))
    cancelled.status = SubscriptionStatus.CANCELLED
    cancelled.save(update_fields=["status"])

    result = generate_billing_statements()

    assert result.created == 0
    assert not BillingStatement.objects.exists()


def test_window_edge_is_inclusive(billing_day, recurring_offer):
    SubscriptionFactory(membership_offer=recurring_offer, start_date=date(2025, 12, 7), end_date=date(2026, 1, 7))

    assert generate_billing_statements().created == 1


def test_one_failure_does_not_stop_the_run(due_subscription, recurring_offer):
    healthy = SubscriptionFactory(membership_offer=recurring_offer, start_date=date(2025, 12, 6), end_date=date(2026, 1, 6))
    real_create = billing.create_statement

    def create_or_fail(subscription_id, *, today):
        if subscription_id == due_subscription.pk:
            raise RuntimeError("boom")
        return real_create(subscription_id, today=today)

    with mock.patch.object(billing, "create_statement", side_effect=create_or_fail):
        result = generate_billing_statements()

    assert (result.created, result.skipped, result.failed) == (1, 0, 1)
    assert list(BillingStatement.objects.values_list("membership_subscription_id", flat=True)) == [healthy.pk]


def test_concurrent_run_is_refused(due_subscription):
    cache.add(BILLING_LOCK_KEY, "held elsewhere")

    with pytest.raises(BillingAlreadyRunningError):
        generate_billing_statements()

    assert not BillingStatement.objects.exists()
    assert cache.get(BILLING_LOCK_KEY) == "held elsewhere"


def test_lock_is_released_after_a_run(due_subscription):
    generate_billing_statements()

    assert cache.get(BILLING_LOCK_KEY) is None


def test_paying_the_statement_extends_the_subscription(due_subscription):
    generate_billing_statements()
    statement = BillingStatement.objects.get()

    subscription = mark_payment_paid(statement.payment)

    statement.refresh_from_db()
    assert statement.status == BillingStatementStatus.PAID
    assert subscription.pk == due_subscription.pk
    assert subscription.end_date == date(2026, 2, 5)
    assert subscription.status == SubscriptionStatus.ACTIVE
    statement.payment.refresh_from_db()
    assert statement.payment.payment_code is None


def test_next_cycle_bills_again_after_payment(due_subscription, freeze):
    generate_billing_statements()
    mark_payment_paid(BillingStatement.objects.get().payment)

    freeze(local(2026, 2, 1, 9))
    result = generate_billing_statements()

    assert result.created == 1
    latest = BillingStatement.objects.filter(status=BillingStatementStatus.PENDING).get()
    assert latest.period_start == date(2026, 2, 5)
    assert latest.period_end == date(2026, 3, 5)


def test_invoice_is_issued_with_the_statement(due_subscription):
    generate_billing_statements()

    statement = BillingStatement.objects.get()
    invoice = statement.invoice
    assert invoice.invoice_number == "INV-20260102-0001"
    assert invoice.amount == Decimal("1500.00")
    assert invoice.status == InvoiceStatus.SENT
    assert invoice.invoice_date == local(2026, 1, 2, 9)
    assert "INV-20260102-0001" in mail.outbox[0].body


def test_invoice_numbers_continue_the_days_sequence(due_subscription, recurring_offer):
    SubscriptionFactory(membership_offer=recurring_offer, start_date=date(2025, 12, 6), end_date=date(2026, 1, 6))

    generate_billing_statements()

    numbers = sorted(Invoice.objects.values_list("invoice_number", flat=True))
    assert numbers == ["INV-20260102-0001", "INV-20260102-0002"]
    assert generate_invoice_number() == "INV-20260102-0003"
    assert generate_invoice_number(local(2026, 1, 3, 0, 30)) == "INV-20260103-0001"


def test_paying_the_statement_settles_the_invoice_and_issues_a_receipt(due_subscription):
    generate_billing_statements()
    statement = BillingStatement.objects.get()

    mark_payment_paid(statement.payment)

    assert Invoice.objects.get().status == InvoiceStatus.PAID
    receipt = Receipt.objects.get()
    assert receipt.payment_id == statement.payment_id
    assert receipt.receipt_number == "RCP-20260102-0001"
    assert receipt.receipt_date == local(2026, 1, 2, 9)
    assert receipt.amount == Decimal("1500.00")


def test_cancelled_renewal_payment_releases_the_statement(due_subscription):
    generate_billing_statements()
    statement = BillingStatement.objects.get()

    cancel_payment(statement.payment)

    statement.refresh_from_db()
    assert statement.status == BillingStatementStatus.CANCELLED
    assert statement.invoice.status == InvoiceStatus.CANCELLED

    result = generate_billing_statements()

    assert result.created == 1
    fresh = BillingStatement.objects.get(status=BillingStatementStatus.PENDING)
    assert fresh.pk != statement.pk
    assert fresh.payment.status == PaymentStatus.PENDING
    assert fresh.invoice.invoice_number == "INV-20260102-0002"


def test_failed_renewal_payment_releases_the_statement(due_subscription):
    generate_billing_statements()
    statement = BillingStatement.objects.get()

    mark_payment_failed(statement.payment)

    statement.refresh_from_db()
    assert statement.status == BillingStatementStatus.CANCELLED
    assert generate_billing_statements().created == 1


def test_stale_renewal_payment_sweep_releases_the_statement(due_subscription, billing_day):
    generate_billing_statements()
    statement = BillingStatement.objects.get()
    Payment.objects.filter(pk=statement.payment_id).update(created_at=billing_day - timedelta(days=16))

    assert cancel_stale_pending_payments() == 1

    statement.refresh_from_db()
    assert statement.status == BillingStatementStatus.CANCELLED
    assert statement.invoice.status == InvoiceStatus.CANCELLED
    assert generate_billing_statements().created == 1
    assert BillingStatement.objects.filter(status=BillingStatementStatus.PENDING).count() == 1


def test_notice_failure_while_building_the_message_does_not_stop_the_run(due_subscription, recurring_offer):
    SubscriptionFactory(membership_offer=recurring_offer, start_date=date(2025, 12, 6), end_date=date(2026, 1, 6))

    with mock.patch.object(
        BillingStatement,
        "user",
        new_callable=mock.PropertyMock,
        side_effect=RuntimeError("user lookup failed"),
    ):
        result = generate_billing_statements()

    assert (result.created, result.skipped, result.failed) == (2, 0, 0)
    assert BillingStatement.objects.count() == 2
    assert mail.outbox == []
