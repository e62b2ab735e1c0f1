from datetime import date, timedelta
from io import StringIO

import pytest
from django.core.cache import cache
from django.core.management import CommandError, call_command

from memberships.billing import BILLING_LOCK_KEY
from memberships.models import BillingStatement, Payment, PaymentStatus
from reservations.models import FacilitySchedule, FacilitySetting

from .factories import CourtReservationFactory, MembershipOfferFactory, PaymentFactory, SubscriptionFactory
from .helpers import local


pytestmark = pytest.mark.django_db


def run(name, *args):
    out = StringIO()
    call_command(name, *args, stdout=out)
    return out.getvalue()


def test_seed_facility_is_idempotent(db):
    assert "created=7" in run("seed_facility")
    assert "skipped=7" in run("seed_facility")
    assert FacilitySchedule.objects.count() == 7
    assert FacilitySetting.objects.count() == 1


def test_seed_facility_can_reset_edited_days(db):
    run("seed_facility")
    FacilitySchedule.set_day(FacilitySchedule.Weekday.MONDAY, is_open=False)

    assert "updated=7" in run("seed_facility", "--update-existing")
    assert FacilitySchedule.for_date(date(2026, 1, 5)).is_open_day


def test_update_expired_subscriptions_command(frozen_now, freeze):
    SubscriptionFactory(start_date=date(2025, 12, 10), end_date=date(2026, 1, 10))
    freeze(local(2026, 1, 11, 1))

    assert "Expired subscriptions: 1" in run("update_expired_subscriptions")
    assert "Expired subscriptions: 0" in run("update_expired_subscriptions")


def test_generate_billing_statements_command(freeze):
    freeze(local(2026, 1, 2, 9))
    SubscriptionFactory(
        membership_offer=MembershipOfferFactory(recurring=True),
        start_date=date(2025, 12, 5),
        end_date=date(2026, 1, 5),
    )

    assert "created=1 skipped=0 failed=0" in run("generate_billing_statements")
    assert BillingStatement.objects.count() == 1


def test_generate_billing_statements_command_fails_while_locked(frozen_now):
    cache.add(BILLING_LOCK_KEY, "held elsewhere")

    with pytest.raises(CommandError):
        run("generate_billing_statements")


def test_cancel_stale_payments_command(frozen_now):
    payment = PaymentFactory()
    Payment.objects.filter(pk=payment.pk).update(created_at=frozen_now - timedelta(days=20))

    assert "Cancelled stale payments: 1" in run("cancel_stale_payments")
    payment.refresh_from_db()
    assert payment.status == PaymentStatus.CANCELLED


def test_complete_reservations_command(facility, member, freeze):
    CourtReservationFactory(user=member, start_time=local(2026, 1, 5, 8), duration_minutes=60)
    freeze(local(2026, 1, 5, 10))

    assert "Completed reservations: 1" in run("complete_reservations")
