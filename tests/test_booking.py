import threading
from datetime import date, time, timedelta
from unittest import mock

import pytest
from django.core import mail
from django.core.exceptions import PermissionDenied, ValidationError
from django.db import IntegrityError, connection

from memberships.models import MembershipCategory
from reservations import services
from reservations.models import CourtReservation, FacilitySchedule, FacilitySetting, ReservationStatus
from reservations.services import (
    CapacityExceededError,
    MembershipRequiredError,
    PastReservationError,
    ReservationError,
    ReservationInput,
    SelfOverlapError,
    SlotUnavailableError,
    cancel_member_reservation,
    complete_past_reservations,
    create_reservation,
    reschedule_reservation,
)

from .factories import MembershipOfferFactory, SubscriptionFactory, UserFactory
from .helpers import local


pytestmark = pytest.mark.django_db

TUESDAY = date(2026, 1, 6)


def booking(hour, minute=0, duration=60, court=None, day=TUESDAY):
    return ReservationInput(date=day, start_time=time(hour, minute), duration_minutes=duration, court_number=court)


@pytest.fixture
def third_member(frozen_now, badminton_offer):
    user = UserFactory()
    SubscriptionFactory(user=user, membership_offer=badminton_offer)
    return user


def test_create_reservation_derives_end_time_and_date(facility, member):
    reservation = create_reservation(user=member, data=booking(8, duration=90))

    assert reservation.status == ReservationStatus.CONFIRMED
    assert reservation.court_number == 1
    assert reservation.start_time == local(2026, 1, 6, 8)
    assert reservation.end_time == local(2026, 1, 6, 9, 30)
    assert reservation.reservation_date == TUESDAY


def test_boundary_touching_bookings_are_both_admitted(facility, member):
    first = create_reservation(user=member, data=booking(8, duration=120, court=1))
    second = create_reservation(user=member, data=booking(10, duration=60, court=1))

    assert first.end_time == second.start_time
    assert CourtReservation.objects.active().count() == 2


def test_capacity_scenario_with_two_courts(facility, member, other_member, third_member):
    create_reservation(user=member, data=booking(8, duration=240))
    create_reservation(user=other_member, data=booking(8, duration=240))

    with pytest.raises(CapacityExceededError):
        create_reservation(user=third_member, data=booking(8, duration=240))

    later = create_reservation(user=third_member, data=booking(12, duration=60))
    assert later.court_number == 1


def test_self_overlap_scenario_on_a_different_court(facility, member):
    create_reservation(user=member, data=booking(8, duration=120, court=1))

    with pytest.raises(SelfOverlapError) as excinfo:
        create_reservation(user=member, data=booking(8, duration=90, court=2))
    assert excinfo.value.code == "self_overlap"


def test_pinned_busy_court_is_rejected(facility, member, other_member):
    create_reservation(user=member, data=booking(8, court=1))

    with pytest.raises(CapacityExceededError):
        create_reservation(user=other_member, data=booking(8, court=1))


@pytest.mark.parametrize(
    "data, field",
    [
        (booking(8, duration=45), "duration_minutes"),
        (booking(8, court=3), "court_number"),
        (booking(5), "start_time"),
        (booking(21, 30, duration=60), "start_time"),
        (booking(8, day=TUESDAY + timedelta(days=31)), "date"),
        (booking(8, day=date(2026, 1, 4)), "date"),
    ],
)
def test_invalid_bookings_raise_field_errors(facility, member, data, field):
    with pytest.raises(ValidationError) as excinfo:
        create_reservation(user=member, data=data)

    assert field in excinfo.value.message_dict
    assert not CourtReservation.objects.exists()


def test_closed_day_is_rejected(facility, member):
    FacilitySchedule.set_day(FacilitySchedule.Weekday.TUESDAY, is_open=False)

    with pytest.raises(ValidationError) as excinfo:
        create_reservation(user=member, data=booking(8))
    assert "closed" in excinfo.value.message_dict["date"][0]


def test_slot_that_already_started_is_rejected(facility, member):
    with pytest.raises(PastReservationError):
        create_reservation(user=member, data=booking(6, 30, day=date(2026, 1, 5)))


def test_membership_is_required_for_the_category(facility, frozen_now):
    gym_only = UserFactory()
    SubscriptionFactory(user=gym_only, membership_offer=MembershipOfferFactory(category=MembershipCategory.GYM))

    with pytest.raises(MembershipRequiredError):
        create_reservation(user=gym_only, data=booking(8))


def test_membership_check_can_be_disabled(facility, frozen_now, settings):
    settings.RESERVATION_REQUIRES_MEMBERSHIP = False

    reservation = create_reservation(user=UserFactory(), data=booking(8))

    assert reservation.pk is not None


def test_confirmation_email_is_sent_after_commit(facility, member, django_capture_on_commit_callbacks):
    with django_capture_on_commit_callbacks(execute=True) as callbacks:
        create_reservation(user=member, data=booking(8))

    assert len(callbacks) == 1
    assert len(mail.outbox) == 1
    assert mail.outbox[0].to == [member.email]
    assert "Court 1" in mail.outbox[0].subject


def test_failed_email_does_not_undo_booking(facility, member, django_capture_on_commit_callbacks):
    with mock.patch("reservations.emails.EmailMultiAlternatives.send", side_effect=OSError("smtp down")):
        with django_capture_on_commit_callbacks(execute=True):
            reservation = create_reservation(user=member, data=booking(8))

    assert CourtReservation.objects.filter(pk=reservation.pk).exists()


def test_insert_that_loses_a_race_is_retried_once(facility, member):
    real_insert = services._insert_reservation
    calls = []

    def flaky_insert(**kwargs):
        calls.append(kwargs)
        if len(calls) == 1:
            raise IntegrityError("duplicate key value violates unique constraint")
        return real_insert(**kwargs)

    with mock.patch.object(services, "_insert_reservation", side_effect=flaky_insert):
        reservation = create_reservation(user=member, data=booking(8))

    assert len(calls) == 2
    assert reservation.pk is not None


def test_insert_that_loses_twice_reports_slot_taken(facility, member):
    with mock.patch.object(services, "_insert_reservation", side_effect=IntegrityError("duplicate")):
        with pytest.raises(SlotUnavailableError) as excinfo:
            create_reservation(user=member, data=booking(8))

    assert excinfo.value.code == "slot_taken"


def test_reschedule_does_not_conflict_with_itself(facility, member):
    reservation = create_reservation(user=member, data=booking(8, duration=120, court=1))

    moved = reschedule_reservation(user=member, reservation_id=reservation.id, new_data=booking(9, duration=120, court=1))

    assert moved.start_time == local(2026, 1, 6, 9)
    assert moved.end_time == local(2026, 1, 6, 11)
    moved.refresh_from_db()
    assert moved.end_time == local(2026, 1, 6, 11)


def test_reschedule_rejects_a_taken_court(facility, member, other_member):
    mine = create_reservation(user=member, data=booking(8, court=1))
    create_reservation(user=other_member, data=booking(10, court=2))

    with pytest.raises(CapacityExceededError):
        reschedule_reservation(user=member, reservation_id=mine.id, new_data=booking(10, court=2))


def test_reschedule_is_owner_only(facility, member, other_member):
    reservation = create_reservation(user=member, data=booking(8))

    with pytest.raises(PermissionDenied):
        reschedule_reservation(user=other_member, reservation_id=reservation.id, new_data=booking(9))


def test_reschedule_into_a_category_without_membership_is_rejected(facility, member):
    reservation = create_reservation(user=member, data=booking(8, court=1))
    gym = ReservationInput(
        date=TUESDAY,
        start_time=time(9),
        duration_minutes=60,
        court_number=1,
        category=MembershipCategory.GYM,
    )

    with pytest.raises(MembershipRequiredError):
        reschedule_reservation(user=member, reservation_id=reservation.id, new_data=gym)

    reservation.refresh_from_db()
    assert reservation.category == MembershipCategory.BADMINTON_COURT
    assert reservation.start_time == local(2026, 1, 6, 8)


def test_cancel_frees_the_slot_and_cannot_repeat(facility, member, other_member):
    reservation = create_reservation(user=member, data=booking(8, court=1))

    cancelled = cancel_member_reservation(user=member, reservation_id=reservation.id, reason="rain")

    assert cancelled.status == ReservationStatus.CANCELLED
    assert cancelled.cancelled_at is not None
    assert cancelled.cancellation_reason == "rain"
    assert create_reservation(user=other_member, data=booking(8, court=1)).court_number == 1

    with pytest.raises(ReservationError):
        cancel_member_reservation(user=member, reservation_id=reservation.id)

    with pytest.raises(ReservationError):
        reschedule_reservation(user=member, reservation_id=reservation.id, new_data=booking(9))


def test_complete_past_reservations(facility, member, freeze):
    reservation = create_reservation(user=member, data=booking(8))

    assert complete_past_reservations() == 0
    freeze(local(2026, 1, 6, 9, 1))
    assert complete_past_reservations() == 1

    reservation.refresh_from_db()
    assert reservation.status == ReservationStatus.COMPLETED


def test_model_validation_applies_conflict_rules(facility, member, other_member):
    create_reservation(user=member, data=booking(8, court=1))
    clash = CourtReservation(user=other_member, court_number=1, start_time=local(2026, 1, 6, 8, 30), duration_minutes=60)

    with pytest.raises(ValidationError) as excinfo:
        clash.full_clean()
    assert "court_number" in excinfo.value.message_dict


@pytest.mark.django_db(transaction=True)
def test_concurrent_bookings_for_the_last_court(facility, member, other_member):
    FacilitySetting.update_settings(number_of_courts=1)
    barrier = threading.Barrier(2)
    outcomes = []

    def attempt(user):
        try:
            barrier.wait()
            outcomes.append(create_reservation(user=user, data=booking(8)))
        except SlotUnavailableError as exc:
            outcomes.append(exc)
        finally:
            connection.close()

    threads = [threading.Thread(target=attempt, args=(user,)) for user in (member, other_member)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sum(isinstance(outcome, CourtReservation) for outcome in outcomes) == 1
    assert sum(isinstance(outcome, SlotUnavailableError) for outcome in outcomes) == 1
    assert len(outcomes) == 2
    assert CourtReservation.objects.filter(status=ReservationStatus.CONFIRMED).count() == 1
