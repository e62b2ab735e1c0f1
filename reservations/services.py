from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date as date_type
from datetime import datetime, time, timedelta

from django.conf import settings
from django.core.exceptions import PermissionDenied, ValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from memberships.subscriptions import has_active_membership

from .conflicts import (
    CapacityExceededError,
    PastReservationError,
    ReservationError,
    SelfOverlapError,
    SlotUnavailableError,
    check_admission,
)
from .emails import notify_new_reservation
from .models import (
    CourtReservation,
    FacilitySchedule,
    FacilitySetting,
    ReservationCategory,
    ReservationStatus,
)


logger = logging.getLogger(__name__)

__all__ = [
    "CapacityExceededError",
    "MembershipRequiredError",
    "PastReservationError",
    "ReservationError",
    "ReservationInput",
    "SelfOverlapError",
    "SlotUnavailableError",
    "cancel_member_reservation",
    "cancel_reservation",
    "complete_past_reservations",
    "create_reservation",
    "reschedule_reservation",
]


@dataclass(frozen=True)
class ReservationInput:
    date: date_type
    start_time: time
    duration_minutes: int
    court_number: int | None = None
    category: str = ReservationCategory.BADMINTON_COURT


class MembershipRequiredError(ReservationError):
    """Raised when the member has no active membership for the category."""

    code = "membership_required"


def _slot_minutes() -> int:
    return int(getattr(settings, "RESERVATION_SLOT_MINUTES", 30))


def _aware_start(date_value: date_type, start_value: time) -> datetime:
    naive = datetime.combine(date_value, start_value)
    return timezone.make_aware(naive, timezone.get_current_timezone())


def _validate_booking(setting: FacilitySetting, data: ReservationInput, start: datetime, end: datetime) -> None:
    """
    Collect every rule violation into one field-level ValidationError.
    """
    errors: dict[str, str] = {}

    today = timezone.localdate()
    last_day = today + timedelta(days=setting.advance_booking_days)
    if data.date < today:
        errors["date"] = "Cannot make reservations for past dates."
    elif data.date > last_day:
        errors["date"] = f"Reservations can only be made up to {setting.advance_booking_days} days in advance."

    slot = _slot_minutes()
    minimum = setting.minimum_reservation_duration_minutes
    if data.duration_minutes < minimum:
        errors["duration_minutes"] = f"Minimum reservation duration is {minimum} minutes."
    elif data.duration_minutes % slot != 0:
        errors["duration_minutes"] = f"Reservation duration must be in {slot}-minute increments."

    if data.court_number is not None and not 1 <= data.court_number <= setting.number_of_courts:
        errors["court_number"] = f"Court number must be between 1 and {setting.number_of_courts}."

    if data.category not in ReservationCategory.values:
        errors["category"] = "Invalid reservation category."

    window = FacilitySchedule.operating_window(data.date)
    if window is None:
        errors.setdefault("date", f"Facility is closed on {data.date:%A}.")
    else:
        open_dt, close_dt = window
        if start < open_dt or start >= close_dt:
            errors["start_time"] = "Start time is outside facility operating hours."
        elif end > close_dt:
            errors["start_time"] = "Reservation extends past facility closing time."

    if errors:
        raise ValidationError(errors)


def _validate_not_past(start: datetime) -> None:
    if start < timezone.now():
        raise PastReservationError("You cannot reserve a time slot that has already started.")


def _validate_eligibility(user, category: str) -> None:
    if not getattr(settings, "RESERVATION_REQUIRES_MEMBERSHIP", True):
        return
    if not has_active_membership(user, category):
        raise MembershipRequiredError("You need an active membership for this facility to make a reservation.")


def _insert_reservation(*, user, data: ReservationInput, start: datetime) -> CourtReservation:
    """
    Check-then-insert under a lock on the facility settings row, which
    serializes concurrent admissions. The partial unique constraint on
    (court_number, start_time) is the final guard.
    """
    end = start + timedelta(minutes=data.duration_minutes)
    with transaction.atomic():
        setting = FacilitySetting.load(lock=True)
        court_number = check_admission(
            user_id=user.id,
            start=start,
            end=end,
            number_of_courts=setting.number_of_courts,
            court_number=data.court_number,
        )
        return CourtReservation.objects.create(
            user=user,
            category=data.category,
            court_number=court_number,
            start_time=start,
            duration_minutes=data.duration_minutes,
            status=ReservationStatus.CONFIRMED,
        )


def create_reservation(*, user, data: ReservationInput) -> CourtReservation:
    """
    Book a court:
    - Validates the advance window, duration, court number and opening hours.
    - Admits the booking (self-overlap, then capacity) and inserts it in one
      transaction; an insert that loses a race is retried once.
    - Sends the confirmation email after commit; a failed email never undoes
      the booking.
    """
    start = _aware_start(data.date, data.start_time)
    end = start + timedelta(minutes=data.duration_minutes)
    _validate_eligibility(user, data.category)
    _validate_booking(FacilitySetting.load(), data, start, end)
    _validate_not_past(start)

    try:
        reservation = _insert_reservation(user=user, data=data, start=start)
    except IntegrityError:
        logger.info("Reservation insert for user %s at %s lost a race; retrying", user.id, start.isoformat())
        try:
            reservation = _insert_reservation(user=user, data=data, start=start)
        except IntegrityError as exc:
            raise SlotUnavailableError("That time slot is no longer available. Please retry.") from exc

    logger.info(
        "Reservation %s created: user=%s court=%s start=%s duration=%s",
        reservation.id,
        user.id,
        reservation.court_number,
        reservation.start_time.isoformat(),
        reservation.duration_minutes,
    )
    transaction.on_commit(lambda: notify_new_reservation(reservation))
    return reservation


def reschedule_reservation(
    *,
    user,
    reservation_id: int,
    new_data: ReservationInput,
) -> CourtReservation:
    """
    Move an existing reservation (future-only, owner-only). The reservation
    does not conflict with itself while being moved.
    """
    start = _aware_start(new_data.date, new_data.start_time)
    end = start + timedelta(minutes=new_data.duration_minutes)
    _validate_booking(FacilitySetting.load(), new_data, start, end)
    _validate_not_past(start)

    try:
        with transaction.atomic():
            reservation = CourtReservation.objects.select_for_update().get(id=reservation_id)

            if reservation.user_id != user.id:
                raise PermissionDenied("You do not have permission to edit this reservation.")
            if not reservation.is_active():
                raise ReservationError("Only pending or confirmed reservations can be changed.")
            if not reservation.is_future():
                raise PastReservationError("Past reservations cannot be edited.")
            _validate_eligibility(user, new_data.category)

            setting = FacilitySetting.load(lock=True)
            court_number = check_admission(
                user_id=user.id,
                start=start,
                end=end,
                number_of_courts=setting.number_of_courts,
                court_number=new_data.court_number,
                exclude_reservation_id=reservation.id,
            )

            reservation.category = new_data.category
            reservation.court_number = court_number
            reservation.start_time = start
            reservation.duration_minutes = new_data.duration_minutes
            reservation.save(
                update_fields=["category", "court_number", "start_time", "duration_minutes", "updated_at"]
            )
            return reservation
    except IntegrityError as exc:
        raise SlotUnavailableError("That time slot was just reserved. Please pick another.") from exc


def cancel_reservation(reservation: CourtReservation, reason: str | None = None) -> CourtReservation:
    """
    Mark a reservation CANCELLED and stamp cancelled_at. Calling it again
    re-stamps the timestamp; check the status first if that matters.
    """
    reservation.cancel(reason)
    logger.info("Reservation %s cancelled (reason=%r)", reservation.id, reason)
    return reservation


def cancel_member_reservation(*, user, reservation_id: int, reason: str | None = None) -> CourtReservation:
    """
    Cancel a member's own reservation. No cancellation cutoff is enforced.
    """
    with transaction.atomic():
        reservation = CourtReservation.objects.select_for_update().get(id=reservation_id)

        if reservation.user_id != user.id:
            raise PermissionDenied("You do not have permission to cancel this reservation.")
        if reservation.status == ReservationStatus.CANCELLED:
            raise ReservationError("Reservation is already cancelled.")
        if reservation.status == ReservationStatus.COMPLETED:
            raise ReservationError("Completed reservations cannot be cancelled.")

        return cancel_reservation(reservation, reason)


def complete_past_reservations(*, now: datetime | None = None) -> int:
    now = now or timezone.now()
    updated = (
        CourtReservation.objects.active()
        .filter(end_time__lte=now)
        .update(status=ReservationStatus.COMPLETED, updated_at=timezone.now())
    )
    logger.info("Marked %s reservations as completed", updated)
    return updated
