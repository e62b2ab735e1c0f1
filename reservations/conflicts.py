"""
Admission rules for a proposed court booking.

Two independent checks decide whether a [start, end) window can be booked:

* capacity: the court (or, when none is pinned, any court) has no active
  reservation intersecting the window;
* member self-overlap: the member holds no other non-cancelled reservation
  intersecting the window, on any court.

Both use half-open intervals, so a booking ending at 10:00 and another starting
at 10:00 do not conflict. Nothing here writes to the database.
"""

from __future__ import annotations

from datetime import datetime

from .models import CourtReservation


class ReservationError(Exception):
    """Base error type for reservation domain errors."""


class SlotUnavailableError(ReservationError):
    """Raised when trying to reserve a slot that is already taken."""

    code = "slot_taken"


class CapacityExceededError(SlotUnavailableError):
    code = "no_court_available"


class SelfOverlapError(SlotUnavailableError):
    code = "self_overlap"


class PastReservationError(ReservationError):
    """Raised when attempting to create/update/cancel a past reservation."""


def _exclude(qs, reservation_id: int | None):
    if reservation_id is not None:
        qs = qs.exclude(pk=reservation_id)
    return qs


def has_member_overlap(
    user_id: int,
    start: datetime,
    end: datetime,
    *,
    exclude_reservation_id: int | None = None,
) -> bool:
    qs = CourtReservation.objects.filter(user_id=user_id).not_cancelled().overlapping(start, end)
    return _exclude(qs, exclude_reservation_id).exists()


def court_is_free(
    court_number: int,
    start: datetime,
    end: datetime,
    *,
    exclude_reservation_id: int | None = None,
) -> bool:
    qs = CourtReservation.objects.for_court(court_number).active().overlapping(start, end)
    return not _exclude(qs, exclude_reservation_id).exists()


def find_available_court(
    start: datetime,
    end: datetime,
    *,
    number_of_courts: int,
    court_number: int | None = None,
    exclude_reservation_id: int | None = None,
) -> int | None:
    """
    Return the pinned court if it is free, otherwise the lowest-numbered free
    court when none was pinned. None means capacity is exhausted.
    """
    if court_number is not None:
        if not 1 <= court_number <= number_of_courts:
            return None
        if court_is_free(court_number, start, end, exclude_reservation_id=exclude_reservation_id):
            return court_number
        return None

    busy = set(
        _exclude(CourtReservation.objects.active().overlapping(start, end), exclude_reservation_id)
        .values_list("court_number", flat=True)
        .distinct()
    )
    for candidate in range(1, number_of_courts + 1):
        if candidate not in busy:
            return candidate
    return None


def check_admission(
    *,
    user_id: int,
    start: datetime,
    end: datetime,
    number_of_courts: int,
    court_number: int | None = None,
    exclude_reservation_id: int | None = None,
) -> int:
    """
    Decide whether the booking is admissible and return the court to use.

    Raises SelfOverlapError when the member already holds an intersecting
    reservation and CapacityExceededError when no court is free. The window is
    assumed to be validated already (start < end).
    """
    if has_member_overlap(user_id, start, end, exclude_reservation_id=exclude_reservation_id):
        raise SelfOverlapError("You already have a reservation that overlaps with this time slot.")

    assigned = find_available_court(
        start,
        end,
        number_of_courts=number_of_courts,
        court_number=court_number,
        exclude_reservation_id=exclude_reservation_id,
    )
    if assigned is None:
        raise CapacityExceededError("No courts available for the selected time slot.")
    return assigned
