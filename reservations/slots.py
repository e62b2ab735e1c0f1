from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date as date_type
from datetime import datetime, timedelta

from django.conf import settings

from .models import CourtReservation, FacilitySchedule, FacilitySetting


@dataclass
class Slot:
    start: datetime
    end: datetime
    booked_courts: list[int] = field(default_factory=list)
    available_courts: int = 0

    @property
    def is_available(self) -> bool:
        return self.available_courts > 0

    @property
    def time_string(self) -> str:
        return self.start.strftime("%H:%M")


@dataclass(frozen=True)
class DurationOption:
    duration_minutes: int
    end: datetime

    @property
    def label(self) -> str:
        hours, minutes = divmod(self.duration_minutes, 60)
        if hours and minutes:
            return f"{hours}hr {minutes}min"
        if hours:
            return f"{hours}hr"
        return f"{minutes}min"


def _step() -> timedelta:
    return timedelta(minutes=int(getattr(settings, "RESERVATION_SLOT_MINUTES", 30)))


def generate_slots(date_value: date_type) -> list[Slot]:
    """
    Fixed-width slots between opening and closing time; empty when closed.
    A trailing slot that would run past closing is dropped.
    """
    window = FacilitySchedule.operating_window(date_value)
    if window is None:
        return []

    open_dt, close_dt = window
    step = _step()
    slots = []
    current = open_dt
    while current + step <= close_dt:
        slots.append(Slot(start=current, end=current + step))
        current += step
    return slots


def available_slots(date_value: date_type, *, court_number: int | None = None) -> list[Slot]:
    slots = generate_slots(date_value)
    if not slots:
        return []

    number_of_courts = FacilitySetting.load().number_of_courts
    reservations = list(
        CourtReservation.objects.active()
        .overlapping(slots[0].start, slots[-1].end)
        .only("court_number", "start_time", "end_time")
    )

    for slot in slots:
        booked = {
            r.court_number
            for r in reservations
            if r.start_time < slot.end and r.end_time > slot.start
            and (court_number is None or r.court_number == court_number)
        }
        slot.booked_courts = sorted(booked)
        capacity = 1 if court_number is not None else number_of_courts
        slot.available_courts = max(0, capacity - len(booked))
    return slots


def duration_options(date_value: date_type, start: datetime) -> list[DurationOption]:
    """
    Bookable durations from a start time: the minimum duration upward in slot
    steps, as long as the booking still ends by closing time.
    """
    window = FacilitySchedule.operating_window(date_value)
    if window is None:
        return []

    _, close_dt = window
    step_minutes = int(_step().total_seconds() // 60)
    duration = FacilitySetting.load().minimum_reservation_duration_minutes
    options = []
    while start + timedelta(minutes=duration) <= close_dt:
        options.append(DurationOption(duration_minutes=duration, end=start + timedelta(minutes=duration)))
        duration += step_minutes
    return options
