from __future__ import annotations

from dataclasses import dataclass
from datetime import time

from django.db import transaction

from .models import FacilitySchedule, FacilitySetting


@dataclass(frozen=True)
class ScheduleSeed:
    day_of_week: int
    is_open: bool
    open_time: time | None = None
    close_time: time | None = None


DEFAULT_SCHEDULE: list[ScheduleSeed] = [
    ScheduleSeed(FacilitySchedule.Weekday.SUNDAY, True, time(8, 0), time(20, 0)),
    ScheduleSeed(FacilitySchedule.Weekday.MONDAY, True, time(6, 0), time(22, 0)),
    ScheduleSeed(FacilitySchedule.Weekday.TUESDAY, True, time(6, 0), time(22, 0)),
    ScheduleSeed(FacilitySchedule.Weekday.WEDNESDAY, True, time(6, 0), time(22, 0)),
    ScheduleSeed(FacilitySchedule.Weekday.THURSDAY, True, time(6, 0), time(22, 0)),
    ScheduleSeed(FacilitySchedule.Weekday.FRIDAY, True, time(6, 0), time(22, 0)),
    ScheduleSeed(FacilitySchedule.Weekday.SATURDAY, True, time(8, 0), time(20, 0)),
]


def seed_facility(*, update_existing: bool = False) -> dict[str, int]:
    """
    Idempotently seed the facility settings row and the weekly schedule.

    - If update_existing is False: creates missing weekdays only (does not overwrite edits).
    - If update_existing is True: resets existing weekdays to the defaults.
    """
    created = 0
    updated = 0
    skipped = 0

    with transaction.atomic():
        FacilitySetting.load()

        for day in DEFAULT_SCHEDULE:
            defaults = {
                "is_open": day.is_open,
                "open_time": day.open_time,
                "close_time": day.close_time,
            }

            if update_existing:
                _, was_created = FacilitySchedule.objects.update_or_create(
                    day_of_week=day.day_of_week, defaults=defaults
                )
                if was_created:
                    created += 1
                else:
                    updated += 1
            else:
                _, was_created = FacilitySchedule.objects.get_or_create(
                    day_of_week=day.day_of_week, defaults=defaults
                )
                if was_created:
                    created += 1
                else:
                    skipped += 1

    return {"created": created, "updated": updated, "skipped": skipped}
