import calendar
from datetime import date


def add_months(value: date, months: int) -> date:
    """
    Calendar month arithmetic; the day is clamped to the target month's
    length (Jan 31 + 1 month -> Feb 28/29).
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def add_duration(value: date, duration_type: str, duration_value: int) -> date:
    if duration_type == "MONTH":
        return add_months(value, duration_value)
    if duration_type == "YEAR":
        return add_months(value, 12 * duration_value)
    raise ValueError(f"Unknown duration type: {duration_type!r}")
