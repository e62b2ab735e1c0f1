from datetime import datetime
from zoneinfo import ZoneInfo


MANILA = ZoneInfo("Asia/Manila")

# Monday; the default schedule opens Mon-Fri 06:00-22:00.
FROZEN_NOW = datetime(2026, 1, 5, 7, 0, tzinfo=MANILA)


def local(year, month, day, hour=0, minute=0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=MANILA)
