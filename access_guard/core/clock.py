"""Time helpers.

Day boundaries and minute-of-day are taken in process-local time. Naive
datetimes are treated as already local; aware datetimes are converted to the
local zone first.
"""

from datetime import date, datetime
from typing import Callable

Clock = Callable[[], datetime]

MINUTES_PER_DAY = 1440


def system_clock() -> datetime:
    """Current local wall-clock time (naive)."""
    return datetime.now()


def _to_local(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts
    return ts.astimezone()


def local_date(ts: datetime) -> date:
    return _to_local(ts).date()


def minute_of_day(ts: datetime) -> int:
    local = _to_local(ts)
    return local.hour * 60 + local.minute
