"""Per-child restriction policy and its allowed time-of-day windows."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from access_guard.core.clock import MINUTES_PER_DAY
from access_guard.core.errors import InvalidPolicy

_SLOT_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*-\s*(\d{1,2}):(\d{2})\s*$")


def _format_minute(minute: int) -> str:
    return f"{minute // 60:02d}:{minute % 60:02d}"


class TimeWindow(BaseModel):
    """Permitted interval of the day, inclusive of both ends.

    ``start`` and ``end`` are minutes since local midnight. Windows never
    wrap past midnight.
    """

    model_config = ConfigDict(frozen=True)

    start: int
    end: int

    @model_validator(mode="after")
    def _check_bounds(self) -> TimeWindow:
        for value in (self.start, self.end):
            if not 0 <= value < MINUTES_PER_DAY:
                raise ValueError(f"minute {value} outside [0, {MINUTES_PER_DAY})")
        if self.start >= self.end:
            raise ValueError(
                f"window start {self.start} must be before end {self.end}"
            )
        return self

    def contains(self, minute: int) -> bool:
        return self.start <= minute <= self.end

    def overlaps(self, other: TimeWindow) -> bool:
        return self.start <= other.end and other.start <= self.end

    @classmethod
    def parse(cls, slot: str) -> TimeWindow:
        """Parse the ``"HH:MM-HH:MM"`` notation used by parent clients."""
        match = _SLOT_RE.match(slot)
        if match is None:
            raise ValueError(f"invalid time slot {slot!r}, expected HH:MM-HH:MM")
        sh, sm, eh, em = (int(g) for g in match.groups())
        if sm > 59 or em > 59:
            raise ValueError(f"invalid minutes in time slot {slot!r}")
        return cls(start=sh * 60 + sm, end=eh * 60 + em)

    @classmethod
    def coerce(cls, value: Any) -> TimeWindow:
        if isinstance(value, TimeWindow):
            return value
        if isinstance(value, str):
            return cls.parse(value)
        if isinstance(value, dict):
            return cls(**value)
        start, end = value
        return cls(start=start, end=end)

    def __str__(self) -> str:
        return f"{_format_minute(self.start)}-{_format_minute(self.end)}"


def validate_windows(windows: Iterable[Any]) -> tuple[TimeWindow, ...]:
    """Coerce and validate a chronologically ordered, non-overlapping set.

    Raises InvalidPolicy for malformed, unordered or overlapping windows.
    Nothing is merged or reordered.
    """
    try:
        result = tuple(TimeWindow.coerce(w) for w in windows)
    except (TypeError, ValueError) as exc:
        raise InvalidPolicy(f"Malformed time window: {exc}") from exc

    for prev, cur in zip(result, result[1:]):
        if prev.overlaps(cur):
            raise InvalidPolicy(f"Time windows {prev} and {cur} overlap")
        if cur.start < prev.start:
            raise InvalidPolicy(
                f"Time windows must be in chronological order ({cur} after {prev})"
            )
    return result


class Policy(BaseModel):
    """Restriction settings of one child.

    Constructing a Policy directly raises pydantic's ValidationError for bad
    windows or caps (the InvalidPolicy raised by the validators is wrapped).
    PolicyStore and the SQL backend validate at their boundary and raise
    InvalidPolicy instead.
    """

    model_config = ConfigDict(frozen=True)

    child_id: str
    is_blocked: bool = False
    block_reason: str | None = None
    allowed_windows: tuple[TimeWindow, ...] = ()
    daily_cap_minutes: int | None = None
    updated_at: datetime | None = None

    @field_validator("allowed_windows", mode="before")
    @classmethod
    def _windows(cls, value: Any) -> tuple[TimeWindow, ...]:
        return validate_windows(value or ())

    @field_validator("daily_cap_minutes")
    @classmethod
    def _cap(cls, value: int | None) -> int | None:
        if value is not None and value <= 0:
            raise InvalidPolicy(f"Daily cap must be positive, got {value}")
        return value

    @classmethod
    def unrestricted(cls, child_id: str) -> Policy:
        """Policy used when a child has none configured."""
        return cls(child_id=child_id)
