from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


class RestrictionReason(str, Enum):
    NONE = "none"
    MANUAL_BLOCK = "manual_block"
    OUTSIDE_WINDOW = "outside_window"
    CAP_EXCEEDED = "cap_exceeded"


class Verdict(BaseModel):
    """Restriction outcome for one instant. Never persisted."""

    model_config = ConfigDict(frozen=True)

    restricted: bool
    reason: RestrictionReason
    remaining_minutes_today: int | None = None
    evaluated_at: datetime
    message: str | None = None  # block reason for MANUAL_BLOCK
    next_window_start: int | None = None  # minute of day, OUTSIDE_WINDOW only
    minutes_until_next_window: int | None = None

    def same_outcome(self, other: "Verdict | None") -> bool:
        """Verdicts are considered unchanged when their reason matches."""
        return other is not None and other.reason == self.reason
