import datetime

from pydantic import BaseModel, ConfigDict, Field


class UsageRecord(BaseModel):
    """Usage totals for one child on one local calendar day."""

    model_config = ConfigDict(frozen=True)

    child_id: str
    date: datetime.date
    minutes_used_today: int = Field(default=0, ge=0)
    session_count: int = Field(default=0, ge=0)

    @classmethod
    def empty(cls, child_id: str, day: datetime.date) -> "UsageRecord":
        return cls(child_id=child_id, date=day)
