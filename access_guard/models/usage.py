from datetime import date

from sqlalchemy import Date, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from access_guard.database import Base


class DailyUsage(Base):
    __tablename__ = "daily_usage"

    child_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    usage_date: Mapped[date] = mapped_column(Date, primary_key=True)
    minutes_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    session_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return (
            f"<DailyUsage(child_id={self.child_id!r}, date={self.usage_date}, "
            f"minutes={self.minutes_used})>"
        )
