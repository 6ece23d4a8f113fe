from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from access_guard.database import Base


class ChildPolicy(Base):
    __tablename__ = "child_policies"

    child_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    is_blocked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    block_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    # [[start_minute, end_minute], ...] in chronological order
    allowed_windows: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    daily_cap_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<ChildPolicy(child_id={self.child_id!r}, is_blocked={self.is_blocked})>"
