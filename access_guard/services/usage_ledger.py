"""Usage Ledger.

Accumulates minutes of use per child per local calendar day. A day's record
is created by the first usage event of that day and only ever grows; there
is no explicit reset, a new date simply starts a new record.

Intervals are never split internally: a session crossing midnight must be
recorded as two calls, one per day.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta

from access_guard.config import settings
from access_guard.core.clock import Clock, local_date, system_clock
from access_guard.core.locks import KeyedLocks
from access_guard.core.retry import with_retry
from access_guard.schemas.usage import UsageRecord
from access_guard.services.ports import UsageBackend

logger = logging.getLogger(__name__)


class UsageLedger:
    def __init__(
        self,
        backend: UsageBackend | None = None,
        clock: Clock = system_clock,
    ) -> None:
        self._backend = backend
        self._clock = clock
        self._records: dict[tuple[str, date], UsageRecord] = {}
        self._current_day: date | None = None
        self._locks = KeyedLocks()

    async def record_usage(
        self, child_id: str, minutes: int, at: datetime | None = None
    ) -> UsageRecord:
        """Add *minutes* to the bucket of *at*'s local day.

        Each call counts as one session. Not idempotent: recording the same
        interval twice counts it twice. The backend write carries absolute
        totals and is safe to retry.
        """
        if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes < 0:
            raise ValueError(f"minutes must be a non-negative integer, got {minutes!r}")
        day = local_date(at or self._clock())

        async with self._locks(child_id):
            current = await self._load(child_id, day)
            updated = current.model_copy(
                update={
                    "minutes_used_today": current.minutes_used_today + minutes,
                    "session_count": current.session_count + 1,
                }
            )
            if self._backend is not None:
                await with_retry(
                    lambda: self._backend.save_usage(updated),
                    description=f"save usage for child {child_id} on {day}",
                )
            self._records[(child_id, day)] = updated

        logger.debug(
            "Child %s used %d min on %s (total %d)",
            child_id,
            minutes,
            day,
            updated.minutes_used_today,
        )
        return updated

    async def today(self, child_id: str, as_of: datetime | None = None) -> UsageRecord:
        """The record for *as_of*'s local day (zero usage if none yet)."""
        return await self._load(child_id, local_date(as_of or self._clock()))

    async def minutes_used_today(
        self, child_id: str, as_of: datetime | None = None
    ) -> int:
        record = await self.today(child_id, as_of)
        return record.minutes_used_today

    async def history(
        self,
        child_id: str,
        last_n_days: int | None = None,
        as_of: datetime | None = None,
    ) -> list[UsageRecord]:
        """Contiguous per-day records ending with *as_of*'s day, oldest first.

        Days without usage are returned as zero records rather than omitted.
        """
        days = last_n_days if last_n_days is not None else settings.HISTORY_DEFAULT_DAYS
        if days <= 0:
            raise ValueError(f"last_n_days must be positive, got {days}")
        last = local_date(as_of or self._clock())
        first = last - timedelta(days=days - 1)

        stored: dict[date, UsageRecord] = {}
        if self._backend is not None:
            rows = await with_retry(
                lambda: self._backend.load_usage_range(child_id, first, last),
                description=f"load usage history for child {child_id}",
            )
            stored = {r.date: r for r in rows}

        result = []
        for offset in range(days):
            day = first + timedelta(days=offset)
            record = (
                self._records.get((child_id, day))
                or stored.get(day)
                or UsageRecord.empty(child_id, day)
            )
            result.append(record)
        return result

    async def _load(self, child_id: str, day: date) -> UsageRecord:
        self._evict_past_days(local_date(self._clock()))
        record = self._records.get((child_id, day))
        if record is not None:
            return record
        if self._backend is not None:
            record = await with_retry(
                lambda: self._backend.load_usage(child_id, day),
                description=f"load usage for child {child_id} on {day}",
            )
        if record is None:
            record = UsageRecord.empty(child_id, day)
        return self._records.setdefault((child_id, day), record)

    def _evict_past_days(self, today: date) -> None:
        """Drop cached records of earlier days once the local date moves on.

        Only done with a backend; without one the ledger is the store of
        record and keeps every day.
        """
        if self._current_day is not None and today <= self._current_day:
            return
        self._current_day = today
        if self._backend is None:
            return
        stale = [key for key in self._records if key[1] < today]
        for key in stale:
            del self._records[key]
        if stale:
            logger.debug("Evicted %d cached usage record(s) before %s", len(stale), today)
