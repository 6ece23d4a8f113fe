"""Restriction Evaluator.

Combines a child's policy and today's usage into a verdict for one instant.
The first matching rule wins:

1. Manual block set by a parent -> MANUAL_BLOCK
2. Windows configured and *now* outside all of them -> OUTSIDE_WINDOW
3. Daily cap configured and used up (``used >= cap``) -> CAP_EXCEEDED
4. Otherwise -> NONE

An empty window set means no time-of-day restriction at all.

``evaluate`` is pure: it reads its arguments only and has no side effects.
"""

from __future__ import annotations

from datetime import datetime

from access_guard.core.clock import local_date, minute_of_day
from access_guard.schemas.policy import Policy, TimeWindow
from access_guard.schemas.usage import UsageRecord
from access_guard.schemas.verdict import RestrictionReason, Verdict


def is_within_windows(windows: tuple[TimeWindow, ...], minute: int) -> bool:
    """True if *minute* is inside any window, or no windows are set."""
    if not windows:
        return True
    return any(w.contains(minute) for w in windows)


def next_window_start(windows: tuple[TimeWindow, ...], minute: int) -> int | None:
    """Start of the earliest window beginning after *minute* today."""
    upcoming = [w.start for w in windows if w.start > minute]
    return min(upcoming) if upcoming else None


def minutes_used(usage: UsageRecord | None, now: datetime) -> int:
    """Usage counted against today's cap.

    A record from another day is stale after rollover and counts as zero.
    """
    if usage is None or usage.date != local_date(now):
        return 0
    return usage.minutes_used_today


def evaluate(policy: Policy, usage: UsageRecord | None, now: datetime) -> Verdict:
    used = minutes_used(usage, now)
    cap = policy.daily_cap_minutes
    remaining = max(0, cap - used) if cap is not None else None

    if policy.is_blocked:
        return Verdict(
            restricted=True,
            reason=RestrictionReason.MANUAL_BLOCK,
            remaining_minutes_today=remaining,
            evaluated_at=now,
            message=policy.block_reason,
        )

    minute = minute_of_day(now)
    if not is_within_windows(policy.allowed_windows, minute):
        upcoming = next_window_start(policy.allowed_windows, minute)
        return Verdict(
            restricted=True,
            reason=RestrictionReason.OUTSIDE_WINDOW,
            remaining_minutes_today=remaining,
            evaluated_at=now,
            next_window_start=upcoming,
            minutes_until_next_window=upcoming - minute if upcoming is not None else None,
        )

    if cap is not None and used >= cap:
        return Verdict(
            restricted=True,
            reason=RestrictionReason.CAP_EXCEEDED,
            remaining_minutes_today=0,
            evaluated_at=now,
        )

    return Verdict(
        restricted=False,
        reason=RestrictionReason.NONE,
        remaining_minutes_today=remaining,
        evaluated_at=now,
    )
