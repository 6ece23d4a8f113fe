"""Tests for the SQLAlchemy backends (SQLite in memory)."""

from datetime import date, datetime
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from access_guard.core.errors import InvalidPolicy, NotFound, NotPending, StoreUnavailable
from access_guard.main import build_guard
from access_guard.models.policy import ChildPolicy
from access_guard.schemas.audit import AuditAction
from access_guard.schemas.policy import Policy, TimeWindow
from access_guard.schemas.unblock_request import RequestStatus
from access_guard.schemas.usage import UsageRecord
from access_guard.services.persistence import (
    SqlAuditBackend,
    SqlPolicyBackend,
    SqlRequestBackend,
    SqlUsageBackend,
)
from access_guard.services.policy_store import PolicyStore


class TestPolicyBackend:
    async def test_round_trip(self, session_factory):
        backend = SqlPolicyBackend(session_factory)
        assert await backend.load_policy("kid") is None

        policy = Policy(
            child_id="kid",
            is_blocked=True,
            block_reason="late",
            allowed_windows=[(420, 480), (900, 960)],
            daily_cap_minutes=45,
            updated_at=datetime(2026, 10, 19, 8, 0),
        )
        await backend.save_policy(policy)
        assert await backend.load_policy("kid") == policy

    async def test_save_is_idempotent_upsert(self, session_factory):
        backend = SqlPolicyBackend(session_factory)
        policy = Policy(child_id="kid", daily_cap_minutes=30)
        await backend.save_policy(policy)
        await backend.save_policy(policy)
        await backend.save_policy(policy.model_copy(update={"daily_cap_minutes": 60}))
        assert (await backend.load_policy("kid")).daily_cap_minutes == 60

    async def test_store_reads_through_after_restart(self, session_factory, clock):
        first = PolicyStore(SqlPolicyBackend(session_factory), clock=clock)
        await first.set_windows("kid", ["08:00-20:00"])

        second = PolicyStore(SqlPolicyBackend(session_factory), clock=clock)
        policy = await second.get("kid")
        assert policy.allowed_windows == (TimeWindow(start=480, end=1200),)
        with pytest.raises(NotFound):
            await second.get("other")

    async def test_invalid_stored_row_raises_invalid_policy(self, session_factory):
        async with session_factory() as session:
            async with session.begin():
                session.add(
                    ChildPolicy(
                        child_id="kid",
                        is_blocked=False,
                        allowed_windows=[[600, 700], [650, 800]],
                    )
                )
        with pytest.raises(InvalidPolicy, match="kid"):
            await SqlPolicyBackend(session_factory).load_policy("kid")


class TestUsageBackend:
    async def test_upsert_and_range(self, session_factory):
        backend = SqlUsageBackend(session_factory)
        for day, minutes in ((15, 10), (17, 20), (19, 5)):
            record = UsageRecord(
                child_id="kid",
                date=date(2026, 10, day),
                minutes_used_today=minutes,
                session_count=1,
            )
            await backend.save_usage(record)
            await backend.save_usage(record)

        await backend.save_usage(UsageRecord(child_id="other", date=date(2026, 10, 17), minutes_used_today=99))

        rows = await backend.load_usage_range("kid", date(2026, 10, 16), date(2026, 10, 19))
        assert sorted((r.date.day, r.minutes_used_today) for r in rows) == [(17, 20), (19, 5)]
        assert (await backend.load_usage("kid", date(2026, 10, 15))).minutes_used_today == 10
        assert await backend.load_usage("kid", date(2026, 10, 16)) is None


class TestRequestBackend:
    async def test_compare_and_set_across_instances(self, session_factory, clock):
        guard_a = build_guard(session_factory, poll_interval=3600, clock=clock)
        await guard_a.policies.set_block("kid", True)
        request = await guard_a.requests.create("kid", "bored")

        guard_b = build_guard(session_factory, poll_interval=3600, clock=clock)
        assert [r.id for r in await guard_b.requests.list_pending()] == [request.id]
        await guard_b.requests.respond(request.id, True, "ok")

        with pytest.raises(NotPending) as excinfo:
            await guard_a.requests.respond(request.id, False)
        assert excinfo.value.status == "approved"

        # guard_a adopted the stored outcome and accepts a new request
        assert await guard_a.requests.list_pending() == []
        again = await guard_a.requests.create("kid", "again")
        assert again.is_pending

        stored = {r.id: r for r in await SqlRequestBackend(session_factory).load_requests()}
        assert stored[request.id].status is RequestStatus.APPROVED
        assert stored[request.id].parent_response == "ok"

    async def test_retried_response_is_accepted(self, session_factory, clock):
        guard = build_guard(session_factory, poll_interval=3600, clock=clock)
        await guard.policies.set_block("kid", True)
        request = await guard.requests.create("kid", "bored")

        backend = SqlRequestBackend(session_factory)
        resolved = request.model_copy(
            update={"status": RequestStatus.REJECTED, "responded_at": clock.now}
        )
        assert await backend.mark_responded(resolved) is True
        assert await backend.mark_responded(resolved) is True
        other = resolved.model_copy(update={"status": RequestStatus.APPROVED})
        assert await backend.mark_responded(other) is False

    async def test_insert_is_idempotent(self, session_factory, clock):
        guard = build_guard(session_factory, poll_interval=3600, clock=clock)
        await guard.policies.set_block("kid", True)
        request = await guard.requests.create("kid", "bored")

        backend = SqlRequestBackend(session_factory)
        await backend.insert_request(request)
        assert len(await backend.load_requests()) == 1


class TestAuditBackend:
    async def test_history_most_recent_first(self, session_factory, clock):
        guard = build_guard(session_factory, poll_interval=3600, clock=clock)
        await guard.policies.set_block("kid", True, "late")
        clock.advance(minutes=1)
        await guard.policies.set_daily_cap("kid", 30)
        clock.advance(minutes=1)
        await guard.policies.set_block("kid", False)

        history = await SqlAuditBackend(session_factory).load_entries("kid", 2)
        assert [e.action for e in history] == [AuditAction.UNBLOCK, AuditAction.SET_DAILY_CAP]
        assert history[1].metadata == {"minutes": 30}


class TestFailures:
    async def test_database_errors_become_store_unavailable(self):
        factory = MagicMock(side_effect=OperationalError("SELECT 1", {}, Exception("db down")))
        with pytest.raises(StoreUnavailable):
            await SqlPolicyBackend(factory).load_policy("kid")
        with pytest.raises(StoreUnavailable):
            await SqlUsageBackend(factory).save_usage(
                UsageRecord(child_id="kid", date=date(2026, 10, 19))
            )
