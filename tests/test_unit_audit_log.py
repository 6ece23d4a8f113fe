"""Unit tests for AuditLog."""

from unittest.mock import AsyncMock

import pytest

from access_guard.core.errors import StoreUnavailable
from access_guard.schemas.audit import AuditAction
from access_guard.services.audit_log import AuditLog
from access_guard.services.ports import AuditBackend


async def test_history_is_most_recent_first_and_limited(audit, clock):
    for minutes in (10, 20, 30):
        await audit.record("kid", AuditAction.SET_DAILY_CAP, "parent-1", minutes=minutes)
        clock.advance(minutes=1)

    history = await audit.history("kid", limit=2)
    assert [e.metadata["minutes"] for e in history] == [30, 20]
    assert all(e.performed_by == "parent-1" for e in history)


async def test_history_is_per_child(audit):
    await audit.record("a", AuditAction.BLOCK)
    assert await audit.history("b") == []


async def test_entry_not_kept_when_backend_fails(clock):
    backend = AsyncMock(spec=AuditBackend)
    backend.append.side_effect = StoreUnavailable("down")
    log = AuditLog(backend, clock=clock)

    with pytest.raises(StoreUnavailable):
        await log.record("kid", AuditAction.UNBLOCK)
    assert backend.append.await_count == 2
    assert log._entries["kid"] == []
