"""Shared fixtures for access_guard tests.

Uses in-memory stores by default; the SQLAlchemy backends run against
SQLite (aiosqlite) in memory, no server required.
"""

import asyncio
from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from access_guard.config import settings
from access_guard.database import create_session_factory, init_models
from access_guard.services.audit_log import AuditLog
from access_guard.services.policy_store import PolicyStore
from access_guard.services.restriction_monitor import RestrictionMonitor
from access_guard.services.unblock_requests import UnblockRequestManager
from access_guard.services.usage_ledger import UsageLedger

# 2026-10-19 08:20 local, minute-of-day 500
START = datetime(2026, 10, 19, 8, 20)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)

    def at_minute(self, minute: int) -> datetime:
        self.now = self.now.replace(hour=minute // 60, minute=minute % 60)
        return self.now


# ---------------------------------------------------------------------------
# Keep backend retries fast
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _fast_retries(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(settings, "BACKEND_RETRY_ATTEMPTS", 2)
    monkeypatch.setattr(settings, "BACKEND_RETRY_INITIAL_DELAY", 0.0)
    monkeypatch.setattr(settings, "BACKEND_RETRY_MAX_DELAY", 0.0)


# ---------------------------------------------------------------------------
# In-memory components
# ---------------------------------------------------------------------------

@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(START)


@pytest.fixture()
def audit(clock: FakeClock) -> AuditLog:
    return AuditLog(clock=clock)


@pytest.fixture()
def policies(audit: AuditLog, clock: FakeClock) -> PolicyStore:
    return PolicyStore(audit=audit, clock=clock)


@pytest.fixture()
def ledger(clock: FakeClock) -> UsageLedger:
    return UsageLedger(clock=clock)


@pytest.fixture()
def requests(policies, ledger, audit, clock) -> UnblockRequestManager:
    return UnblockRequestManager(policies, ledger, audit=audit, clock=clock)


@pytest_asyncio.fixture()
async def monitor(policies, ledger, requests, clock):
    """Monitor with a long interval: only the first tick and explicit
    refreshes evaluate."""
    mon = RestrictionMonitor(policies, ledger, requests, poll_interval=3600, clock=clock)
    yield mon
    await mon.aclose()


@pytest.fixture()
def wait_until():
    async def _wait(predicate, timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met in time")
            await asyncio.sleep(0.005)

    return _wait


# ---------------------------------------------------------------------------
# SQLite-backed session factory, fresh schema per test
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture()
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_models(engine)
    yield create_session_factory(engine)
    await engine.dispose()
