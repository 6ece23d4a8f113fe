"""Wiring for the restriction engine.

Builds the stores, request manager and monitor with explicit dependencies,
optionally persisted through SQLAlchemy.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from access_guard.core.clock import Clock, system_clock
from access_guard.services.audit_log import AuditLog
from access_guard.services.persistence import (
    SqlAuditBackend,
    SqlPolicyBackend,
    SqlRequestBackend,
    SqlUsageBackend,
)
from access_guard.services.policy_store import PolicyStore
from access_guard.services.restriction_monitor import RestrictionMonitor
from access_guard.services.unblock_requests import UnblockRequestManager
from access_guard.services.usage_ledger import UsageLedger

logger = logging.getLogger(__name__)


@dataclass
class AccessGuard:
    """The components the UI layer talks to."""

    audit: AuditLog
    policies: PolicyStore
    ledger: UsageLedger
    requests: UnblockRequestManager
    monitor: RestrictionMonitor


def build_guard(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    poll_interval: float | None = None,
    clock: Clock = system_clock,
) -> AccessGuard:
    """Assemble an AccessGuard.

    With *session_factory* every store writes through to the database;
    without it everything stays in memory.
    """
    if session_factory is not None:
        audit = AuditLog(SqlAuditBackend(session_factory), clock=clock)
        policies = PolicyStore(SqlPolicyBackend(session_factory), audit=audit, clock=clock)
        ledger = UsageLedger(SqlUsageBackend(session_factory), clock=clock)
        request_backend = SqlRequestBackend(session_factory)
    else:
        audit = AuditLog(clock=clock)
        policies = PolicyStore(audit=audit, clock=clock)
        ledger = UsageLedger(clock=clock)
        request_backend = None

    requests = UnblockRequestManager(
        policies, ledger, backend=request_backend, audit=audit, clock=clock
    )
    monitor = RestrictionMonitor(
        policies, ledger, requests, poll_interval=poll_interval, clock=clock
    )
    return AccessGuard(
        audit=audit,
        policies=policies,
        ledger=ledger,
        requests=requests,
        monitor=monitor,
    )


@asynccontextmanager
async def open_guard(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    poll_interval: float | None = None,
    clock: Clock = system_clock,
) -> AsyncGenerator[AccessGuard, None]:
    """Build a guard and stop all monitoring loops on exit."""
    guard = build_guard(session_factory, poll_interval=poll_interval, clock=clock)
    logger.info("Access guard ready (persistent=%s)", session_factory is not None)
    try:
        yield guard
    finally:
        await guard.monitor.aclose()
        logger.info("Access guard shut down")
