"""SQLAlchemy implementations of the backend ports.

Each call runs in its own session and transaction. SQLAlchemy and OS level
failures surface as StoreUnavailable.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator

from pydantic import ValidationError
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from access_guard.core.errors import InvalidPolicy, StoreUnavailable
from access_guard.models.audit import AuditEvent
from access_guard.models.policy import ChildPolicy
from access_guard.models.unblock_request import UnblockRequestRow
from access_guard.models.usage import DailyUsage
from access_guard.schemas.audit import AuditAction, AuditEntry
from access_guard.schemas.policy import Policy, TimeWindow
from access_guard.schemas.unblock_request import RequestStatus, UnblockRequest
from access_guard.schemas.usage import UsageRecord
from access_guard.services.ports import (
    AuditBackend,
    PolicyBackend,
    RequestBackend,
    UsageBackend,
)

logger = logging.getLogger(__name__)


class _SqlBackend:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except (SQLAlchemyError, OSError) as exc:
            logger.warning("Database operation failed: %s", exc)
            raise StoreUnavailable(str(exc)) from exc


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------

def _policy_from_row(row: ChildPolicy) -> Policy:
    try:
        return Policy(
            child_id=row.child_id,
            is_blocked=row.is_blocked,
            block_reason=row.block_reason,
            allowed_windows=[
                TimeWindow(start=s, end=e) for s, e in row.allowed_windows or []
            ],
            daily_cap_minutes=row.daily_cap_minutes,
            updated_at=row.updated_at,
        )
    except (ValidationError, TypeError, ValueError) as exc:
        raise InvalidPolicy(
            f"Stored policy for child {row.child_id} is invalid: {exc}"
        ) from exc


class SqlPolicyBackend(_SqlBackend, PolicyBackend):

    async def load_policy(self, child_id: str) -> Policy | None:
        async with self._transaction() as session:
            row = await session.get(ChildPolicy, child_id)
            return _policy_from_row(row) if row is not None else None

    async def save_policy(self, policy: Policy) -> None:
        async with self._transaction() as session:
            await session.merge(
                ChildPolicy(
                    child_id=policy.child_id,
                    is_blocked=policy.is_blocked,
                    block_reason=policy.block_reason,
                    allowed_windows=[[w.start, w.end] for w in policy.allowed_windows],
                    daily_cap_minutes=policy.daily_cap_minutes,
                    updated_at=policy.updated_at,
                )
            )


# ---------------------------------------------------------------------------
# Usage
# ---------------------------------------------------------------------------

def _usage_from_row(row: DailyUsage) -> UsageRecord:
    return UsageRecord(
        child_id=row.child_id,
        date=row.usage_date,
        minutes_used_today=row.minutes_used,
        session_count=row.session_count,
    )


class SqlUsageBackend(_SqlBackend, UsageBackend):

    async def load_usage(self, child_id: str, day: date) -> UsageRecord | None:
        async with self._transaction() as session:
            row = await session.get(DailyUsage, (child_id, day))
            return _usage_from_row(row) if row is not None else None

    async def load_usage_range(
        self, child_id: str, first: date, last: date
    ) -> list[UsageRecord]:
        async with self._transaction() as session:
            result = await session.execute(
                select(DailyUsage).where(
                    DailyUsage.child_id == child_id,
                    DailyUsage.usage_date >= first,
                    DailyUsage.usage_date <= last,
                )
            )
            return [_usage_from_row(row) for row in result.scalars().all()]

    async def save_usage(self, record: UsageRecord) -> None:
        async with self._transaction() as session:
            await session.merge(
                DailyUsage(
                    child_id=record.child_id,
                    usage_date=record.date,
                    minutes_used=record.minutes_used_today,
                    session_count=record.session_count,
                )
            )


# ---------------------------------------------------------------------------
# Unblock requests
# ---------------------------------------------------------------------------

def _request_from_row(row: UnblockRequestRow) -> UnblockRequest:
    return UnblockRequest(
        id=row.id,
        child_id=row.child_id,
        reason=row.reason,
        status=RequestStatus(row.status),
        parent_response=row.parent_response,
        created_at=row.created_at,
        responded_at=row.responded_at,
    )


class SqlRequestBackend(_SqlBackend, RequestBackend):

    async def load_requests(self) -> list[UnblockRequest]:
        async with self._transaction() as session:
            result = await session.execute(select(UnblockRequestRow))
            return [_request_from_row(row) for row in result.scalars().all()]

    async def load_request(self, request_id: str) -> UnblockRequest | None:
        async with self._transaction() as session:
            row = await session.get(UnblockRequestRow, request_id)
            return _request_from_row(row) if row is not None else None

    async def insert_request(self, request: UnblockRequest) -> None:
        async with self._transaction() as session:
            if await session.get(UnblockRequestRow, request.id) is not None:
                return
            session.add(
                UnblockRequestRow(
                    id=request.id,
                    child_id=request.child_id,
                    reason=request.reason,
                    status=request.status.value,
                    parent_response=request.parent_response,
                    created_at=request.created_at,
                    responded_at=request.responded_at,
                )
            )

    async def mark_responded(self, request: UnblockRequest) -> bool:
        async with self._transaction() as session:
            result = await session.execute(
                update(UnblockRequestRow)
                .where(
                    UnblockRequestRow.id == request.id,
                    UnblockRequestRow.status == RequestStatus.PENDING.value,
                )
                .values(
                    status=request.status.value,
                    parent_response=request.parent_response,
                    responded_at=request.responded_at,
                )
            )
            if result.rowcount == 1:
                return True

            # A retried call may find its own earlier write already applied.
            row = await session.get(UnblockRequestRow, request.id)
            return (
                row is not None
                and row.status == request.status.value
                and row.responded_at == request.responded_at
            )


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------

class SqlAuditBackend(_SqlBackend, AuditBackend):

    async def append(self, entry: AuditEntry) -> None:
        async with self._transaction() as session:
            if await session.get(AuditEvent, entry.id) is not None:
                return
            session.add(
                AuditEvent(
                    id=entry.id,
                    child_id=entry.child_id,
                    action=entry.action.value,
                    performed_by=entry.performed_by,
                    metadata_json=dict(entry.metadata),
                    created_at=entry.created_at,
                )
            )

    async def load_entries(self, child_id: str, limit: int) -> list[AuditEntry]:
        async with self._transaction() as session:
            result = await session.execute(
                select(AuditEvent)
                .where(AuditEvent.child_id == child_id)
                .order_by(AuditEvent.created_at.desc())
                .limit(limit)
            )
            return [
                AuditEntry(
                    id=row.id,
                    child_id=row.child_id,
                    action=AuditAction(row.action),
                    performed_by=row.performed_by,
                    metadata=row.metadata_json or {},
                    created_at=row.created_at,
                )
                for row in result.scalars().all()
            ]
