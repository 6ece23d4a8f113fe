"""Audit trail of parent and child actions per child."""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from typing import Any

from access_guard.config import settings
from access_guard.core.clock import Clock, system_clock
from access_guard.core.retry import with_retry
from access_guard.schemas.audit import AuditAction, AuditEntry
from access_guard.services.ports import AuditBackend

logger = logging.getLogger(__name__)


class AuditLog:
    """Append-only log. Entries are written to the backend before they
    become visible in memory."""

    def __init__(
        self,
        backend: AuditBackend | None = None,
        clock: Clock = system_clock,
    ) -> None:
        self._backend = backend
        self._clock = clock
        self._entries: defaultdict[str, list[AuditEntry]] = defaultdict(list)

    async def record(
        self,
        child_id: str,
        action: AuditAction,
        performed_by: str | None = None,
        **metadata: Any,
    ) -> AuditEntry:
        entry = AuditEntry(
            id=str(uuid.uuid4()),
            child_id=child_id,
            action=action,
            performed_by=performed_by,
            metadata=metadata,
            created_at=self._clock(),
        )
        if self._backend is not None:
            await with_retry(
                lambda: self._backend.append(entry),
                description=f"audit append for child {child_id}",
            )
        self._entries[child_id].append(entry)
        logger.debug("Audit %s for child %s", action.value, child_id)
        return entry

    async def history(self, child_id: str, limit: int | None = None) -> list[AuditEntry]:
        """Most recent entries first."""
        limit = limit if limit is not None else settings.AUDIT_HISTORY_LIMIT
        if self._backend is not None:
            return await with_retry(
                lambda: self._backend.load_entries(child_id, limit),
                description=f"audit history for child {child_id}",
            )
        return list(reversed(self._entries[child_id]))[:limit]
