"""Backend ports consumed by the stores.

Every method must be safe to retry: stores wrap calls in
:func:`access_guard.core.retry.with_retry`. Implementations raise
StoreUnavailable for transport or storage failures.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date

from access_guard.schemas.audit import AuditEntry
from access_guard.schemas.policy import Policy
from access_guard.schemas.unblock_request import UnblockRequest
from access_guard.schemas.usage import UsageRecord


class PolicyBackend(ABC):

    @abstractmethod
    async def load_policy(self, child_id: str) -> Policy | None:
        """Return the stored policy, or None if the child has none."""

    @abstractmethod
    async def save_policy(self, policy: Policy) -> None:
        """Upsert the full policy row (last writer wins)."""


class UsageBackend(ABC):

    @abstractmethod
    async def load_usage(self, child_id: str, day: date) -> UsageRecord | None:
        pass

    @abstractmethod
    async def load_usage_range(
        self, child_id: str, first: date, last: date
    ) -> list[UsageRecord]:
        """Records with ``first <= date <= last``, any order."""

    @abstractmethod
    async def save_usage(self, record: UsageRecord) -> None:
        """Upsert absolute totals for (child, date)."""


class RequestBackend(ABC):

    @abstractmethod
    async def load_requests(self) -> list[UnblockRequest]:
        pass

    @abstractmethod
    async def load_request(self, request_id: str) -> UnblockRequest | None:
        pass

    @abstractmethod
    async def insert_request(self, request: UnblockRequest) -> None:
        """Insert keyed by request id; inserting an existing id is a no-op."""

    @abstractmethod
    async def mark_responded(self, request: UnblockRequest) -> bool:
        """Compare-and-set PENDING -> request.status.

        Returns False when the stored request is no longer pending and was
        resolved differently.
        """


class AuditBackend(ABC):

    @abstractmethod
    async def append(self, entry: AuditEntry) -> None:
        """Insert keyed by entry id; re-inserting the same id is a no-op."""

    @abstractmethod
    async def load_entries(self, child_id: str, limit: int) -> list[AuditEntry]:
        """Most recent first."""
