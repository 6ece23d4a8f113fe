"""Policy Store.

Holds each child's restriction policy. Writes are serialized per child and
written through to the backend before they become visible, so a read after
a successful write always sees it.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from access_guard.core.clock import Clock, system_clock
from access_guard.core.errors import InvalidPolicy, NotFound, StoreUnavailable
from access_guard.core.locks import KeyedLocks
from access_guard.core.retry import with_retry
from access_guard.schemas.audit import AuditAction
from access_guard.schemas.policy import Policy, validate_windows
from access_guard.services.audit_log import AuditLog
from access_guard.services.ports import PolicyBackend

logger = logging.getLogger(__name__)


class PolicyStore:
    def __init__(
        self,
        backend: PolicyBackend | None = None,
        audit: AuditLog | None = None,
        clock: Clock = system_clock,
    ) -> None:
        self._backend = backend
        self._audit = audit
        self._clock = clock
        self._policies: dict[str, Policy] = {}
        self._locks = KeyedLocks()

    # -- Reads --------------------------------------------------------------

    async def get(self, child_id: str) -> Policy:
        """Return the child's policy.

        Raises NotFound when no policy was ever set. Callers decide whether
        absence means "unrestricted".
        """
        policy = self._policies.get(child_id)
        if policy is not None:
            return policy
        if self._backend is not None:
            policy = await with_retry(
                lambda: self._backend.load_policy(child_id),
                description=f"load policy for child {child_id}",
            )
            if policy is not None:
                # A concurrent write may have landed while we were loading.
                return self._policies.setdefault(child_id, policy)
        raise NotFound(f"No policy for child {child_id}")

    async def get_or_default(self, child_id: str) -> Policy:
        try:
            return await self.get(child_id)
        except NotFound:
            return Policy.unrestricted(child_id)

    # -- Writes -------------------------------------------------------------

    async def set_block(
        self,
        child_id: str,
        blocked: bool,
        reason: str | None = None,
        performed_by: str | None = None,
    ) -> Policy:
        reason = reason.strip() if reason and reason.strip() else None
        policy = await self._update(
            child_id,
            is_blocked=blocked,
            block_reason=reason if blocked else None,
        )
        logger.info(
            "Child %s %s (reason=%r)",
            child_id,
            "blocked" if blocked else "unblocked",
            reason,
        )
        await self._record(
            child_id,
            AuditAction.BLOCK if blocked else AuditAction.UNBLOCK,
            performed_by,
            reason=reason,
        )
        return policy

    async def set_windows(
        self,
        child_id: str,
        windows: Iterable[Any],
        performed_by: str | None = None,
    ) -> Policy:
        """Replace the allowed windows.

        Accepts TimeWindow instances, ``(start, end)`` minute pairs or
        ``"HH:MM-HH:MM"`` strings. An empty iterable removes the
        time-of-day restriction.
        """
        validated = validate_windows(windows)
        policy = await self._update(child_id, allowed_windows=validated)
        logger.info(
            "Child %s windows set to [%s]",
            child_id,
            ", ".join(str(w) for w in validated),
        )
        await self._record(
            child_id,
            AuditAction.SET_WINDOWS,
            performed_by,
            windows=[str(w) for w in validated],
        )
        return policy

    async def set_daily_cap(
        self,
        child_id: str,
        minutes: int | None,
        performed_by: str | None = None,
    ) -> Policy:
        if minutes is not None and (
            isinstance(minutes, bool) or not isinstance(minutes, int) or minutes <= 0
        ):
            raise InvalidPolicy(f"Daily cap must be a positive integer, got {minutes!r}")
        policy = await self._update(child_id, daily_cap_minutes=minutes)
        logger.info("Child %s daily cap set to %s", child_id, minutes)
        await self._record(
            child_id, AuditAction.SET_DAILY_CAP, performed_by, minutes=minutes
        )
        return policy

    async def _update(self, child_id: str, **changes: Any) -> Policy:
        async with self._locks(child_id):
            current = await self.get_or_default(child_id)
            updated = current.model_copy(
                update={**changes, "updated_at": self._clock()}
            )
            if self._backend is not None:
                await with_retry(
                    lambda: self._backend.save_policy(updated),
                    description=f"save policy for child {child_id}",
                )
            self._policies[child_id] = updated
            return updated

    async def _record(
        self,
        child_id: str,
        action: AuditAction,
        performed_by: str | None,
        **metadata: Any,
    ) -> None:
        # The policy is already committed; a failed audit write is logged only.
        if self._audit is None:
            return
        try:
            await self._audit.record(child_id, action, performed_by, **metadata)
        except StoreUnavailable as exc:
            logger.warning(
                "Audit %s for child %s not recorded: %s", action.value, child_id, exc
            )
