"""Unblock Request Manager.

Lifecycle of a child's request for access::

    PENDING --approve--> APPROVED
            --reject---> REJECTED

Both outcomes are terminal and parent-authored. A child may hold at most one
PENDING request, and may only open one while currently restricted.

Approval records consent; it does not touch ``Policy.is_blocked``. Lifting a
manual block is a separate ``PolicyStore.set_block(child_id, False)`` call by
the parent-facing caller.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
import uuid
from typing import Awaitable, Callable

from access_guard.core.clock import Clock, system_clock
from access_guard.core.errors import (
    AlreadyPending,
    EmptyReason,
    NotFound,
    NotPending,
    NotRestricted,
    StoreUnavailable,
)
from access_guard.core.locks import KeyedLocks
from access_guard.core.retry import with_retry
from access_guard.schemas.audit import AuditAction
from access_guard.schemas.unblock_request import RequestStatus, UnblockRequest
from access_guard.services.audit_log import AuditLog
from access_guard.services.policy_store import PolicyStore
from access_guard.services.ports import RequestBackend
from access_guard.services.restriction_evaluator import evaluate
from access_guard.services.usage_ledger import UsageLedger

logger = logging.getLogger(__name__)

ResponseListener = Callable[[UnblockRequest], Awaitable[None] | None]


class UnblockRequestManager:
    def __init__(
        self,
        policies: PolicyStore,
        ledger: UsageLedger,
        backend: RequestBackend | None = None,
        audit: AuditLog | None = None,
        clock: Clock = system_clock,
    ) -> None:
        self._policies = policies
        self._ledger = ledger
        self._backend = backend
        self._audit = audit
        self._clock = clock
        self._requests: dict[str, UnblockRequest] = {}
        self._order: dict[str, int] = {}
        self._seq = itertools.count()
        self._locks = KeyedLocks()
        self._listeners: list[ResponseListener] = []
        self._loaded = backend is None
        self._load_lock = asyncio.Lock()

    # -- Listeners ------------------------------------------------------------

    def add_listener(self, listener: ResponseListener) -> None:
        """Register *listener* to run after every successful respond()."""
        self._listeners.append(listener)

    def remove_listener(self, listener: ResponseListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # -- Child actions ----------------------------------------------------------

    async def create(self, child_id: str, reason: str) -> UnblockRequest:
        """Open a request for *child_id*.

        Raises EmptyReason for a blank reason, AlreadyPending if the child
        already has an open request, NotRestricted if access is currently
        allowed.
        """
        if reason is None or not reason.strip():
            raise EmptyReason("Unblock request reason must not be empty")
        await self._ensure_loaded()

        async with self._locks(child_id):
            pending = self._pending_for(child_id)
            if pending is not None:
                raise AlreadyPending(child_id, pending.id)

            now = self._clock()
            policy = await self._policies.get_or_default(child_id)
            usage = await self._ledger.today(child_id, now)
            verdict = evaluate(policy, usage, now)
            if not verdict.restricted:
                raise NotRestricted(f"Child {child_id} is not currently restricted")

            request = UnblockRequest(
                id=str(uuid.uuid4()),
                child_id=child_id,
                reason=reason.strip(),
                created_at=now,
            )
            if self._backend is not None:
                await with_retry(
                    lambda: self._backend.insert_request(request),
                    description=f"insert unblock request for child {child_id}",
                )
            self._store(request)

        logger.info(
            "Unblock request %s created for child %s (restriction=%s)",
            request.id,
            child_id,
            verdict.reason.value,
        )
        await self._record(
            child_id,
            AuditAction.REQUEST_CREATED,
            child_id,
            request_id=request.id,
            reason=request.reason,
            restriction=verdict.reason.value,
        )
        return request

    # -- Parent actions ---------------------------------------------------------

    async def respond(
        self,
        request_id: str,
        approve: bool,
        parent_response: str | None = None,
        performed_by: str | None = None,
    ) -> UnblockRequest:
        """Resolve a pending request.

        Raises NotFound for an unknown id and NotPending when the request was
        already answered, including by a concurrent call.
        """
        await self._ensure_loaded()
        request = self._requests.get(request_id)
        if request is None:
            raise NotFound(f"No unblock request {request_id}")

        async with self._locks(request.child_id):
            current = self._requests.get(request_id)
            if current is None:
                raise NotFound(f"No unblock request {request_id}")
            if not current.is_pending:
                raise NotPending(request_id, current.status.value)

            resolved = current.model_copy(
                update={
                    "status": RequestStatus.APPROVED if approve else RequestStatus.REJECTED,
                    "parent_response": (parent_response or "").strip() or None,
                    "responded_at": self._clock(),
                }
            )
            if self._backend is not None:
                applied = await with_retry(
                    lambda: self._backend.mark_responded(resolved),
                    description=f"respond to unblock request {request_id}",
                )
                if not applied:
                    await self._refresh_from_backend(request_id)
            self._requests[request_id] = resolved

        logger.info(
            "Unblock request %s for child %s %s",
            request_id,
            resolved.child_id,
            resolved.status.value,
        )
        await self._record(
            resolved.child_id,
            AuditAction.REQUEST_APPROVED if approve else AuditAction.REQUEST_REJECTED,
            performed_by,
            request_id=request_id,
            parent_response=resolved.parent_response,
        )
        await self._notify(resolved)
        return resolved

    # -- Projections ------------------------------------------------------------

    async def get(self, request_id: str) -> UnblockRequest:
        await self._ensure_loaded()
        try:
            return self._requests[request_id]
        except KeyError:
            raise NotFound(f"No unblock request {request_id}") from None

    async def list_for_child(self, child_id: str) -> list[UnblockRequest]:
        """All requests of *child_id*, most recent first."""
        await self._ensure_loaded()
        return self._sorted(r for r in self._requests.values() if r.child_id == child_id)

    async def list_pending(self) -> list[UnblockRequest]:
        return await self.list_all(RequestStatus.PENDING)

    async def list_all(self, status: RequestStatus | None = None) -> list[UnblockRequest]:
        await self._ensure_loaded()
        return self._sorted(
            r for r in self._requests.values() if status is None or r.status is status
        )

    # -- Internals --------------------------------------------------------------

    async def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        async with self._load_lock:
            if self._loaded:
                return
            requests = await with_retry(
                self._backend.load_requests,
                description="load unblock requests",
            )
            for request in sorted(requests, key=lambda r: r.created_at):
                self._requests.setdefault(request.id, request)
                self._order.setdefault(request.id, next(self._seq))
            self._loaded = True
            logger.info("Loaded %d unblock request(s)", len(requests))

    async def _refresh_from_backend(self, request_id: str) -> None:
        """Replace the cached copy of a request another writer resolved.

        Always raises: NotPending with the stored status, or NotFound when
        the row is gone.
        """
        stored = await with_retry(
            lambda: self._backend.load_request(request_id),
            description=f"reload unblock request {request_id}",
        )
        if stored is None:
            self._requests.pop(request_id, None)
            self._order.pop(request_id, None)
            raise NotFound(f"No unblock request {request_id}")
        self._requests[request_id] = stored
        logger.info(
            "Unblock request %s was already %s elsewhere",
            request_id,
            stored.status.value,
        )
        raise NotPending(request_id, stored.status.value)

    def _store(self, request: UnblockRequest) -> None:
        self._requests[request.id] = request
        self._order[request.id] = next(self._seq)

    def _pending_for(self, child_id: str) -> UnblockRequest | None:
        for request in self._requests.values():
            if request.child_id == child_id and request.is_pending:
                return request
        return None

    def _sorted(self, requests) -> list[UnblockRequest]:
        return sorted(
            requests,
            key=lambda r: (r.created_at, self._order[r.id]),
            reverse=True,
        )

    async def _notify(self, request: UnblockRequest) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(request)
                if inspect.isawaitable(result):
                    await result
            except Exception:  # noqa: BLE001
                logger.exception(
                    "Response listener failed for request %s", request.id
                )

    async def _record(self, child_id, action, performed_by, **metadata) -> None:
        # Runs after the state change is committed, so a failure is logged only.
        if self._audit is None:
            return
        try:
            await self._audit.record(child_id, action, performed_by, **metadata)
        except StoreUnavailable as exc:
            logger.warning(
                "Audit %s for child %s not recorded: %s", action.value, child_id, exc
            )
