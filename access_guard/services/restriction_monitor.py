"""Restriction Monitor.

Keeps each observed child's verdict fresh. Every child gets its own polling
task that re-evaluates at a fixed interval and publishes to a callback when
the verdict's reason changes. A successful unblock-request response
triggers an immediate out-of-band evaluation for that child.

Publishing happens under a per-child lock. ``stop()`` marks the watch
inactive, cancels its task and then takes the same lock, so once it returns
no callback for that child is running or will run. Callbacks must not call
``stop()`` or ``UnblockRequestManager.respond()`` for their own child.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from access_guard.config import settings
from access_guard.core.clock import Clock, system_clock
from access_guard.core.errors import AlreadyMonitoring, StoreUnavailable
from access_guard.schemas.unblock_request import UnblockRequest
from access_guard.schemas.verdict import Verdict
from access_guard.services.policy_store import PolicyStore
from access_guard.services.restriction_evaluator import evaluate
from access_guard.services.unblock_requests import UnblockRequestManager
from access_guard.services.usage_ledger import UsageLedger

logger = logging.getLogger(__name__)

VerdictCallback = Callable[[Verdict], Awaitable[None] | None]


@dataclass
class _Watch:
    child_id: str
    callback: VerdictCallback
    active: bool = True
    last_verdict: Verdict | None = None
    failure_count: int = 0
    consecutive_failures: int = 0
    task: asyncio.Task | None = None
    publish_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


@dataclass(frozen=True)
class MonitorStats:
    """Observability counters for one child's polling loop."""

    child_id: str
    last_verdict: Verdict | None
    failure_count: int
    consecutive_failures: int


class RestrictionMonitor:
    def __init__(
        self,
        policies: PolicyStore,
        ledger: UsageLedger,
        requests: UnblockRequestManager,
        poll_interval: float | None = None,
        clock: Clock = system_clock,
    ) -> None:
        """
        Parameters
        ----------
        policies, ledger, requests:
            The stores and request manager this monitor reads from. The
            monitor subscribes to *requests* so that a parent's response is
            reflected without waiting for the next tick.
        poll_interval:
            Seconds between evaluations. Defaults to
            ``settings.POLL_INTERVAL_SECONDS``.
        clock:
            Returns the current local time; injectable for tests.
        """
        interval = poll_interval if poll_interval is not None else settings.POLL_INTERVAL_SECONDS
        if interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {interval}")
        self._policies = policies
        self._ledger = ledger
        self._requests = requests
        self._interval = interval
        self._clock = clock
        self._watches: dict[str, _Watch] = {}
        self._requests.add_listener(self._on_request_resolved)

    @property
    def poll_interval(self) -> float:
        return self._interval

    # -- Subscription -------------------------------------------------------

    async def start(self, child_id: str, callback: VerdictCallback) -> None:
        """Begin observing *child_id*.

        The first evaluation runs immediately and is always published.
        Raises AlreadyMonitoring if the child is already observed.
        """
        if child_id in self._watches:
            raise AlreadyMonitoring(f"Child {child_id} is already being monitored")
        watch = _Watch(child_id=child_id, callback=callback)
        self._watches[child_id] = watch
        watch.task = asyncio.create_task(
            self._run(watch), name=f"restriction-monitor-{child_id}"
        )
        logger.info(
            "Restriction monitor started for child %s (interval=%.1fs)",
            child_id,
            self._interval,
        )

    async def stop(self, child_id: str) -> None:
        """Stop observing *child_id*; a no-op if it is not observed."""
        watch = self._watches.pop(child_id, None)
        if watch is None:
            return
        watch.active = False
        if watch.task is not None:
            watch.task.cancel()
            try:
                await watch.task
            except asyncio.CancelledError:
                pass
        # Wait out an out-of-band publish that may still hold the lock.
        async with watch.publish_lock:
            pass
        logger.info("Restriction monitor stopped for child %s", child_id)

    async def stop_all(self) -> None:
        for child_id in list(self._watches):
            await self.stop(child_id)

    async def aclose(self) -> None:
        """Stop every loop and detach from the request manager."""
        await self.stop_all()
        self._requests.remove_listener(self._on_request_resolved)

    # -- Queries ------------------------------------------------------------

    def monitored(self) -> list[str]:
        return list(self._watches)

    def current(self, child_id: str) -> Verdict | None:
        """Last verdict published for *child_id*, if any."""
        watch = self._watches.get(child_id)
        return watch.last_verdict if watch is not None else None

    def stats(self, child_id: str) -> MonitorStats | None:
        watch = self._watches.get(child_id)
        if watch is None:
            return None
        return MonitorStats(
            child_id=child_id,
            last_verdict=watch.last_verdict,
            failure_count=watch.failure_count,
            consecutive_failures=watch.consecutive_failures,
        )

    async def evaluate_now(self, child_id: str) -> Verdict:
        """Compute a fresh verdict without publishing it.

        A child with no policy is unrestricted. StoreUnavailable propagates.
        """
        now = self._clock()
        policy = await self._policies.get_or_default(child_id)
        usage = await self._ledger.today(child_id, now)
        return evaluate(policy, usage, now)

    async def refresh(self, child_id: str) -> Verdict | None:
        """Re-evaluate *child_id* out of band and publish if changed.

        Returns the current published verdict, or None if the child is not
        observed.
        """
        watch = self._watches.get(child_id)
        if watch is None:
            return None
        await self._tick(watch)
        return watch.last_verdict

    # -- Internals ----------------------------------------------------------

    async def _on_request_resolved(self, request: UnblockRequest) -> None:
        await self.refresh(request.child_id)

    async def _run(self, watch: _Watch) -> None:
        while watch.active:
            try:
                await self._tick(watch)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "Error during restriction poll for child %s", watch.child_id
                )
            await asyncio.sleep(self._interval)

    async def _tick(self, watch: _Watch) -> None:
        async with watch.publish_lock:
            if not watch.active:
                return
            try:
                verdict = await self.evaluate_now(watch.child_id)
            except StoreUnavailable as exc:
                watch.failure_count += 1
                watch.consecutive_failures += 1
                logger.warning(
                    "Store unavailable while evaluating child %s "
                    "(%d consecutive, %d total): %s",
                    watch.child_id,
                    watch.consecutive_failures,
                    watch.failure_count,
                    exc,
                )
                return
            watch.consecutive_failures = 0

            if verdict.same_outcome(watch.last_verdict) or not watch.active:
                return
            previous = watch.last_verdict
            watch.last_verdict = verdict
            logger.info(
                "Child %s verdict changed: %s -> %s",
                watch.child_id,
                previous.reason.value if previous else None,
                verdict.reason.value,
            )
            try:
                result = watch.callback(verdict)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:  # noqa: BLE001
                logger.exception("Verdict callback failed for child %s", watch.child_id)
