"""Parental access-restriction engine."""

from access_guard.core.errors import (
    AccessGuardError,
    AlreadyMonitoring,
    AlreadyPending,
    EmptyReason,
    InvalidPolicy,
    NotFound,
    NotPending,
    NotRestricted,
    StoreUnavailable,
)
from access_guard.main import AccessGuard, build_guard, open_guard
from access_guard.schemas import (
    Policy,
    RequestStatus,
    RestrictionReason,
    TimeWindow,
    UnblockRequest,
    UsageRecord,
    Verdict,
)
from access_guard.services.restriction_evaluator import evaluate

__all__ = [
    "AccessGuard",
    "AccessGuardError",
    "AlreadyMonitoring",
    "AlreadyPending",
    "EmptyReason",
    "InvalidPolicy",
    "NotFound",
    "NotPending",
    "NotRestricted",
    "Policy",
    "RequestStatus",
    "RestrictionReason",
    "StoreUnavailable",
    "TimeWindow",
    "UnblockRequest",
    "UsageRecord",
    "Verdict",
    "build_guard",
    "evaluate",
    "open_guard",
]
