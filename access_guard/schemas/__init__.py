from access_guard.schemas.audit import AuditAction, AuditEntry
from access_guard.schemas.policy import Policy, TimeWindow, validate_windows
from access_guard.schemas.unblock_request import RequestStatus, UnblockRequest
from access_guard.schemas.usage import UsageRecord
from access_guard.schemas.verdict import RestrictionReason, Verdict

__all__ = [
    "AuditAction",
    "AuditEntry",
    "Policy",
    "RequestStatus",
    "RestrictionReason",
    "TimeWindow",
    "UnblockRequest",
    "UsageRecord",
    "Verdict",
    "validate_windows",
]
