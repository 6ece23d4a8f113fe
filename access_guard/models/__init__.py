from access_guard.models.audit import AuditEvent
from access_guard.models.policy import ChildPolicy
from access_guard.models.unblock_request import UnblockRequestRow
from access_guard.models.usage import DailyUsage

__all__ = [
    "AuditEvent",
    "ChildPolicy",
    "DailyUsage",
    "UnblockRequestRow",
]
