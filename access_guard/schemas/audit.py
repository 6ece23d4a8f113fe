from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AuditAction(str, Enum):
    BLOCK = "block"
    UNBLOCK = "unblock"
    SET_WINDOWS = "set_windows"
    SET_DAILY_CAP = "set_daily_cap"
    REQUEST_CREATED = "unblock_request_created"
    REQUEST_APPROVED = "unblock_request_approved"
    REQUEST_REJECTED = "unblock_request_rejected"


class AuditEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    child_id: str
    action: AuditAction
    performed_by: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
