from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class UnblockRequest(BaseModel):
    """Child-initiated request for access; answered once by a parent."""

    model_config = ConfigDict(frozen=True)

    id: str
    child_id: str
    reason: str
    status: RequestStatus = RequestStatus.PENDING
    parent_response: str | None = None
    created_at: datetime
    responded_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        return self.status is RequestStatus.PENDING
