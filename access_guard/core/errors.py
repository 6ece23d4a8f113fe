"""Error taxonomy for the restriction engine.

Validation errors (InvalidPolicy, EmptyReason) also derive from ValueError
so callers that only care about bad input can catch that.
"""


class AccessGuardError(Exception):
    """Base class for all errors raised by access_guard."""


class NotFound(AccessGuardError):
    """A policy or unblock request does not exist."""


class InvalidPolicy(AccessGuardError, ValueError):
    """Malformed or overlapping windows, or a non-positive daily cap."""


class EmptyReason(AccessGuardError, ValueError):
    """An unblock request was submitted with a blank reason."""


class AlreadyPending(AccessGuardError):
    """The child already has a pending unblock request."""

    def __init__(self, child_id: str, request_id: str) -> None:
        super().__init__(
            f"Child {child_id} already has a pending request ({request_id})"
        )
        self.child_id = child_id
        self.request_id = request_id


class NotPending(AccessGuardError):
    """The unblock request has already been answered."""

    def __init__(self, request_id: str, status: str) -> None:
        super().__init__(f"Request {request_id} is not pending (status: {status})")
        self.request_id = request_id
        self.status = status


class NotRestricted(AccessGuardError):
    """An unblock request was attempted while access is not restricted."""


class AlreadyMonitoring(AccessGuardError):
    """start() was called twice for the same child without stop()."""


class StoreUnavailable(AccessGuardError):
    """The backing store could not be reached or failed the operation."""
