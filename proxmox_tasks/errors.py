"""
Error taxonomy for task tracking.
"""

from typing import Optional

from proxmoxer.core import ResourceException


class TaskError(Exception):
    """Base class for every error raised by proxmox_tasks."""


class MalformedIdentifier(TaskError, ValueError):
    """A UPID token does not match the expected structure."""

    def __init__(self, token: str, reason: str):
        self.token = token
        self.reason = reason
        super().__init__(f"Malformed UPID {token!r}: {reason}")


class TransportError(TaskError):
    """A request against the management API failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class NotAuthorized(TransportError):
    """The API token lacks permission for the requested path."""


class TransientTransport(TransportError):
    """Network failure or server-side hiccup on a single read."""


class MalformedResponse(TransportError):
    """The API answered with a body that could not be decoded."""


class RemoteTaskFailed(TaskError):
    """The remote job finished with a non-success exit status."""

    def __init__(self, upid, exit_status: str):
        self.upid = upid
        self.exit_status = exit_status
        super().__init__(f"Task {upid} failed: {exit_status}")


class WaitAborted(TaskError):
    """Base class for giving up on a wait. The remote job keeps running."""

    reason = "aborted"

    def __init__(self, upid, elapsed: float):
        self.upid = upid
        self.elapsed = elapsed
        super().__init__(f"Wait for task {upid} {self.reason} after {elapsed:.2f} seconds")


class DeadlineExceeded(WaitAborted):
    reason = "timed out"


class Cancelled(WaitAborted):
    reason = "cancelled"


def is_not_authorized(err: Optional[BaseException]) -> bool:
    """Return True when ``err`` means "no permission" rather than a hard failure.

    Accepts both translated errors and raw proxmoxer ``ResourceException``s so
    callers doing best-effort reads can skip sub-resources they cannot see.
    """
    if err is None:
        return False
    if isinstance(err, NotAuthorized):
        return True
    if isinstance(err, ResourceException):
        return getattr(err, "status_code", None) in (401, 403)
    return False
