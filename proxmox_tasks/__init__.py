"""
proxmox-tasks - track asynchronous Proxmox VE tasks by UPID.
"""

from .cluster import Cluster
from .config import Config, ExitCode
from .errors import (
    Cancelled,
    DeadlineExceeded,
    MalformedIdentifier,
    MalformedResponse,
    NotAuthorized,
    RemoteTaskFailed,
    TaskError,
    TransientTransport,
    TransportError,
    WaitAborted,
    is_not_authorized,
)
from .task import DEFAULT_POLL_INTERVAL, StatusSnapshot, Task, TaskPoller, WaitState, task_from_result
from .transport import ProxmoxTransport
from .upid import UPID, is_upid

__version__ = "1.0.0"
__all__ = [
    "Cancelled",
    "Cluster",
    "Config",
    "DEFAULT_POLL_INTERVAL",
    "DeadlineExceeded",
    "ExitCode",
    "MalformedIdentifier",
    "MalformedResponse",
    "NotAuthorized",
    "ProxmoxTransport",
    "RemoteTaskFailed",
    "StatusSnapshot",
    "Task",
    "TaskError",
    "TaskPoller",
    "TransientTransport",
    "TransportError",
    "UPID",
    "WaitAborted",
    "WaitState",
    "is_not_authorized",
    "is_upid",
    "task_from_result",
]
