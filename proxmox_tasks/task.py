"""
Task tracking for asynchronous Proxmox operations.

Write operations such as backups or guest deletion return a UPID right away
and run on the node in the background. ``Task`` wraps that UPID and reads
``/nodes/{node}/tasks/{upid}/status`` through a shared transport;
``TaskPoller`` drives those reads until the job stops, the local deadline
passes or the caller cancels.
"""

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from .errors import (
    Cancelled,
    DeadlineExceeded,
    MalformedResponse,
    RemoteTaskFailed,
    TransientTransport,
)
from .upid import UPID, is_upid

SUCCESS_MARKER = "OK"
DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_MAX_TRANSIENT_ERRORS = 3


class WaitState(Enum):
    PENDING = "pending"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass
class StatusSnapshot:
    """Last observed status of a remote job.

    ``running=False`` with an empty exit status is what a freshly created or
    just-finishing task reports; it is not terminal.
    """

    running: bool = False
    exit_status: str = ""
    log_tail: List[str] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict)
    observed_at: Optional[datetime] = None

    @property
    def terminal(self) -> bool:
        return not self.running and bool(self.exit_status)

    @property
    def success(self) -> bool:
        return self.terminal and self.exit_status == SUCCESS_MARKER

    @classmethod
    def from_status(cls, payload: Any) -> "StatusSnapshot":
        """Decode a ``tasks/{upid}/status`` body."""
        if not isinstance(payload, dict):
            raise MalformedResponse(f"Task status is not an object: {payload!r}")
        state = payload.get("status")
        if state not in ("running", "stopped"):
            raise MalformedResponse(f"Unknown task status {state!r}")
        return cls(
            running=state == "running",
            exit_status=str(payload.get("exitstatus") or "").strip(),
            raw=dict(payload),
            observed_at=datetime.now(timezone.utc),
        )


class Task:
    """Local handle on one remote job.

    The transport is shared with the rest of the client and is never
    modified here. A single Task is not safe for concurrent ``status``/``wait``
    calls; independent Tasks share no state.
    """

    def __init__(self, upid: Union[UPID, str], transport: Any):
        self.upid = UPID.parse(upid)
        self.transport = transport
        self.snapshot = StatusSnapshot()
        self.created_at = datetime.now(timezone.utc)
        self.endtime: Optional[int] = None
        self.wait_state = WaitState.PENDING

    def __repr__(self) -> str:
        return f"<Task {self.upid} {self.wait_state.value}>"

    @classmethod
    def from_listing(cls, entry: Dict[str, Any], transport: Any) -> "Task":
        """Build a Task from a ``/cluster/tasks`` or ``/nodes/{node}/tasks`` row.

        Finished rows carry ``endtime`` and report the exit status in
        ``status``. Rows without ``endtime`` are still running.
        """
        task = cls(entry["upid"], transport)
        if entry.get("endtime"):
            task.endtime = int(entry["endtime"])
            task.snapshot = StatusSnapshot(
                running=False,
                exit_status=str(entry.get("status") or "").strip(),
                raw=dict(entry),
                observed_at=datetime.now(timezone.utc),
            )
        else:
            task.snapshot = StatusSnapshot(
                running=True,
                raw=dict(entry),
                observed_at=datetime.now(timezone.utc),
            )
        return task

    @property
    def node(self) -> str:
        return self.upid.node

    @property
    def path(self) -> str:
        return f"/nodes/{self.upid.node}/tasks/{self.upid}"

    @property
    def duration(self) -> Optional[timedelta]:
        if self.endtime is None:
            return None
        return timedelta(seconds=self.endtime - self.upid.starttime)

    def status(self) -> StatusSnapshot:
        """Fetch the remote status once and update the cached snapshot.

        Transport errors propagate untouched. Once the snapshot is terminal
        this returns it without another request.
        """
        if self.snapshot.terminal:
            return self.snapshot
        snapshot = StatusSnapshot.from_status(self.transport.get(f"{self.path}/status"))
        snapshot.log_tail = self.snapshot.log_tail
        self.snapshot = snapshot
        if snapshot.terminal and "endtime" in snapshot.raw:
            self.endtime = int(snapshot.raw["endtime"])
        return snapshot

    def log(self, start: int = 0, limit: int = 50) -> List[str]:
        """Read task log lines and keep them as the snapshot's log tail."""
        rows = self.transport.get(f"{self.path}/log", start=start, limit=limit)
        if not isinstance(rows, list):
            raise MalformedResponse(f"Task log is not a list: {rows!r}")
        rows = sorted((r for r in rows if isinstance(r, dict)), key=lambda r: r.get("n", 0))
        self.snapshot.log_tail = [str(r.get("t", "")) for r in rows]
        return self.snapshot.log_tail

    def stop(self) -> None:
        """Ask the node to abort the job. Never called on local timeouts."""
        self.transport.delete(self.path)

    def is_running(self) -> bool:
        return self.snapshot.running

    def is_terminal(self) -> bool:
        return self.snapshot.terminal

    def is_successful(self) -> bool:
        return self.snapshot.success

    def is_failed(self) -> bool:
        return self.snapshot.terminal and not self.snapshot.success

    def wait(
        self,
        interval: float = DEFAULT_POLL_INTERVAL,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
        max_transient_errors: int = DEFAULT_MAX_TRANSIENT_ERRORS,
    ) -> StatusSnapshot:
        """Poll every ``interval`` seconds until the job stops.

        Returns the terminal snapshot on success. Raises ``RemoteTaskFailed``
        when the job failed, ``DeadlineExceeded`` after ``timeout`` seconds
        (``None``/0 waits forever), ``Cancelled`` once ``cancel`` is set, and
        fatal transport errors as they come.
        """
        poller = TaskPoller(
            self,
            interval=interval,
            timeout=timeout,
            cancel=cancel,
            max_transient_errors=max_transient_errors,
        )
        return poller.run()

    def wait_for(self, timeout: Optional[float] = None,
                 cancel: Optional[threading.Event] = None) -> StatusSnapshot:
        """``wait`` with the default one second poll interval."""
        return self.wait(DEFAULT_POLL_INTERVAL, timeout=timeout, cancel=cancel)


class TaskPoller:
    """Drives ``Task.status`` until a terminal snapshot, deadline or cancel.

    ``clock`` and ``sleep`` are injectable; ``sleep(seconds)`` must return
    True when it was woken by cancellation.
    """

    def __init__(
        self,
        task: Task,
        interval: float = DEFAULT_POLL_INTERVAL,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
        max_transient_errors: int = DEFAULT_MAX_TRANSIENT_ERRORS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], bool]] = None,
    ):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        if max_transient_errors < 0:
            raise ValueError(f"max_transient_errors must be >= 0, got {max_transient_errors}")
        self.task = task
        self.interval = interval
        self.timeout = timeout or None
        self.cancel = cancel or threading.Event()
        self.max_transient_errors = max_transient_errors
        self.clock = clock
        self.sleep = sleep or self.cancel.wait
        self.polls = 0
        self.state = WaitState.PENDING

    def _set_state(self, state: WaitState) -> None:
        self.state = state
        self.task.wait_state = state

    def _abort(self, state: WaitState, started: float):
        self._set_state(state)
        error = Cancelled if state is WaitState.CANCELLED else DeadlineExceeded
        return error(self.task.upid, self.clock() - started)

    def run(self) -> StatusSnapshot:
        started = self.clock()
        deadline = started + self.timeout if self.timeout else None
        transient_errors = 0
        self._set_state(WaitState.POLLING)

        while True:
            if self.cancel.is_set():
                raise self._abort(WaitState.CANCELLED, started)
            if deadline is not None and self.clock() >= deadline:
                raise self._abort(WaitState.TIMED_OUT, started)

            self.polls += 1
            try:
                snapshot = self.task.status()
            except TransientTransport:
                transient_errors += 1
                if transient_errors > self.max_transient_errors:
                    self._set_state(WaitState.FAILED)
                    raise
            except Exception:
                self._set_state(WaitState.FAILED)
                raise
            else:
                transient_errors = 0
                if snapshot.success:
                    self._set_state(WaitState.COMPLETED)
                    return snapshot
                if snapshot.terminal:
                    self._set_state(WaitState.FAILED)
                    raise RemoteTaskFailed(self.task.upid, snapshot.exit_status)

            delay = self.interval
            if deadline is not None:
                remaining = deadline - self.clock()
                if remaining <= 0:
                    raise self._abort(WaitState.TIMED_OUT, started)
                delay = min(delay, remaining)
            if self.sleep(delay):
                raise self._abort(WaitState.CANCELLED, started)


def task_from_result(result: Any, transport: Any) -> Optional[Task]:
    """Wrap the result of a write call in a Task when it is a UPID.

    Synchronous endpoints answer with ``None`` or a plain value; those yield
    ``None``.
    """
    if is_upid(result):
        return Task(result, transport)
    return None
