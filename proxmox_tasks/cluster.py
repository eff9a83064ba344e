"""
Cluster-level reads and backup schedule operations.
"""

import time
from typing import Any, Callable, Dict, List, Optional

from .errors import MalformedResponse, is_not_authorized
from .task import Task, task_from_result
from .transport import retry


class Cluster:
    """Cluster view bound to a shared transport.

    Reads are retried on transient errors; writes are sent once.
    """

    def __init__(self, transport: Any, attempts: int = 3,
                 sleep: Callable[[float], None] = time.sleep):
        self.transport = transport
        self.attempts = attempts
        self.sleep = sleep
        self.entries: List[Dict[str, Any]] = []

    @classmethod
    def connect(cls, transport: Any, **kwargs) -> "Cluster":
        """Return a Cluster, reading its status when permitted.

        ``/cluster/status`` needs Sys.Audit on ``/``; without it the cluster
        object is still usable for everything else.
        """
        cluster = cls(transport, **kwargs)
        try:
            cluster.status()
        except Exception as e:
            if not is_not_authorized(e):
                raise
        return cluster

    def _get(self, path: str, **params) -> Any:
        return retry(lambda: self.transport.get(path, **params), attempts=self.attempts, sleep=self.sleep)

    def status(self) -> List[Dict[str, Any]]:
        entries = self._get("/cluster/status")
        if not isinstance(entries, list):
            raise MalformedResponse(f"Cluster status is not a list: {entries!r}")
        self.entries = entries
        return entries

    def _cluster_entry(self) -> Dict[str, Any]:
        for entry in self.entries:
            if entry.get("type") == "cluster":
                return entry
        return {}

    @property
    def name(self) -> Optional[str]:
        return self._cluster_entry().get("name")

    @property
    def version(self) -> Optional[int]:
        return self._cluster_entry().get("version")

    @property
    def quorate(self) -> bool:
        return bool(self._cluster_entry().get("quorate"))

    @property
    def nodes(self) -> List[Dict[str, Any]]:
        return [e for e in self.entries if e.get("type") == "node"]

    def next_id(self) -> int:
        return int(self._get("/cluster/nextid"))

    def resources(self, *filters: str) -> List[Dict[str, Any]]:
        """List cluster resources, optionally filtered by type (vm, storage, node, sdn)."""
        resource_type = "".join(filters).replace(" ", "")
        if resource_type:
            return self._get("/cluster/resources", type=resource_type)
        return self._get("/cluster/resources")

    def backups(self, **options) -> Optional[Task]:
        return task_from_result(self.transport.post("/cluster/backup", **options), self.transport)

    def update_backup(self, backup_id: str, **options) -> Optional[Task]:
        return task_from_result(
            self.transport.put(f"/cluster/backup/{backup_id}", **options), self.transport
        )

    def get_backups(self) -> List[Dict[str, Any]]:
        return self._get("/cluster/backup") or []

    def delete_backup_schedule(self, backup_id: str) -> Optional[Task]:
        return task_from_result(
            self.transport.delete(f"/cluster/backup/{backup_id}"), self.transport
        )

    def tasks(self) -> List[Task]:
        """Recent and running tasks across the cluster, bound to this transport."""
        return [Task.from_listing(row, self.transport) for row in self._get("/cluster/tasks") or []]

    def node_tasks(self, node: str, **filters) -> List[Task]:
        """Task history of one node. ``filters`` are passed as query parameters
        (``start``, ``limit``, ``errors``, ``typefilter``, ``vmid``, ``source``...)."""
        rows = self._get(f"/nodes/{node}/tasks", **filters) or []
        return [Task.from_listing(row, self.transport) for row in rows]
