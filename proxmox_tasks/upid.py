"""
Parsing and encoding of Proxmox UPID job identifiers.

A UPID looks like::

    UPID:pve1:0000B9E2:0123ABCD:65F0A1B2:vzdump:100:root@pam:

and is emitted by the node as
``UPID:{node}:{pid:08X}:{pstart:08X}:{starttime:08X}:{type}:{id}:{user}:``.
Tokens are used verbatim as API path segments, so parsing is strict enough
that ``str(UPID.parse(token)) == token`` always holds. The node itself also
decodes lower-case hex fields, but it only ever emits upper-case ones; a
lower-case token could not be re-encoded verbatim and is rejected as
``MalformedIdentifier``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from .errors import MalformedIdentifier

PREFIX = "UPID:"
FIELD_COUNT = 7

_NODE_RE = re.compile(r"[A-Za-z0-9](?:[A-Za-z0-9\-]*[A-Za-z0-9])?")
# %08X: at least eight upper-case digits, no extra leading zeros
_HEX_RE = re.compile(r"[0-9A-F]{8}|[1-9A-F][0-9A-F]{8,}")
_TAG_RE = re.compile(r"[^:\s]+")
_ID_RE = re.compile(r"[^:\s]*")
_USER_RE = re.compile(r"[^:\s@]+@[^:\s@]+")


def _hex_field(token: str, name: str, value: str) -> int:
    if not _HEX_RE.fullmatch(value):
        raise MalformedIdentifier(token, f"{name} {value!r} is not an 8-digit upper-case hex number")
    return int(value, 16)


@dataclass(frozen=True)
class UPID:
    """Decomposed job identifier. Immutable, compares by value."""

    node: str
    pid: int
    pstart: int
    starttime: int
    task_type: str
    object_id: str
    user: str

    @classmethod
    def parse(cls, token: Any) -> "UPID":
        """Parse ``token`` or raise ``MalformedIdentifier``."""
        if isinstance(token, UPID):
            return token
        if not isinstance(token, str):
            raise MalformedIdentifier(repr(token), "not a string")
        if not token.startswith(PREFIX):
            raise MalformedIdentifier(token, f"missing {PREFIX!r} prefix")
        if not token.endswith(":"):
            raise MalformedIdentifier(token, "missing trailing ':'")

        parts = token[len(PREFIX):-1].split(":")
        if len(parts) != FIELD_COUNT:
            raise MalformedIdentifier(token, f"expected {FIELD_COUNT} fields, got {len(parts)}")
        node, pid, pstart, starttime, task_type, object_id, user = parts

        if not _NODE_RE.fullmatch(node):
            raise MalformedIdentifier(token, f"invalid node name {node!r}")
        if not _TAG_RE.fullmatch(task_type):
            raise MalformedIdentifier(token, "empty or invalid task type")
        if not _ID_RE.fullmatch(object_id):
            raise MalformedIdentifier(token, f"invalid object id {object_id!r}")
        if not _USER_RE.fullmatch(user):
            raise MalformedIdentifier(token, f"invalid user {user!r}")

        return cls(
            node=node,
            pid=_hex_field(token, "pid", pid),
            pstart=_hex_field(token, "pstart", pstart),
            starttime=_hex_field(token, "starttime", starttime),
            task_type=task_type,
            object_id=object_id,
            user=user,
        )

    def encode(self) -> str:
        return (
            f"{PREFIX}{self.node}:{self.pid:08X}:{self.pstart:08X}:{self.starttime:08X}:"
            f"{self.task_type}:{self.object_id}:{self.user}:"
        )

    def __str__(self) -> str:
        return self.encode()

    @property
    def started_at(self) -> datetime:
        return datetime.fromtimestamp(self.starttime, tz=timezone.utc)

    @property
    def vmid(self) -> Optional[int]:
        """Guest id the task acts on, when the object id is numeric."""
        return int(self.object_id) if self.object_id.isdigit() else None


def is_upid(value: Any) -> bool:
    """Cheap check used to tell async write results from synchronous ones."""
    if isinstance(value, UPID):
        return True
    if not isinstance(value, str) or not value.startswith(PREFIX):
        return False
    try:
        UPID.parse(value)
    except MalformedIdentifier:
        return False
    return True
