"""
Authenticated request layer over the Proxmox management API.
"""

import random
import time
from typing import Any, Callable, Optional

import requests
import urllib3
from proxmoxer import ProxmoxAPI
from proxmoxer.core import ResourceException
from rich.console import Console

from .config import Config
from .errors import (
    MalformedResponse,
    NotAuthorized,
    TransientTransport,
    TransportError,
    is_not_authorized,
)

err_console = Console(stderr=True)


def translate_error(exc: Exception, method: str, path: str) -> TransportError:
    """Map a proxmoxer/requests failure onto the task error taxonomy."""
    if isinstance(exc, TransportError):
        return exc
    where = f"{method} {path}"
    if isinstance(exc, ResourceException):
        sc = getattr(exc, "status_code", None)
        if is_not_authorized(exc):
            return NotAuthorized(f"Permission denied for {where}: {exc}", status_code=sc)
        if sc is not None and sc >= 500:
            return TransientTransport(f"Server error on {where}: {exc}", status_code=sc)
        return TransportError(f"API error on {where}: {exc}", status_code=sc)
    if isinstance(exc, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        return TransientTransport(f"Network error on {where}: {exc}")
    if isinstance(exc, ValueError):
        return MalformedResponse(f"Could not decode response of {where}: {exc}")
    return TransportError(f"Request {where} failed: {exc}")


def retry(func: Callable[[], Any], attempts: int = 3, base_delay: float = 0.5,
          sleep: Callable[[float], None] = time.sleep) -> Any:
    """Lightweight retry with exponential backoff and jitter for one-shot GETs.

    Only ``TransientTransport`` errors are retried; the last one is re-raised
    once ``attempts`` are used up.
    """
    delay = base_delay
    last_exc: Optional[TransientTransport] = None
    for attempt in range(attempts):
        try:
            return func()
        except TransientTransport as e:
            last_exc = e
        if attempt + 1 < attempts:
            jitter = delay * 0.1
            sleep(delay + random.uniform(-jitter, jitter))
            delay = min(delay * 2, 2.0)
    if last_exc:
        raise last_exc
    raise TransportError("Retry attempts exhausted")


class ProxmoxTransport:
    """Thin wrapper over a ``ProxmoxAPI`` handle.

    Paths are API paths such as ``/cluster/status``; results are the decoded
    ``data`` member of the response. Every failure leaves here as a
    ``TransportError`` subclass.
    """

    def __init__(self, proxmox: Any, debug: bool = False):
        self.proxmox = proxmox
        self.debug = debug
        self.version: Optional[dict] = None

    @classmethod
    def from_config(cls, config: Config, debug: bool = False) -> "ProxmoxTransport":
        """Connect using ``config`` and run a version health check."""
        # Determine effective SSL verification behavior
        verify_ssl_param: Any
        if not config.verify_ssl:
            verify_ssl_param = False
        elif config.ca_cert_path:
            verify_ssl_param = config.ca_cert_path
        else:
            verify_ssl_param = True

        # Disable SSL warnings only when verification is actually disabled
        if verify_ssl_param is False:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
            err_console.print("[yellow]⚠ Warning: SSL verification is disabled[/yellow]")

        proxmox = ProxmoxAPI(
            config.host,
            port=config.port,
            user=config.user,
            token_name=config.token_name,
            token_value=config.token_value,
            verify_ssl=verify_ssl_param,
            service="PVE",
            timeout=(config.connect_timeout, config.read_timeout),
        )
        transport = cls(proxmox, debug=debug)
        transport.version = transport.get("/version")
        return transport

    def _resource(self, path: str):
        return self.proxmox(path.strip("/"))

    def _call(self, method: str, path: str, **kwargs) -> Any:
        if self.debug:
            err_console.print(f"[dim]{method} {path} {kwargs or ''}[/dim]")
        resource = self._resource(path)
        try:
            return getattr(resource, method.lower())(**kwargs)
        except Exception as e:
            raise translate_error(e, method, path) from e

    def get(self, path: str, **params) -> Any:
        return self._call("GET", path, **params)

    def post(self, path: str, **data) -> Any:
        return self._call("POST", path, **data)

    def put(self, path: str, **data) -> Any:
        return self._call("PUT", path, **data)

    def delete(self, path: str, **params) -> Any:
        return self._call("DELETE", path, **params)
