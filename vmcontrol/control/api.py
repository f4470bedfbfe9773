"""Inventory and control through a host's management HTTP API.

Endpoints:
    GET    /api/machines
    POST   /api/machines
    GET    /api/machines/{id}
    PUT    /api/machines/{id}
    DELETE /api/machines/{id}
    POST   /api/machines/{id}/{action}
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable
from urllib.parse import quote

from vmcontrol.errors import CommandFailure, NotFoundError
from vmcontrol.inventory.models import VirtualMachine, VMSpec
from vmcontrol.inventory.parser import vm_from_record
from vmcontrol.SSH.http_client import HttpStatusError
from vmcontrol.SSH.utils.types import CommandResult, HttpRequestSpec, HttpResponse

from .request import DEFAULT_API_PORT, Deadline
from .strategies import RequestStrategy

log = logging.getLogger(__name__)

MACHINES_PATH = "/api/machines"


def _machine_path(vm_id: str, *parts: str) -> str:
    return "/".join([MACHINES_PATH, quote(vm_id, safe=""), *parts])


def _error_text(data: Any) -> str:
    if isinstance(data, dict):
        for key in ("error", "message", "detail"):
            value = data.get(key)
            if isinstance(value, dict):
                value = value.get("message")
            if value:
                return str(value)
        return ""
    return str(data or "")


def _records(data: Any) -> list[Any]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in ("machines", "data", "items"):
            if isinstance(data.get(key), list):
                return data[key]
    return []


def _looks_like_record(data: Any) -> bool:
    return isinstance(data, dict) and bool(data.get("name") or data.get("id"))


class ManagementApiBackend:
    """Same operations as `VirshBackend`, spoken over the management API."""

    def __init__(
        self,
        strategy: RequestStrategy,
        *,
        deadline: Deadline | None = None,
        port: int = DEFAULT_API_PORT,
        on_command: Callable[[str, CommandResult], None] | None = None,
    ):
        self.strategy = strategy
        self.deadline = deadline or Deadline(None)
        self.port = port
        self.on_command = on_command

    def _send(
        self, method: str, path: str, body: Any = None, *, vm_id: str | None = None, record: bool = False
    ) -> HttpResponse:
        request = HttpRequestSpec(path=path, method=method, body=body, port=self.port)
        label = f"{method} {path}"
        log.debug("[%s] %s", self.strategy.name, label)
        try:
            response = self.strategy.send(request, timeout=self.deadline.remaining())
        except HttpStatusError as e:
            detail = _error_text(e.data)
            if record and self.on_command is not None:
                self.on_command(label, CommandResult(e.status, "", detail or str(e)))
            if e.status == 404 and vm_id is not None:
                raise NotFoundError(f"VM '{vm_id}' not found") from e
            raise CommandFailure(str(e), stderr=detail, exit_code=e.status) from e
        if record and self.on_command is not None:
            self.on_command(label, CommandResult(0, json.dumps(response.data, default=str), ""))
        return response

    def _vm(self, data: Any, vm_id: str) -> VirtualMachine:
        if _looks_like_record(data):
            return vm_from_record(data)
        return self.get_vm(vm_id)

    def list_vms(self) -> list[VirtualMachine]:
        return [vm_from_record(r) for r in _records(self._send("GET", MACHINES_PATH).data)]

    def get_vm(self, vm_id: str) -> VirtualMachine:
        data = self._send("GET", _machine_path(vm_id), vm_id=vm_id).data
        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            data = data["data"]
        return vm_from_record(data)

    def power(self, vm_id: str, action: str) -> HttpResponse:
        return self._send("POST", _machine_path(vm_id, action), vm_id=vm_id, record=True)

    def delete_vm(self, vm_id: str) -> None:
        self._send("DELETE", _machine_path(vm_id), vm_id=vm_id, record=True)

    def create_vm(self, spec: VMSpec) -> VirtualMachine:
        data = self._send("POST", MACHINES_PATH, spec.to_dict(), record=True).data
        return self._vm(data, spec.name or "")

    def update_vm(self, vm_id: str, spec: VMSpec) -> VirtualMachine:
        data = self._send("PUT", _machine_path(vm_id), spec.to_dict(), vm_id=vm_id, record=True).data
        return self._vm(data, vm_id)
