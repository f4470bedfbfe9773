"""Single entry point for every VM inventory and control operation.

`VMControlFacade.handle` validates a `FacadeRequest`, picks a primary
backend (virsh over SSH, or the management API), retries once through an
SSH tunnel when the primary path cannot connect, and maps the outcome onto
a `Response` envelope. It never raises.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, Union

from vmcontrol.errors import (
    InvalidRequestError,
    RemoteConnectionError,
    UnsupportedActionError,
    VMControlError,
    reason,
)
from vmcontrol.inventory.models import VirtualMachine, VMSpec
from vmcontrol.qdrant.log_manager import AuditLog
from vmcontrol.SSH.http_client import HttpClient
from vmcontrol.SSH.remote_executor import SSHTransport
from vmcontrol.SSH.tunnel import SSHTunnelAdapter
from vmcontrol.SSH.utils.masking import mask_target
from vmcontrol.SSH.utils.types import CommandResult, Response

from .api import ManagementApiBackend
from .request import (
    ACTIONS,
    NEEDS_SPEC,
    NEEDS_VM_ID,
    POWER_ACTIONS,
    Deadline,
    FacadeRequest,
    normalize_action,
)
from .strategies import DirectCall, RawCommand, TunneledCall, TunneledCommand
from .virsh import DEFAULT_MAX_WORKERS, VirshBackend

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

STATUS_OK = 200
STATUS_CREATED = 201
STATUS_NO_CONTENT = 204
STATUS_INTERNAL = 500


class Backend(Protocol):
    def list_vms(self) -> list[VirtualMachine]: ...

    def get_vm(self, vm_id: str) -> VirtualMachine: ...

    def power(self, vm_id: str, action: str) -> Any: ...

    def delete_vm(self, vm_id: str) -> None: ...

    def create_vm(self, spec: VMSpec) -> VirtualMachine: ...

    def update_vm(self, vm_id: str, spec: VMSpec) -> VirtualMachine: ...


def success(status: int, data: Any = None) -> Response:
    return {"success": True, "status": status, "data": data}


def failure(status: int, message: str) -> Response:
    return {"success": False, "status": status, "error": {"message": message}}


def _describe_action(action: str, vm_id: str | None) -> str:
    if action == "list":
        return "list VMs"
    if action == "create":
        return "create VM"
    return f"{action} VM '{vm_id}'"


class VMControlFacade:
    """Dispatch `FacadeRequest`s to backends.

    Args:
        transport: SSH command transport for the raw path.
        tunnel: Adapter for tunneled commands and API calls.
        http: Client for direct API calls.
        audit: Optional audit log for state-changing commands.
        max_workers: Concurrency for per-VM describes when listing.
        default_timeout: Deadline used when a request carries none.
    """

    def __init__(
        self,
        *,
        transport: SSHTransport | None = None,
        tunnel: SSHTunnelAdapter | None = None,
        http: HttpClient | None = None,
        audit: AuditLog | None = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
        default_timeout: float | None = DEFAULT_TIMEOUT,
    ):
        self.transport = transport or SSHTransport()
        self.http = http or HttpClient()
        self.tunnel = tunnel or SSHTunnelAdapter(http=self.http, transport=self.transport)
        self.audit = audit
        self.max_workers = max_workers
        self.default_timeout = default_timeout

    def handle(self, request: FacadeRequest) -> Response:
        """Run one request and return its envelope."""
        action = normalize_action(request.action)
        subject = _describe_action(action, request.vm_id)
        try:
            spec = self._validate(request, action)
        except InvalidRequestError as e:
            log.info("Rejected request %r: %s", request.action, e)
            return failure(e.status, str(e))

        log.info(
            "%s on %s (%s)",
            action,
            mask_target(request.target),
            "api" if request.use_api else "virsh",
        )
        deadline = Deadline(request.deadline if request.deadline is not None else self.default_timeout)
        primary, fallback = self._backends(request, action, deadline)
        try:
            return self._attempt(request, primary, fallback, action, spec)
        except VMControlError as e:
            log.warning("Failed to %s: %s", subject, e)
            return failure(e.status, f"Failed to {subject}: {reason(e)}")
        except Exception as e:
            log.exception("Unexpected error while trying to %s", subject)
            return failure(STATUS_INTERNAL, f"Failed to {subject}: {reason(e)}")

    def _attempt(
        self,
        request: FacadeRequest,
        primary: Backend,
        fallback: Backend | None,
        action: str,
        spec: VMSpec | None,
    ) -> Response:
        try:
            return self._dispatch(primary, action, request.vm_id, spec)
        except RemoteConnectionError as e:
            if fallback is None:
                raise
            log.warning(
                "Primary path to %s failed (%s), retrying through SSH tunnel",
                mask_target(request.target),
                e,
            )
        return self._dispatch(fallback, action, request.vm_id, spec)

    def _validate(self, request: FacadeRequest, action: str) -> VMSpec | None:
        if request.target is None:
            raise InvalidRequestError("A target host is required")
        if action not in ACTIONS:
            raise UnsupportedActionError(f"Unsupported action: {request.action!r}")
        if action in NEEDS_VM_ID and not (request.vm_id or "").strip():
            raise InvalidRequestError(f"Action '{action}' requires a vm_id")
        if request.use_api and not (isinstance(request.api_port, int) and 0 < request.api_port < 65536):
            raise InvalidRequestError(f"Invalid API port: {request.api_port}")
        if action not in NEEDS_SPEC:
            return None
        spec = _coerce_spec(request.vm_spec, action)
        if action == "create" and (not spec.name or spec.vcpus is None or spec.memory_mib is None):
            raise InvalidRequestError("create requires name, vcpus and memory")
        if action == "update" and spec.vcpus is None and spec.memory_mib is None:
            raise InvalidRequestError("update requires vcpus or memory")
        return spec

    def _backends(
        self, request: FacadeRequest, action: str, deadline: Deadline
    ) -> tuple[Backend, Backend | None]:
        target = request.target
        hook = self._audit_hook(request, action)
        if request.use_api:
            ssh_target = request.fallback_target or target
            primary: Backend = ManagementApiBackend(
                DirectCall(self.http, target), deadline=deadline, port=request.api_port, on_command=hook
            )
            fallback: Backend | None = ManagementApiBackend(
                TunneledCall(self.tunnel, target, ssh_target),
                deadline=deadline,
                port=request.api_port,
                on_command=hook,
            )
            return primary, fallback

        primary = VirshBackend(
            RawCommand(self.transport, target),
            deadline=deadline,
            max_workers=self.max_workers,
            on_command=hook,
        )
        fallback = None
        if request.fallback_target is not None:
            fallback = VirshBackend(
                TunneledCommand(self.tunnel, target, request.fallback_target),
                deadline=deadline,
                max_workers=self.max_workers,
                on_command=hook,
            )
        return primary, fallback

    def _audit_hook(self, request: FacadeRequest, action: str):
        if self.audit is None:
            return None
        audit = self.audit

        def hook(command: str, result: CommandResult) -> None:
            audit.record(
                server=request.target.host,
                action=action,
                vm_id=request.vm_id,
                command=command,
                result=result,
                requested_by=request.requested_by,
            )

        return hook

    def _dispatch(self, backend: Backend, action: str, vm_id: str | None, spec: VMSpec | None) -> Response:
        if action == "list":
            return success(STATUS_OK, [vm.to_dict() for vm in backend.list_vms()])
        if action == "get":
            return success(STATUS_OK, backend.get_vm(vm_id).to_dict())
        if action in POWER_ACTIONS:
            backend.power(vm_id, action)
            return success(STATUS_OK, {"id": vm_id, "action": action})
        if action == "delete":
            backend.delete_vm(vm_id)
            return success(STATUS_NO_CONTENT, None)
        if action == "create":
            return success(STATUS_CREATED, backend.create_vm(spec).to_dict())
        if action == "update":
            return success(STATUS_OK, backend.update_vm(vm_id, spec).to_dict())
        raise UnsupportedActionError(f"Unsupported action: {action!r}")


def _coerce_spec(value: Union[VMSpec, dict[str, Any], None], action: str) -> VMSpec:
    if isinstance(value, VMSpec):
        return value
    if value is None:
        raise InvalidRequestError(f"Action '{action}' requires a vm_spec")
    try:
        return VMSpec.from_dict(value)
    except (TypeError, ValueError) as e:
        raise InvalidRequestError(f"Invalid vm_spec: {e}") from e
