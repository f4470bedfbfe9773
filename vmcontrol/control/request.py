"""Request shape accepted by the control facade."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Union

from vmcontrol.config.credentials import RemoteTarget
from vmcontrol.errors import DeadlineExceeded
from vmcontrol.inventory.models import VMSpec

DEFAULT_API_PORT = 9090

POWER_ACTIONS = ("start", "shutdown", "forceoff", "reboot", "pause", "resume")
ACTIONS = ("list", "get", *POWER_ACTIONS, "delete", "create", "update")

# Names used by the desktop client and by virsh itself.
ACTION_ALIASES = {
    "stop": "shutdown",
    "destroy": "forceoff",
    "poweroff": "forceoff",
    "suspend": "pause",
    "info": "get",
}

NEEDS_VM_ID = frozenset({"get", *POWER_ACTIONS, "delete", "update"})
NEEDS_SPEC = frozenset({"create", "update"})


def normalize_action(action: str | None) -> str:
    key = (action or "").strip().lower()
    return ACTION_ALIASES.get(key, key)


@dataclass(frozen=True)
class FacadeRequest:
    """One control or inventory operation against one host.

    Attributes:
        action: Logical action name (see `ACTIONS`).
        target: The host the operation is about.
        vm_id: Domain name for per-VM actions.
        vm_spec: Resources for `create` and `update`, either a `VMSpec` or
            a mapping accepted by `VMSpec.from_dict`.
        fallback_target: SSH host used to reach `target` when the primary
            path fails to connect.
        use_api: Talk to the management API instead of running virsh.
        api_port: Management API port on `target`.
        deadline: Seconds the whole operation may take, fallback included.
        requested_by: Free-form caller identity recorded in the audit log.
    """

    action: str
    target: RemoteTarget | None
    vm_id: str | None = None
    vm_spec: Union[VMSpec, dict[str, Any], None] = None
    fallback_target: RemoteTarget | None = None
    use_api: bool = False
    api_port: int = DEFAULT_API_PORT
    deadline: float | None = None
    requested_by: str | None = None


class Deadline:
    """Monotonic budget shared by every remote call of one request."""

    def __init__(self, seconds: float | None):
        self.seconds = seconds
        self._expires = time.monotonic() + seconds if seconds is not None else None

    def remaining(self) -> float | None:
        """Seconds left, or None when unbounded.

        Raises:
            DeadlineExceeded: The budget is spent.
        """
        if self._expires is None:
            return None
        left = self._expires - time.monotonic()
        if left <= 0:
            raise DeadlineExceeded(f"Deadline of {self.seconds}s exceeded")
        return left
