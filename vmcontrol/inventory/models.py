"""VM inventory records.

Records are built fresh from every inventory query and never cached.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class VMState(str, Enum):
    RUNNING = "running"
    PAUSED = "paused"
    SHUT_OFF = "shutOff"
    UNKNOWN = "unknown"

    @classmethod
    def from_raw(cls, raw: str | None) -> "VMState":
        """Map a virsh or management API state string; unrecognized maps to UNKNOWN."""
        key = " ".join(str(raw or "").strip().lower().replace("_", " ").replace("-", " ").split())
        return _RAW_STATES.get(key, cls.UNKNOWN)


_RAW_STATES = {
    "running": VMState.RUNNING,
    "idle": VMState.RUNNING,
    "blocked": VMState.RUNNING,
    "in shutdown": VMState.RUNNING,
    "paused": VMState.PAUSED,
    "pmsuspended": VMState.PAUSED,
    "suspended": VMState.PAUSED,
    "shut off": VMState.SHUT_OFF,
    "shutoff": VMState.SHUT_OFF,
    "stopped": VMState.SHUT_OFF,
}


@dataclass(frozen=True)
class Disk:
    device: str
    size_bytes: int = 0


@dataclass(frozen=True)
class NetworkInterface:
    name: str
    mac_address: str
    ip_address: str | None = None


@dataclass(frozen=True)
class VirtualMachine:
    id: str
    name: str
    state: VMState = VMState.UNKNOWN
    vcpu_count: int = 1
    memory_mib: int = 1024
    disks: tuple[Disk, ...] = ()
    interfaces: tuple[NetworkInterface, ...] = ()

    @classmethod
    def default(cls, name: str, state: VMState = VMState.UNKNOWN) -> "VirtualMachine":
        """Displayable record for a VM whose details could not be fetched."""
        return cls(id=name, name=name, state=state)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "state": self.state.value,
            "vcpu_count": self.vcpu_count,
            "memory_mib": self.memory_mib,
            "disks": [{"device": d.device, "size_bytes": d.size_bytes} for d in self.disks],
            "interfaces": [
                {"name": i.name, "mac_address": i.mac_address, "ip_address": i.ip_address}
                for i in self.interfaces
            ],
        }


def _first(mapping: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if mapping.get(key) is not None:
            return mapping[key]
    return default


@dataclass(frozen=True)
class VMSpec:
    """Requested resources for `create`, or the changes for `update`.

    `vcpus` and `memory_mib` are optional for updates; `create` requires both.
    """

    name: str | None = None
    vcpus: int | None = None
    memory_mib: int | None = None
    disks: tuple[Disk, ...] = ()
    interfaces: tuple[NetworkInterface, ...] = ()
    os_variant: str = "generic"
    bridge: str = "virbr0"
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VMSpec":
        """Build a spec from snake_case keys or the desktop form's keys.

        The form sends `vcpus`, `memory` (MiB), `disks[].size` (bytes) and
        `interfaces[].mac`.

        Raises:
            ValueError: On malformed `disks`/`interfaces`, or non-integer or
                out-of-range resource values.
        """
        if not isinstance(data, dict):
            raise ValueError("vm spec must be a mapping")

        def _integer(value: Any, label: str, minimum: int) -> int | None:
            if value is None or value == "":
                return None
            if isinstance(value, bool):
                raise ValueError(f"{label} must be an integer (got {value!r})")
            try:
                number = int(value)
            except (TypeError, ValueError):
                raise ValueError(f"{label} must be an integer (got {value!r})")
            if number < minimum:
                raise ValueError(f"{label} must be >= {minimum} (got {number})")
            return number

        def _entries(key: str) -> list[dict[str, Any]]:
            value = data.get(key)
            if value is None:
                return []
            if not isinstance(value, (list, tuple)):
                raise ValueError(f"{key} must be a list (got {type(value).__name__})")
            for i, entry in enumerate(value):
                if not isinstance(entry, dict):
                    raise ValueError(f"{key}[{i}] must be a mapping (got {type(entry).__name__})")
            return list(value)

        disks = tuple(
            Disk(
                device=str(_first(d, "device", default="vda")),
                size_bytes=_integer(
                    _first(d, "size_bytes", "sizeBytes", "size"), f"disks[{n}].size", 0
                ) or 0,
            )
            for n, d in enumerate(_entries("disks"))
        )
        interfaces = tuple(
            NetworkInterface(
                name=str(_first(i, "name", default="")),
                mac_address=str(_first(i, "mac_address", "macAddress", "mac", default="")),
                ip_address=_first(i, "ip_address", "ipAddress", "ip") or None,
            )
            for i in _entries("interfaces")
        )
        known = {
            "name", "vcpus", "vcpu_count", "memory", "memory_mib",
            "disks", "interfaces", "os_variant", "bridge",
        }
        return cls(
            name=_first(data, "name"),
            vcpus=_integer(_first(data, "vcpus", "vcpu_count"), "vcpus", 1),
            memory_mib=_integer(_first(data, "memory_mib", "memory"), "memory", 1),
            disks=disks,
            interfaces=interfaces,
            os_variant=str(data.get("os_variant") or "generic"),
            bridge=str(data.get("bridge") or "virbr0"),
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> dict[str, Any]:
        """Record in the management API's request shape.

        Unset fields and empty `disks`/`interfaces` are left out, so an
        update body carries only what changes.
        """
        payload: dict[str, Any] = {
            "name": self.name,
            "vcpus": self.vcpus,
            "memory": self.memory_mib,
        }
        if self.disks:
            payload["disks"] = [{"device": d.device, "size": d.size_bytes} for d in self.disks]
        if self.interfaces:
            payload["interfaces"] = [
                {"name": i.name, "mac": i.mac_address, "ip": i.ip_address} for i in self.interfaces
            ]
        payload.update(self.extra)
        return {k: v for k, v in payload.items() if v is not None}
