"""Inventory and control of libvirt domains through the virsh CLI.

Every operation is a sequence of shell commands run through a
`CommandStrategy`, so the same backend works over a direct SSH session or a
tunneled one. Listing describes each domain independently: a failure while
describing one domain degrades that record and never the whole list.
"""

from __future__ import annotations

import logging
import math
import shlex
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

from vmcontrol.errors import (
    CommandFailure,
    DeadlineExceeded,
    ExecutionError,
    InvalidRequestError,
    NotFoundError,
    VMControlError,
)
from vmcontrol.inventory.models import Disk, NetworkInterface, VirtualMachine, VMSpec, VMState
from vmcontrol.inventory.parser import (
    parse_address_table,
    parse_disk_size,
    parse_disk_table,
    parse_dominfo,
    parse_interface_table,
    parse_name_list,
)
from vmcontrol.SSH.utils.types import CommandResult

from .request import Deadline
from .strategies import CommandStrategy

log = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 8
DEFAULT_DISK_GIB = 10
GIB = 1024**3

POWER_COMMANDS = {
    "start": "start",
    "shutdown": "shutdown",
    "forceoff": "destroy",
    "reboot": "reboot",
    "pause": "suspend",
    "resume": "resume",
}

_MISSING_DOMAIN_MARKERS = (
    "domain not found",
    "failed to get domain",
    "no domain with matching name",
    "domain does not exist",
)


def looks_like_missing_domain(result: CommandResult) -> bool:
    combined = f"{result.stdout}\n{result.stderr}".lower()
    return any(marker in combined for marker in _MISSING_DOMAIN_MARKERS)


def _cmd(*args: object) -> str:
    return shlex.join(str(a) for a in args)


def _raise_for_result(command: str, result: CommandResult, vm_id: str | None) -> CommandResult:
    if result.ok:
        return result
    if vm_id is not None and looks_like_missing_domain(result):
        raise NotFoundError(f"VM '{vm_id}' not found")
    raise CommandFailure(
        f"'{command}' exited with {result.exit_code}",
        stderr=result.stderr or result.stdout,
        exit_code=result.exit_code,
    )


class VirshBackend:
    """Run virsh on a host and turn its output into `VirtualMachine` records.

    Args:
        strategy: How commands reach the host.
        deadline: Budget shared by every command of the current request.
        max_workers: Upper bound on concurrent per-domain describes.
        on_command: Called with each state-changing command and its result.
    """

    def __init__(
        self,
        strategy: CommandStrategy,
        *,
        deadline: Deadline | None = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
        on_command: Callable[[str, CommandResult], None] | None = None,
    ):
        self.strategy = strategy
        self.deadline = deadline or Deadline(None)
        self.max_workers = max(1, max_workers)
        self.on_command = on_command

    def _run(self, command: str) -> CommandResult:
        log.debug("[%s] %s", self.strategy.name, command)
        return self.strategy.run(command, timeout=self.deadline.remaining())

    def _check(self, command: str, vm_id: str | None = None) -> CommandResult:
        return _raise_for_result(command, self._run(command), vm_id)

    def _control(self, command: str, vm_id: str) -> CommandResult:
        result = self._run(command)
        if self.on_command is not None:
            self.on_command(command, result)
        return _raise_for_result(command, result, vm_id)

    # ---------
    # Inventory
    # ---------

    def list_vms(self) -> list[VirtualMachine]:
        """Describe every defined domain, in `virsh list` order."""
        names = parse_name_list(self._check(_cmd("virsh", "list", "--all", "--name")).stdout)
        if not names:
            return []
        workers = min(len(names), self.max_workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="vmcontrol-describe") as pool:
            return list(pool.map(self._describe, names))

    def get_vm(self, vm_id: str) -> VirtualMachine:
        """Describe one domain.

        Raises:
            NotFoundError: virsh does not know the domain.
        """
        return self._details(vm_id, self._state(vm_id))

    def _state(self, vm_id: str) -> VMState:
        result = self._check(_cmd("virsh", "domstate", vm_id), vm_id)
        return VMState.from_raw(result.stdout)

    def _describe(self, name: str) -> VirtualMachine:
        try:
            state = self._state(name)
        except VMControlError as e:
            log.warning("State of VM %s unavailable: %s", name, e)
            state = VMState.UNKNOWN
        return self._details(name, state)

    def _details(self, name: str, state: VMState) -> VirtualMachine:
        try:
            vcpus, memory_mib = parse_dominfo(self._check(_cmd("virsh", "dominfo", name), name).stdout)
            disks = self._disks(name)
            interfaces = self._interfaces(name, state)
        except VMControlError as e:
            log.warning("Details of VM %s unavailable, using defaults: %s", name, e)
            return VirtualMachine.default(name, state)
        return VirtualMachine(
            id=name,
            name=name,
            state=state,
            vcpu_count=vcpus,
            memory_mib=memory_mib,
            disks=tuple(disks),
            interfaces=tuple(interfaces),
        )

    def _disks(self, name: str) -> list[Disk]:
        rows = parse_disk_table(self._check(_cmd("virsh", "domblklist", name), name).stdout)
        return [Disk(device=device, size_bytes=self._disk_size(source)) for device, source in rows]

    def _disk_size(self, source: str) -> int:
        try:
            result = self._run(_cmd("qemu-img", "info", "--force-share", source))
        except VMControlError as e:
            log.debug("qemu-img info %s failed: %s", source, e)
            return 0
        if not result.ok:
            log.debug("qemu-img info %s exited with %s", source, result.exit_code)
            return 0
        return parse_disk_size(result.stdout)

    def _interfaces(self, name: str, state: VMState) -> list[NetworkInterface]:
        interfaces = parse_interface_table(self._check(_cmd("virsh", "domiflist", name), name).stdout)
        if state is not VMState.RUNNING or not interfaces:
            return interfaces
        addresses = self._addresses(name)
        return [
            NetworkInterface(
                name=iface.name,
                mac_address=iface.mac_address,
                ip_address=addresses.get(iface.mac_address.lower()) or addresses.get(iface.name),
            )
            for iface in interfaces
        ]

    def _addresses(self, name: str) -> dict[str, str]:
        for source in (None, "arp"):
            args = ["virsh", "domifaddr", name]
            if source:
                args += ["--source", source]
            try:
                result = self._run(_cmd(*args))
            except VMControlError as e:
                log.debug("domifaddr for %s failed: %s", name, e)
                return {}
            if result.ok:
                addresses = parse_address_table(result.stdout)
                if addresses:
                    return addresses
        return {}

    # -------
    # Control
    # -------

    def power(self, vm_id: str, action: str) -> CommandResult:
        """Run the virsh subcommand for a power action."""
        try:
            subcommand = POWER_COMMANDS[action]
        except KeyError:
            raise InvalidRequestError(f"Not a power action: {action!r}")
        return self._control(_cmd("virsh", subcommand, vm_id), vm_id)

    def delete_vm(self, vm_id: str) -> None:
        """Force power-off, then undefine the domain along with its storage.

        Power-off errors are ignored, including a timed-out read: a domain
        that is already shut off makes `virsh destroy` fail. A lost
        connection still propagates so the fallback path can retry.
        """
        destroy = _cmd("virsh", "destroy", vm_id)
        try:
            result = self._run(destroy)
        except (ExecutionError, DeadlineExceeded) as e:
            log.debug("Ignoring failed power-off of %s: %s", vm_id, e)
        else:
            if self.on_command is not None:
                self.on_command(destroy, result)
            if not result.ok:
                log.debug("Ignoring failed power-off of %s: %s", vm_id, result.stderr.strip())
        self._control(_cmd("virsh", "undefine", vm_id, "--remove-all-storage"), vm_id)

    def create_vm(self, spec: VMSpec) -> VirtualMachine:
        if not spec.name or spec.vcpus is None or spec.memory_mib is None:
            raise InvalidRequestError("create requires name, vcpus and memory")
        size_bytes = spec.disks[0].size_bytes if spec.disks else 0
        size_gib = math.ceil(size_bytes / GIB) if size_bytes > 0 else DEFAULT_DISK_GIB
        network = f"bridge={spec.bridge}"
        if spec.interfaces and spec.interfaces[0].mac_address:
            network += f",mac={spec.interfaces[0].mac_address}"
        command = _cmd(
            "virt-install",
            "--name",
            spec.name,
            "--vcpus",
            spec.vcpus,
            "--memory",
            spec.memory_mib,
            "--disk",
            f"size={size_gib}",
            "--network",
            network,
            "--os-variant",
            spec.os_variant,
            "--import",
            "--noautoconsole",
        )
        self._control(command, spec.name)
        return self.get_vm(spec.name)

    def update_vm(self, vm_id: str, spec: VMSpec) -> VirtualMachine:
        """Change persistent vCPU and memory settings; applied on next boot."""
        if spec.vcpus is None and spec.memory_mib is None:
            raise InvalidRequestError("update requires vcpus or memory")
        if spec.vcpus is not None:
            self._control(_cmd("virsh", "setvcpus", vm_id, spec.vcpus, "--config", "--maximum"), vm_id)
            self._control(_cmd("virsh", "setvcpus", vm_id, spec.vcpus, "--config"), vm_id)
        if spec.memory_mib is not None:
            self._control(_cmd("virsh", "setmaxmem", vm_id, f"{spec.memory_mib}MiB", "--config"), vm_id)
            self._control(_cmd("virsh", "setmem", vm_id, f"{spec.memory_mib}MiB", "--config"), vm_id)
        return self.get_vm(vm_id)
