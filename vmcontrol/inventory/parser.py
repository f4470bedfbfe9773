"""Parsers for hypervisor CLI output.

Every function here is pure and total: malformed input degrades to defaults
instead of raising. When a default is substituted a `ParseDegraded` warning
is emitted so the substitution shows up in diagnostics.
"""

from __future__ import annotations

import re
import warnings
from typing import Any

from vmcontrol.errors import ParseDegraded

from .models import Disk, NetworkInterface, VirtualMachine, VMState

DEFAULT_VCPUS = 1
DEFAULT_MEMORY_MIB = 1024
DEFAULT_DISK_BYTES = 0

_KEY_VALUE_RE = re.compile(r"^\s*([^:]+?)\s*:\s+(.*?)\s*$")
_IPV4_RE = re.compile(r"(?<!\d)(?<!\d\.)(?:\d{1,3}\.){3}\d{1,3}(?!\d)(?!\.\d)")
_MAC_RE = re.compile(r"^[0-9a-fA-F]{2}(?::[0-9a-fA-F]{2}){5}$")
_QUANTITY_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([A-Za-z]*)")
_BYTES_RE = re.compile(r"\((\d+)\s*bytes\)")

_MIB_FACTORS = {
    "": 1 / 1024,  # virsh reports KiB when no unit is given
    "b": 1 / (1024 * 1024),
    "k": 1 / 1024,
    "kb": 1 / 1024,
    "kib": 1 / 1024,
    "m": 1,
    "mb": 1,
    "mib": 1,
    "g": 1024,
    "gb": 1024,
    "gib": 1024,
    "t": 1024 * 1024,
    "tib": 1024 * 1024,
}
_BYTE_FACTORS = {
    "": 1,
    "b": 1,
    "k": 1024,
    "kib": 1024,
    "m": 1024**2,
    "mib": 1024**2,
    "g": 1024**3,
    "gib": 1024**3,
    "t": 1024**4,
    "tib": 1024**4,
}


def _degraded(message: str) -> None:
    warnings.warn(message, ParseDegraded, stacklevel=3)


def parse_name_list(raw: str | None) -> list[str]:
    """Split output on lines, trim whitespace and drop empty lines."""
    return [line.strip() for line in (raw or "").splitlines() if line.strip()]


def parse_key_value_block(raw: str | None) -> dict[str, str]:
    """Parse `Key:   Value` lines; lines not matching the pattern are ignored.

    Splits on the first colon followed by whitespace, so values such as MAC
    addresses or timestamps keep their own colons.
    """
    result: dict[str, str] = {}
    for line in (raw or "").splitlines():
        m = _KEY_VALUE_RE.match(line)
        if not m:
            continue
        result[m.group(1)] = m.group(2)
    return result


def parse_column_table(raw: str | None, header_lines_to_skip: int) -> list[list[str]]:
    """Skip header/separator lines, then split each non-empty line on whitespace runs."""
    lines = (raw or "").strip("\n").splitlines()
    rows = []
    for line in lines[max(0, header_lines_to_skip) :]:
        cells = line.split()
        if cells:
            rows.append(cells)
    return rows


def extract_first_ipv4(raw: str | None) -> str | None:
    """Return the first dotted-quad found in `raw`, or None."""
    for m in _IPV4_RE.finditer(raw or ""):
        if all(int(octet) <= 255 for octet in m.group(0).split(".")):
            return m.group(0)
    return None


def _to_int(value: str | None) -> int | None:
    m = _QUANTITY_RE.match(value or "")
    if not m:
        return None
    return int(float(m.group(1)))


def quantity_to_mib(value: str | None) -> int | None:
    """Convert `1048576 KiB` style quantities to MiB, or None if unparsable."""
    m = _QUANTITY_RE.match(value or "")
    if not m:
        return None
    factor = _MIB_FACTORS.get(m.group(2).lower())
    if factor is None:
        return None
    return int(float(m.group(1)) * factor)


def parse_dominfo(raw: str | None) -> tuple[int, int]:
    """Return `(vcpu_count, memory_mib)` from `virsh dominfo` output."""
    info = parse_key_value_block(raw)

    vcpus = _to_int(info.get("CPU(s)"))
    if vcpus is None or vcpus < 1:
        _degraded(f"CPU(s) missing or unparsable ({info.get('CPU(s)')!r}), using {DEFAULT_VCPUS}")
        vcpus = DEFAULT_VCPUS

    memory = quantity_to_mib(info.get("Max memory"))
    if memory is None or memory < 1:
        _degraded(
            f"Max memory missing or unparsable ({info.get('Max memory')!r}), using {DEFAULT_MEMORY_MIB}"
        )
        memory = DEFAULT_MEMORY_MIB
    return vcpus, memory


def parse_disk_size(raw: str | None) -> int:
    """Return the virtual size in bytes from `qemu-img info` output."""
    info = parse_key_value_block(raw)
    value = info.get("virtual size") or ""

    exact = _BYTES_RE.search(value)
    if exact:
        return int(exact.group(1))
    m = _QUANTITY_RE.match(value)
    if m:
        factor = _BYTE_FACTORS.get(m.group(2).lower())
        if factor is not None:
            return int(float(m.group(1)) * factor)
    _degraded(f"virtual size missing or unparsable ({value!r}), using {DEFAULT_DISK_BYTES}")
    return DEFAULT_DISK_BYTES


def parse_disk_table(raw: str | None) -> list[tuple[str, str]]:
    """Return `(device, source)` pairs from `virsh domblklist`.

    Rows without a backing source (`-`, an empty CD-ROM drive) are skipped.
    """
    disks = []
    for row in parse_column_table(raw, 2):
        if len(row) < 2 or row[1] == "-":
            continue
        disks.append((row[0], " ".join(row[1:])))
    return disks


def _mac_from_row(row: list[str]) -> str:
    for cell in row[1:]:
        if _MAC_RE.match(cell):
            return cell
    return row[2] if len(row) > 2 else ""


def parse_interface_table(raw: str | None) -> list[NetworkInterface]:
    """Return interfaces from `virsh domiflist`.

    The interface name is column 0. The MAC is the first column that looks
    like one, falling back to column 2.
    """
    interfaces = []
    for row in parse_column_table(raw, 2):
        if len(row) < 3:
            continue
        interfaces.append(NetworkInterface(name=row[0], mac_address=_mac_from_row(row)))
    return interfaces


def parse_address_table(raw: str | None) -> dict[str, str]:
    """Map interface names and MACs to IPv4 addresses from `virsh domifaddr`.

    Continuation rows (extra addresses of the same interface) start with `-`
    and are attributed to the previous interface.
    """
    addresses: dict[str, str] = {}
    current: list[str] = []
    for row in parse_column_table(raw, 2):
        if row[0] != "-":
            current = [row[0]]
            if len(row) > 1 and _MAC_RE.match(row[1]):
                current.append(row[1].lower())
        ip = extract_first_ipv4(" ".join(row))
        if ip is None:
            continue
        for key in current:
            addresses.setdefault(key, ip)
    return addresses


def _int_field(record: dict[str, Any], keys: tuple[str, ...], default: int, label: str) -> int:
    for key in keys:
        value = record.get(key)
        if value is None:
            continue
        try:
            number = int(value)
        except (TypeError, ValueError):
            break
        if number >= 0:
            return number
        break
    _degraded(f"{label} missing or unparsable in record, using {default}")
    return default


def vm_from_record(record: dict[str, Any]) -> VirtualMachine:
    """Normalize a management API VM record.

    Accepts the API's own shape (`vcpus`, `memory`, `disks[].size`,
    `interfaces[].mac/ip`) as well as `VirtualMachine.to_dict()` output.
    """
    if not isinstance(record, dict):
        _degraded(f"VM record is not a mapping: {record!r}")
        return VirtualMachine.default("")

    name = str(record.get("name") or record.get("id") or "")
    vcpus = _int_field(record, ("vcpu_count", "vcpuCount", "vcpus"), DEFAULT_VCPUS, "vcpus")
    memory = _int_field(record, ("memory_mib", "memoryMiB", "memory"), DEFAULT_MEMORY_MIB, "memory")

    disks = []
    for d in record.get("disks") or []:
        if not isinstance(d, dict):
            continue
        size = _int_field(d, ("size_bytes", "sizeBytes", "size"), DEFAULT_DISK_BYTES, "disk size")
        disks.append(Disk(device=str(d.get("device", "")), size_bytes=size))

    interfaces = []
    for i in record.get("interfaces") or []:
        if not isinstance(i, dict):
            continue
        ip = i.get("ip_address") or i.get("ipAddress") or i.get("ip") or None
        interfaces.append(
            NetworkInterface(
                name=str(i.get("name", "")),
                mac_address=str(i.get("mac_address") or i.get("macAddress") or i.get("mac") or ""),
                ip_address=ip,
            )
        )

    return VirtualMachine(
        id=name,
        name=name,
        state=VMState.from_raw(record.get("state")),
        vcpu_count=max(vcpus, 1),
        memory_mib=max(memory, 1),
        disks=tuple(disks),
        interfaces=tuple(interfaces),
    )
