"""VM inventory records and parsers for hypervisor CLI output."""

from .models import Disk, NetworkInterface, VirtualMachine, VMSpec, VMState
from .parser import (
    extract_first_ipv4,
    parse_column_table,
    parse_key_value_block,
    parse_name_list,
    vm_from_record,
)

__all__ = [
    "Disk",
    "NetworkInterface",
    "VMSpec",
    "VMState",
    "VirtualMachine",
    "extract_first_ipv4",
    "parse_column_table",
    "parse_key_value_block",
    "parse_name_list",
    "vm_from_record",
]
