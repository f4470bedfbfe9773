"""Tests for vmcontrol.inventory.parser."""

from __future__ import annotations

import pytest

from conftest import DOMBLKLIST_WEB, DOMIFADDR_WEB, DOMIFLIST_WEB, DOMINFO_WEB, QEMU_IMG_WEB
from vmcontrol.errors import ParseDegraded
from vmcontrol.inventory.models import VMState
from vmcontrol.inventory.parser import (
    extract_first_ipv4,
    parse_address_table,
    parse_column_table,
    parse_disk_size,
    parse_disk_table,
    parse_dominfo,
    parse_interface_table,
    parse_key_value_block,
    parse_name_list,
    quantity_to_mib,
    vm_from_record,
)


class TestParseNameList:
    def test_trims_and_drops_blank_lines(self):
        assert parse_name_list("web\n  db  \n\n\t\nci-runner\n") == ["web", "db", "ci-runner"]

    def test_empty_and_none(self):
        assert parse_name_list("") == []
        assert parse_name_list(None) == []


class TestParseKeyValueBlock:
    def test_unmatched_lines_are_dropped(self):
        raw = "CPU(s):    4\nnonsense line\nMax memory: 1048576 KiB"
        assert parse_key_value_block(raw) == {"CPU(s)": "4", "Max memory": "1048576 KiB"}

    def test_value_keeps_its_own_colons(self):
        assert parse_key_value_block("UUID:  ab:cd:ef") == {"UUID": "ab:cd:ef"}

    def test_garbage_never_raises(self):
        assert parse_key_value_block(":::\n\x00\n: value only") == {}

    def test_dominfo_fields(self):
        info = parse_key_value_block(DOMINFO_WEB)
        assert info["CPU(s)"] == "2"
        assert info["State"] == "running"
        assert info["OS Type"] == "hvm"


class TestParseColumnTable:
    def test_skips_header_lines(self):
        raw = "Interface  Type  Source\n----------------\nvnet0  bridge  virbr0  52:54:00:aa:bb:cc"
        assert parse_column_table(raw, 2) == [["vnet0", "bridge", "virbr0", "52:54:00:aa:bb:cc"]]

    def test_blank_rows_are_ignored(self):
        assert parse_column_table("h\n--\n\n a  b \n\n", 2) == [["a", "b"]]

    def test_more_header_lines_than_input(self):
        assert parse_column_table("only header", 5) == []


class TestExtractFirstIPv4:
    def test_finds_address_in_text(self):
        assert extract_first_ipv4("...reply from 192.168.1.5: bytes=...") == "192.168.1.5"

    def test_no_match(self):
        assert extract_first_ipv4("no address here") is None
        assert extract_first_ipv4(None) is None

    def test_skips_out_of_range_octets(self):
        assert extract_first_ipv4("999.1.1.1 then 10.0.0.1/24") == "10.0.0.1"


class TestQuantities:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("1048576 KiB", 1024),
            ("2097152", 2048),
            ("512 MiB", 512),
            ("2 GiB", 2048),
        ],
    )
    def test_quantity_to_mib(self, value, expected):
        assert quantity_to_mib(value) == expected

    def test_unknown_unit(self):
        assert quantity_to_mib("12 parsecs") is None
        assert quantity_to_mib("") is None

    def test_parse_dominfo(self):
        assert parse_dominfo(DOMINFO_WEB) == (2, 2048)

    def test_parse_dominfo_defaults_with_warning(self):
        with pytest.warns(ParseDegraded):
            assert parse_dominfo("State: running\nCPU(s): many") == (1, 1024)

    def test_disk_size_prefers_exact_bytes(self):
        assert parse_disk_size(QEMU_IMG_WEB) == 21474836480

    def test_disk_size_without_bytes(self):
        assert parse_disk_size("virtual size: 10G") == 10 * 1024**3

    def test_disk_size_default(self):
        with pytest.warns(ParseDegraded):
            assert parse_disk_size("file format: raw") == 0


class TestTables:
    def test_disk_table_skips_empty_sources(self):
        assert parse_disk_table(DOMBLKLIST_WEB) == [("vda", "/var/lib/libvirt/images/web.qcow2")]

    def test_interface_table(self):
        [iface] = parse_interface_table(DOMIFLIST_WEB)
        assert iface.name == "vnet0"
        assert iface.mac_address == "52:54:00:AB:CD:EF"
        assert iface.ip_address is None

    def test_interface_table_mac_in_column_two(self):
        raw = "Interface  Type  MAC\n---\nvnet1  bridge  52:54:00:00:00:01"
        [iface] = parse_interface_table(raw)
        assert iface.mac_address == "52:54:00:00:00:01"

    def test_interface_table_short_rows_are_skipped(self):
        assert parse_interface_table("h\n--\nvnet0 bridge\n") == []

    def test_address_table(self):
        addresses = parse_address_table(DOMIFADDR_WEB)
        assert addresses["vnet0"] == "192.168.122.45"
        assert addresses["52:54:00:ab:cd:ef"] == "192.168.122.45"

    def test_address_table_continuation_rows(self):
        raw = (
            " Name   MAC address         Protocol  Address\n"
            "-----------------------------------------------\n"
            " vnet0  52:54:00:aa:bb:cc   ipv6      fe80::1/64\n"
            " -      -                   ipv4      10.1.2.3/24\n"
        )
        assert parse_address_table(raw) == {"vnet0": "10.1.2.3", "52:54:00:aa:bb:cc": "10.1.2.3"}


class TestVmFromRecord:
    def test_api_shape(self):
        vm = vm_from_record(
            {
                "name": "web",
                "state": "running",
                "vcpus": 2,
                "memory": 2048,
                "disks": [{"device": "vda", "size": 1024}],
                "interfaces": [{"name": "eth0", "mac": "52:54:00:aa:bb:cc", "ip": "10.0.0.5"}],
            }
        )
        assert vm.id == "web"
        assert vm.state is VMState.RUNNING
        assert vm.vcpu_count == 2
        assert vm.memory_mib == 2048
        assert vm.disks[0].size_bytes == 1024
        assert vm.interfaces[0].ip_address == "10.0.0.5"

    def test_round_trips_to_dict_output(self):
        vm = vm_from_record({"name": "db", "state": "shut off", "vcpus": 4, "memory": 4096})
        assert vm_from_record(vm.to_dict()) == vm

    def test_bad_numbers_default(self):
        with pytest.warns(ParseDegraded):
            vm = vm_from_record({"name": "x", "vcpus": "lots", "memory": None})
        assert (vm.vcpu_count, vm.memory_mib) == (1, 1024)

    def test_not_a_mapping(self):
        with pytest.warns(ParseDegraded):
            vm = vm_from_record(["nope"])
        assert vm.state is VMState.UNKNOWN
