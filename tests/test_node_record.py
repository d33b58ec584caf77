"""Tests for field validators and the node record schema."""

import pytest

from mockfleet.errors import ValidationError
from mockfleet.models import validators as v
from mockfleet.models.disks import build_disk_descriptors, strip_descriptor_only_keys
from mockfleet.models.node_record import (
    find_admin_nic,
    memory_info,
    validate_payload,
    validate_record,
)


class TestValidators:
    def test_integer(self):
        assert v.is_integer(4)
        assert v.is_integer("131043")
        assert v.is_integer(4.0)
        assert not v.is_integer(4.5)
        assert not v.is_integer("many")
        assert not v.is_integer(True)
        assert not v.is_integer(None)

    def test_simple_string(self):
        assert v.is_simple_string("Dell Inc.")
        assert v.is_simple_string("Intel(R) Xeon(R) CPU E5645 @ 2.40GHz")
        assert not v.is_simple_string("drop; table")
        assert not v.is_simple_string(12)

    def test_hostname(self):
        assert v.is_hostname("node42")
        assert v.is_hostname("06-de-ad-00-07-00")
        assert not v.is_hostname("-leading")
        assert not v.is_hostname("has space")
        assert not v.is_hostname("")

    def test_literal_and_pattern_fields(self):
        assert v.is_sunos("SunOS")
        assert not v.is_sunos("Linux")
        assert v.is_sdc_version("7.0")
        assert not v.is_sdc_version("seven")
        assert v.is_platform_stamp("20240101T000000Z")
        assert not v.is_platform_stamp("2024-01-01")

    def test_uuid(self):
        assert v.is_uuid("564d0b8a-4b7e-4f00-9a15-23d0b2d6f1aa")
        assert not v.is_uuid("564D0B8A-4B7E-4F00-9A15-23D0B2D6F1AA")
        assert not v.is_uuid("nope")

    def test_structured_fields(self):
        assert v.is_disks({"c0t0d0": {"Size in GB": 600}})
        assert not v.is_disks({"c0t0d0": {"Size in GB": "big"}})
        assert not v.is_disks([])
        assert v.is_nics({"igb0": {"NIC Names": ["admin"]}, "igb1": {}})
        assert not v.is_nics({"igb0": {"NIC Names": "admin"}})

    def test_disk_entry_fields(self):
        assert v.is_disks(
            {"c0t0d0": {"Size in GB": 0, "VID": "INTEL", "PID": "SSD1", "SSD": True}}
        )
        assert not v.is_disks({"c0t0d0": {"Size in GB": -5}})
        assert not v.is_disks({"c0t0d0": {"VID": 5}})
        assert not v.is_disks({"c0t0d0": {"PID": None}})
        assert not v.is_disks({"c0t0d0": {"SSD": "yes"}})

    def test_nic_entry_fields(self):
        assert v.is_nics(
            {
                "igb0": {
                    "MAC Address": "06:DE:AD:00:00:00",
                    "ip4addr": "10.0.0.5",
                    "Link Status": "up",
                }
            }
        )
        assert not v.is_nics({"igb0": {"MAC Address": 5}})
        assert not v.is_nics({"igb0": {"MAC Address": "06-de-ad-00-00-00"}})
        assert not v.is_nics({"igb0": {"ip4addr": "10.0.0.256"}})
        assert not v.is_nics({"igb0": {"ip4addr": 167772165}})
        assert not v.is_nics({"igb0": {"Link Status": True}})


class TestValidatePayload:
    def test_unknown_fields_dropped(self):
        result = validate_payload({"Hostname": "node1", "Favourite Colour": "blue"})
        assert result == {"Hostname": "node1"}

    def test_all_failures_reported(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_payload(
                {
                    "UUID": "not-a-uuid",
                    "CPU Total Cores": "many",
                    "System Type": "Linux",
                    "Hostname": "fine",
                }
            )

        fields = {e.field for e in exc_info.value.errors}
        assert fields == {"UUID", "CPU Total Cores", "System Type"}
        body = exc_info.value.to_dict()
        assert body["code"] == "InvalidPayload"
        assert len(body["errors"]) == 3

    def test_non_object_rejected(self):
        with pytest.raises(ValidationError):
            validate_payload(["not", "an", "object"])

    def test_validate_record_reports_missing(self):
        errors = validate_record({"Hostname": "node1"})
        missing = {e.field for e in errors if e.code == "Missing"}
        assert "UUID" in missing
        assert "Boot Time" in missing
        assert "Hostname" not in missing
        # Optional attributes are never reported missing
        assert "Serial Number" not in missing


class TestNicHelpers:
    def test_first_tagged_admin_wins(self):
        record = {
            "Network Interfaces": {
                "igb0": {"NIC Names": ["external"]},
                "igb1": {"NIC Names": ["admin"]},
                "igb2": {"NIC Names": ["admin"]},
            }
        }
        name, _ = find_admin_nic(record)
        assert name == "igb1"

    def test_untagged_falls_back_to_first(self):
        record = {"Network Interfaces": {"net0": {}, "net1": {}}}
        name, _ = find_admin_nic(record)
        assert name == "net0"

    def test_no_nics(self):
        assert find_admin_nic({}) is None


class TestDerivedViews:
    def test_memory_info(self):
        info = memory_info({"MiB of Memory": "1024"}, used_bytes=1024 * 1024)
        assert info["total_bytes"] == 1024 * 1024 * 1024
        assert info["availrmem_bytes"] == 1023 * 1024 * 1024
        assert info["arcsize_bytes"] == 0

    def test_disk_descriptors(self):
        record = {
            "Disks": {
                "c0t0d0": {"Size in GB": 600},
                "c0t1d0": {"Size in GB": 100, "SSD": True, "VID": "INTEL", "PID": "X25"},
            }
        }
        disks = build_disk_descriptors(record)

        assert [d.name for d in disks] == ["c0t0d0", "c0t1d0"]
        assert disks[0].vid == "HITACHI"
        assert disks[0].pid == "HUC109060CSS600"
        assert disks[0].size == 600 * 1000 * 1000 * 1000
        assert disks[0].type == "SCSI"
        assert not disks[0].solid_state
        assert disks[1].vid == "INTEL"
        assert disks[1].solid_state
        assert not disks[1].removable

        strip_descriptor_only_keys(record)
        assert record["Disks"]["c0t1d0"] == {"Size in GB": 100}
