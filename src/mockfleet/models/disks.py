"""
Disk descriptors written to <node>/disks.json.

disks.json is what the node's disk-layout and disklist scripts read, so the
key names follow that format (vid, pid, size, solid_state).
"""

from pydantic import BaseModel, Field

from mockfleet.models.node_record import (
    DISK_PID,
    DISK_SIZE_GB,
    DISK_SSD,
    DISK_VID,
    DISKS,
)

DEFAULT_DISK_TYPE = "SCSI"
DEFAULT_VID = "HITACHI"
DEFAULT_PID = "HUC109060CSS600"


class DiskDescriptor(BaseModel):
    """One physical disk as seen by the node's disk tooling."""

    type: str = Field(default=DEFAULT_DISK_TYPE, description="Bus type")
    name: str = Field(..., description="Device name, e.g. c0t5000CCA0160D6E5Dd0")
    vid: str = Field(default=DEFAULT_VID, description="Vendor id")
    pid: str = Field(default=DEFAULT_PID, description="Product id")
    size: int = Field(..., ge=0, description="Size in bytes")
    removable: bool = False
    solid_state: bool = False


def build_disk_descriptors(record: dict) -> list[DiskDescriptor]:
    """
    Build disk descriptors from a record's "Disks" map, in map order.

    Sizes are decimal gigabytes ("Size in GB" * 10^9).
    """
    descriptors = []
    for name, disk in record.get(DISKS, {}).items():
        size_gb = disk.get(DISK_SIZE_GB, 0)
        descriptors.append(
            DiskDescriptor(
                name=name,
                vid=disk.get(DISK_VID) or DEFAULT_VID,
                pid=disk.get(DISK_PID) or DEFAULT_PID,
                size=int(float(size_gb) * 1000 * 1000 * 1000),
                solid_state=bool(disk.get(DISK_SSD)),
            )
        )
    return descriptors


def strip_descriptor_only_keys(record: dict) -> None:
    """
    Drop VID/PID/SSD from the record's disks.

    They only feed disks.json and are not part of the sysinfo document.
    """
    for disk in record.get(DISKS, {}).values():
        for key in (DISK_VID, DISK_PID, DISK_SSD):
            disk.pop(key, None)
