"""
Node record schema.

A node record is the sysinfo document of one simulated compute node. It is
kept as a plain dict keyed by the sysinfo attribute names ("UUID",
"Network Interfaces", ...) because that is the on-disk format agents and
scripts read back from sysinfo.json.

NODE_RECORD_SCHEMA lists every attribute the orchestrator recognises, with
its validator and whether a complete record must carry it. Payload keys not
in the schema are dropped with a warning.
"""

from collections.abc import Callable, Iterator
from dataclasses import dataclass

from mockfleet.errors import FieldError, ValidationError
from mockfleet.models import validators as v
from mockfleet.models.enums import NicRole
from mockfleet.utils.logger import get_logger

logger = get_logger(__name__)


# =============================================================================
# Attribute Names
# =============================================================================

UUID = "UUID"
HOSTNAME = "Hostname"
BOOT_TIME = "Boot Time"
BOOT_PARAMETERS = "Boot Parameters"
SYSTEM_TYPE = "System Type"
SDC_VERSION = "SDC Version"
LIVE_IMAGE = "Live Image"
DATACENTER_NAME = "Datacenter Name"
PRODUCT = "Product"
DISKS = "Disks"
NETWORK_INTERFACES = "Network Interfaces"
ADMIN_IP = "Admin IP"

# Keys inside a "Network Interfaces" entry
NIC_MAC = "MAC Address"
NIC_IP = "ip4addr"
NIC_NAMES = "NIC Names"

# Keys inside a "Disks" entry
DISK_SIZE_GB = "Size in GB"
DISK_VID = "VID"
DISK_PID = "PID"
DISK_SSD = "SSD"


# =============================================================================
# Schema
# =============================================================================


@dataclass(frozen=True)
class FieldSpec:
    """Validation rule for one node record attribute."""

    validator: Callable[[object], bool]
    required: bool = True
    code: str = "Invalid"


NODE_RECORD_SCHEMA: dict[str, FieldSpec] = {
    BOOT_TIME: FieldSpec(v.is_integer, code="NotAnInteger"),
    BOOT_PARAMETERS: FieldSpec(v.is_mapping, code="NotAnObject"),
    "CPU Physical Cores": FieldSpec(v.is_integer, code="NotAnInteger"),
    "CPU Type": FieldSpec(v.is_simple_string, code="NotASimpleString"),
    "CPU Virtualization": FieldSpec(v.is_simple_string, code="NotASimpleString"),
    "CPU Total Cores": FieldSpec(v.is_integer, code="NotAnInteger"),
    DATACENTER_NAME: FieldSpec(v.is_simple_string, code="NotASimpleString"),
    DISKS: FieldSpec(v.is_disks, code="InvalidDisks"),
    HOSTNAME: FieldSpec(v.is_hostname, code="InvalidHostname"),
    "HW Family": FieldSpec(v.is_simple_string, required=False, code="NotASimpleString"),
    "HW Version": FieldSpec(v.is_simple_string, required=False, code="NotASimpleString"),
    "Link Aggregations": FieldSpec(v.is_mapping, required=False, code="NotAnObject"),
    LIVE_IMAGE: FieldSpec(v.is_platform_stamp, code="InvalidPlatformStamp"),
    "Manufacturer": FieldSpec(v.is_simple_string, code="NotASimpleString"),
    "MiB of Memory": FieldSpec(v.is_integer, code="NotAnInteger"),
    NETWORK_INTERFACES: FieldSpec(v.is_nics, code="InvalidNetworkInterfaces"),
    PRODUCT: FieldSpec(v.is_simple_string, code="NotASimpleString"),
    SDC_VERSION: FieldSpec(v.is_sdc_version, code="InvalidVersion"),
    "Serial Number": FieldSpec(v.is_simple_string, required=False, code="NotASimpleString"),
    "SKU Number": FieldSpec(v.is_simple_string, required=False, code="NotASimpleString"),
    SYSTEM_TYPE: FieldSpec(v.is_sunos, code="NotSunOS"),
    UUID: FieldSpec(v.is_uuid, code="InvalidUUID"),
    "Virtual Network Interfaces": FieldSpec(
        v.is_mapping, required=False, code="NotAnObject"
    ),
    "VM Capable": FieldSpec(v.is_boolean, required=False, code="NotABoolean"),
}


def validate_payload(payload: dict) -> dict:
    """
    Check a raw create payload against NODE_RECORD_SCHEMA.

    Recognised attributes must pass their validator; unrecognised ones are
    dropped. Nothing is required at this stage, the defaulting pipeline
    fills the gaps.

    Args:
        payload: Raw JSON body.

    Returns:
        New dict holding only the recognised, valid attributes.

    Raises:
        ValidationError: Listing every failing attribute.
    """
    if not isinstance(payload, dict):
        raise ValidationError(
            [FieldError("<body>", "NotAnObject", "payload must be a JSON object")]
        )

    validated: dict = {}
    errors: list[FieldError] = []

    for key, value in payload.items():
        spec = NODE_RECORD_SCHEMA.get(key)
        if spec is None:
            logger.info(f"Ignoring field {key!r}")
            continue
        if not spec.validator(value):
            errors.append(FieldError(key, spec.code, f"invalid value for {key!r}"))
            continue
        validated[key] = value

    if errors:
        raise ValidationError(errors)

    return validated


def validate_record(record: dict) -> list[FieldError]:
    """
    Check a complete node record.

    Returns:
        Every missing required attribute and every invalid attribute.
        Empty list when the record is complete and valid.
    """
    errors = []
    for key, spec in NODE_RECORD_SCHEMA.items():
        if key not in record:
            if spec.required:
                errors.append(FieldError(key, "Missing", f"{key!r} is required"))
            continue
        if not spec.validator(record[key]):
            errors.append(FieldError(key, spec.code, f"invalid value for {key!r}"))
    return errors


# =============================================================================
# NIC Helpers
# =============================================================================


def iter_nics(record: dict) -> Iterator[tuple[str, dict]]:
    """Yield (interface name, NIC dict) in declaration order."""
    yield from record.get(NETWORK_INTERFACES, {}).items()


def is_admin_nic(nic: dict) -> bool:
    """True when the NIC is explicitly tagged as the admin interface."""
    return NicRole.ADMIN.value in (nic.get(NIC_NAMES) or [])


def find_admin_nic(record: dict) -> tuple[str, dict] | None:
    """
    Locate the admin NIC of a record.

    The first NIC tagged "admin" wins; without any tag the first NIC is the
    admin NIC. Returns None for a record without NICs.
    """
    first = None
    for name, nic in iter_nics(record):
        if is_admin_nic(nic):
            return name, nic
        if first is None:
            first = (name, nic)
    return first


# =============================================================================
# Derived Views
# =============================================================================


def memory_info(record: dict, used_bytes: int = 0, arc_bytes: int = 0) -> dict:
    """
    Memory figures an agent reports for the node.

    Args:
        record: Node record.
        used_bytes: Simulated memory in use.
        arc_bytes: Simulated ARC size.
    """
    total_bytes = int(float(record.get("MiB of Memory", 0))) * 1024 * 1024
    return {
        "availrmem_bytes": max(0, total_bytes - used_bytes),
        "arcsize_bytes": arc_bytes,
        "total_bytes": total_bytes,
    }
