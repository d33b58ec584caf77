"""
Field validators for node record attributes.

Each validator takes a raw JSON value and returns True when it is
acceptable for the field. Validators never raise.
"""

import ipaddress
import re

_UUID_RE = re.compile(
    r"^[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}$"
)
_SIMPLE_STRING_RE = re.compile(r"^[a-zA-Z0-9 .,\-_()@]*$")
_HOSTNAME_RE = re.compile(r"^[a-zA-Z0-9]([a-zA-Z0-9\-]{0,61}[a-zA-Z0-9])?$")
_PLATFORM_STAMP_RE = re.compile(r"^[0-9]*T[0-9]*Z$")
_VERSION_RE = re.compile(r"^[0-9]*\.[0-9]*$")
_MAC_RE = re.compile(r"^[0-9a-fA-F]{2}(:[0-9a-fA-F]{2}){5}$")


def is_boolean(value) -> bool:
    return isinstance(value, bool)


def is_integer(value) -> bool:
    """Integers, or strings/floats holding an integral number ("131043", 4.0)."""
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    if isinstance(value, float):
        return value.is_integer()
    if isinstance(value, str):
        try:
            return float(value).is_integer()
        except ValueError:
            return False
    return False


def is_simple_string(value) -> bool:
    return isinstance(value, str) and bool(_SIMPLE_STRING_RE.match(value))


def is_hostname(value) -> bool:
    return isinstance(value, str) and bool(_HOSTNAME_RE.match(value))


def is_platform_stamp(value) -> bool:
    return isinstance(value, str) and bool(_PLATFORM_STAMP_RE.match(value))


def is_sunos(value) -> bool:
    return value == "SunOS"


def is_sdc_version(value) -> bool:
    return isinstance(value, str) and bool(_VERSION_RE.match(value))


def is_uuid(value) -> bool:
    return isinstance(value, str) and len(value) == 36 and bool(_UUID_RE.match(value))


def is_mac(value) -> bool:
    return isinstance(value, str) and bool(_MAC_RE.match(value))


def is_ipv4(value) -> bool:
    if not isinstance(value, str):
        return False
    try:
        ipaddress.IPv4Address(value)
    except ValueError:
        return False
    return True


def is_mapping(value) -> bool:
    """
    Structured fields (boot parameters, link aggregations) only need to be
    objects; their inner shape is checked by the consumers.
    """
    return isinstance(value, dict)


def is_disks(value) -> bool:
    """
    Disk map: every entry an object. "Size in GB" is a non-negative whole
    number, "VID"/"PID" are strings and "SSD" is a boolean, when set.
    """
    if not isinstance(value, dict):
        return False
    for disk in value.values():
        if not isinstance(disk, dict):
            return False
        if "Size in GB" in disk:
            size = disk["Size in GB"]
            if not is_integer(size) or float(size) < 0:
                return False
        for key in ("VID", "PID"):
            if key in disk and not isinstance(disk[key], str):
                return False
        if "SSD" in disk and not is_boolean(disk["SSD"]):
            return False
    return True


def is_nics(value) -> bool:
    """
    NIC map: every entry an object. When set, "NIC Names" is a list of
    strings, "MAC Address" a MAC, "ip4addr" an IPv4 address and
    "Link Status" a string.
    """
    if not isinstance(value, dict):
        return False
    for nic in value.values():
        if not isinstance(nic, dict):
            return False
        names = nic.get("NIC Names")
        if names is not None and (
            not isinstance(names, list) or not all(isinstance(n, str) for n in names)
        ):
            return False
        if "MAC Address" in nic and not is_mac(nic["MAC Address"]):
            return False
        if "ip4addr" in nic and not is_ipv4(nic["ip4addr"]):
            return False
        if "Link Status" in nic and not isinstance(nic["Link Status"], str):
            return False
    return True
