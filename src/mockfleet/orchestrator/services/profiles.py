"""
Hardware profile catalog.

Profiles are canned sysinfo fragments (manufacturer, CPU, memory, disks,
NICs) bundled with the package as canned_profiles.json. The catalog is
read once and never mutated; callers always receive deep copies.
"""

import copy
import json
import random
from dataclasses import dataclass
from importlib import resources

from mockfleet.models.node_record import (
    DISK_PID,
    DISK_SSD,
    DISK_VID,
    DISKS,
    NETWORK_INTERFACES,
)
from mockfleet.models.requests import ProfileSummary
from mockfleet.utils.logger import get_logger

logger = get_logger(__name__)

PROFILE_PACKAGE = "mockfleet.profiles"
PROFILE_RESOURCE = "canned_profiles.json"


@dataclass(frozen=True)
class HardwareProfile:
    """One named canned hardware description."""

    name: str
    attributes: dict

    def copy_attributes(self) -> dict:
        return copy.deepcopy(self.attributes)

    def to_summary(self) -> ProfileSummary:
        memory = self.attributes.get("MiB of Memory")
        return ProfileSummary(
            name=self.name,
            manufacturer=self.attributes.get("Manufacturer"),
            memory_mib=int(memory) if memory is not None else None,
            disks=len(self.attributes.get(DISKS, {})),
            nics=len(self.attributes.get(NETWORK_INTERFACES, {})),
        )


class ProfileCatalog:
    """
    Read-only set of hardware profiles.

    Profile order follows the catalog file so listings are stable.
    """

    def __init__(self, profiles: dict[str, dict], rng: random.Random | None = None):
        self._profiles = {
            name: HardwareProfile(name=name, attributes=attributes)
            for name, attributes in profiles.items()
        }
        self._rng = rng or random.Random()

    @classmethod
    def load_bundled(cls) -> "ProfileCatalog":
        """Load the catalog shipped inside the package."""
        text = (
            resources.files(PROFILE_PACKAGE)
            .joinpath(PROFILE_RESOURCE)
            .read_text(encoding="utf-8")
        )
        catalog = cls(json.loads(text))
        logger.debug(f"Loaded {len(catalog)} hardware profiles")
        return catalog

    @classmethod
    def load_file(cls, path: str) -> "ProfileCatalog":
        """Load a catalog from an arbitrary JSON file."""
        with open(path, encoding="utf-8") as f:
            return cls(json.load(f))

    # =========================================================================
    # Lookup
    # =========================================================================

    def names(self) -> list[str]:
        return list(self._profiles)

    def get(self, name: str) -> HardwareProfile | None:
        return self._profiles.get(name)

    def choose(self, name: str | None = None) -> HardwareProfile:
        """
        Select a profile.

        A known ``name`` selects that profile; anything else picks one
        uniformly at random.
        """
        if name and name in self._profiles:
            return self._profiles[name]
        if not self._profiles:
            raise LookupError("hardware profile catalog is empty")
        return self._profiles[self._rng.choice(list(self._profiles))]

    def summaries(self) -> list[ProfileSummary]:
        return [profile.to_summary() for profile in self._profiles.values()]

    def __len__(self) -> int:
        return len(self._profiles)

    def __contains__(self, name: str) -> bool:
        return name in self._profiles


# =============================================================================
# Disk Backfill
# =============================================================================


def backfill_disk_identity(disks: dict, profile: HardwareProfile) -> None:
    """
    Fill missing VID/PID on ``disks`` from the profile, in place.

    Each disk takes the values of the first profile disk of the same class
    (solid state vs rotational) that defines them. Values already present
    are never overwritten.
    """
    by_class: dict[bool, dict[str, str]] = {True: {}, False: {}}
    for disk in profile.attributes.get(DISKS, {}).values():
        known = by_class[bool(disk.get(DISK_SSD))]
        for key in (DISK_VID, DISK_PID):
            if key in disk and key not in known:
                known[key] = disk[key]

    for disk in disks.values():
        known = by_class[bool(disk.get(DISK_SSD))]
        for key, value in known.items():
            disk.setdefault(key, value)
