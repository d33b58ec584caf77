"""
Enumeration types for MockFleet.

Shared enums for node records, collaborator modes and configuration.
"""

from enum import Enum


# =============================================================================
# Node-Related Enums
# =============================================================================


class NicRole(str, Enum):
    """
    NIC role tags found in a NIC's "NIC Names" list.

    Only ADMIN carries meaning for the orchestrator: it selects the node's
    primary management interface.
    """

    ADMIN = "admin"


class SandboxState(str, Enum):
    """Lifecycle of a per-node sandbox."""

    STARTING = "starting"
    RUNNING = "running"
    STOPPED = "stopped"


# =============================================================================
# Collaborator Modes
# =============================================================================


class MetadataMode(str, Enum):
    """
    Where host metadata (datacenter name, OUI, build stamp) comes from.

    - MDATA: query the hypervisor via mdata-get / uname
    - STATIC: use values from the orchestrator config
    """

    MDATA = "mdata"
    STATIC = "static"


class AddressMode(str, Enum):
    """
    How admin NIC addresses are assigned.

    - DHCP: run the configured DHCP probe command
    - POOL: hand out addresses from a configured IPv4 network
    """

    DHCP = "dhcp"
    POOL = "pool"


class BootConfigMode(str, Enum):
    """
    How boot parameters are fetched.

    - TFTP: download menu.lst.01<MAC> from the address server
    - STATIC: use parameters from the orchestrator config
    """

    TFTP = "tftp"
    STATIC = "static"


# =============================================================================
# Configuration Enums
# =============================================================================


class LogLevel(str, Enum):
    """
    Logging verbosity levels for MockFleet components.

    Levels (from most to least verbose):
        - FULL: Complete trace with detailed stack information
        - DEBUG: Debug messages and above
        - INFO: Informational messages and above
        - WARNING: Only warnings and errors
    """

    FULL = "full"
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
