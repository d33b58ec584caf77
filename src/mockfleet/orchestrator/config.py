"""
Orchestrator configuration for MockFleet.

This module defines the configuration dataclass for the fleet orchestrator,
providing a centralized place for all configurable parameters.

Configuration can be modified at runtime by importing the global config
instance and updating its attributes before starting the server, or by
loading a YAML file whose top-level keys match the attribute names.

Usage:
    from mockfleet.orchestrator.config import config

    config.PORT = 9000
    config.LOG_LEVEL = LogLevel.DEBUG
"""

import ipaddress
import os
from dataclasses import dataclass, field, fields
from enum import Enum

import yaml

from mockfleet.models.enums import (
    AddressMode,
    BootConfigMode,
    LogLevel,
    MetadataMode,
)


# =============================================================================
# Configuration Dataclass
# =============================================================================


@dataclass
class OrchestratorConfig:
    """
    Fleet orchestrator configuration.

    Attributes:
        BIND_IP: IP address the control API binds to.
        PORT: Control API port.
        NODE_ROOT: Directory holding one sub-directory per simulated node.
        LEDGER_FILE: Path of the identity ledger JSON file.
        LOG_LEVEL: Logging verbosity level.
    """

    # -------------------------------------------------------------------------
    # Network Configuration
    # -------------------------------------------------------------------------

    BIND_IP: str = "0.0.0.0"
    PORT: int = 8080

    # -------------------------------------------------------------------------
    # Path Configuration
    # -------------------------------------------------------------------------

    NODE_ROOT: str = "/mockcn"
    LEDGER_FILE: str = "/mockcn.json"
    LOG_ROOT: str = "/var/log"
    TMP_DIR: str = "/tmp"
    LOG_FILE: str = ""

    # -------------------------------------------------------------------------
    # Host Metadata
    # -------------------------------------------------------------------------

    METADATA_MODE: MetadataMode = MetadataMode.MDATA
    MDATA_GET_PATH: str = "/usr/sbin/mdata-get"
    UNAME_PATH: str = "/usr/bin/uname"

    # Used directly in STATIC mode; MOCK_OUI also overrides mdata in MDATA mode
    MOCK_OUI: str = ""
    DATACENTER_NAME: str = ""
    DNS_DOMAIN: str = ""
    BUILD_STAMP: str = ""
    ADMIN_IP: str = ""

    # -------------------------------------------------------------------------
    # Address Assignment
    # -------------------------------------------------------------------------

    ADDRESS_MODE: AddressMode = AddressMode.DHCP
    # Prints {"ip": ..., "server": ...} for: <command> <mac> <uuid>
    DHCP_PROBE_COMMAND: str = "/opt/local/bin/dhcp-probe"
    ADDRESS_POOL: str = "10.99.0.0/16"
    ADDRESS_SERVER: str = ""  # Defaults to the first host of ADDRESS_POOL

    # -------------------------------------------------------------------------
    # Boot Configuration
    # -------------------------------------------------------------------------

    BOOT_CONFIG_MODE: BootConfigMode = BootConfigMode.TFTP
    TFTP_PATH: str = "/opt/local/bin/tftp"
    STATIC_BOOT_PARAMS: dict[str, str] = field(default_factory=dict)

    # -------------------------------------------------------------------------
    # Hardware Profiles
    # -------------------------------------------------------------------------

    # Empty = catalog bundled with the package
    PROFILE_FILE: str = ""

    # -------------------------------------------------------------------------
    # Sandbox / Embedded Agents
    # -------------------------------------------------------------------------

    TASK_AGENT_FACTORY: str = "mockfleet.sandbox.agents:CommandTaskAgent"
    REGISTRATION_AGENT_FACTORY: str = "mockfleet.sandbox.agents:SysinfoRegistrationAgent"
    # Empty = registration agent only writes setup.json and idles
    REGISTRATION_URL: str = ""
    REGISTRATION_INTERVAL_SECONDS: int = 60

    # -------------------------------------------------------------------------
    # Timing Configuration
    # -------------------------------------------------------------------------

    # 0 = reconcile once at startup only
    RECONCILE_INTERVAL_SECONDS: int = 0
    # 0 = no timeout for collaborator commands
    COMMAND_TIMEOUT_SECONDS: int = 30

    # -------------------------------------------------------------------------
    # Logging Configuration
    # -------------------------------------------------------------------------

    LOG_LEVEL: LogLevel = LogLevel.INFO

    # =========================================================================
    # Helper Methods
    # =========================================================================

    def get_node_dir(self, uuid: str) -> str:
        """Directory of one simulated node."""
        return os.path.join(self.NODE_ROOT, uuid)

    def get_task_log_dir(self, uuid: str) -> str:
        """Task log directory handed to the node's task agent."""
        return os.path.join(self.LOG_ROOT, "mock-cn-agent", uuid, "logs")

    def get_address_server(self) -> str:
        """Address server reported by the pool assigner."""
        if self.ADDRESS_SERVER:
            return self.ADDRESS_SERVER
        network = ipaddress.IPv4Network(self.ADDRESS_POOL, strict=False)
        return str(next(network.hosts()))

    def get_command_timeout(self) -> float | None:
        """Collaborator command timeout in seconds, None for unbounded."""
        return self.COMMAND_TIMEOUT_SECONDS or None

    def get_base_url(self) -> str:
        """URL the control API is reachable at from this machine."""
        host = "127.0.0.1" if self.BIND_IP == "0.0.0.0" else self.BIND_IP
        return f"http://{host}:{self.PORT}"

    # =========================================================================
    # Loading
    # =========================================================================

    def update(self, values: dict) -> None:
        """
        Apply a mapping of attribute name -> value.

        Enum-typed attributes accept their string value. Unknown keys raise
        ValueError so typos in config files do not go unnoticed.
        """
        known = {f.name: f for f in fields(self)}
        for key, value in values.items():
            if key not in known:
                raise ValueError(f"Unknown config option: {key}")
            current = getattr(self, key)
            if isinstance(current, Enum) and not isinstance(value, Enum):
                value = type(current)(value)
            setattr(self, key, value)

    def load_yaml(self, path: str) -> None:
        """Load overrides from a YAML file with top-level option keys."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        self.update(data)


# =============================================================================
# Global Instance
# =============================================================================

# Global config instance - modify before server startup
config = OrchestratorConfig()
