"""
External collaborators of the defaulting pipeline.

Three narrow interfaces, each with a command-backed implementation for a
real deployment and a static one for tests and standalone use:

    HostMetadata        get(key), get_oui(), build_stamp(), admin_ip()
    AddressAssigner     get_address(mac, uuid) -> AddressLease
    BootConfigFetcher   fetch(mac, server) -> dict[str, str]

Command-backed implementations run their tool through
asyncio.create_subprocess_exec with an optional timeout and raise the
matching ExternalCollaboratorError subclass, carrying the tool's stderr,
on any failure.
"""

import asyncio
import ipaddress
import json
import os
import re
import shlex
import tempfile
from dataclasses import dataclass
from typing import Protocol

from mockfleet.errors import (
    AddressAssignmentError,
    BootConfigError,
    ExternalCollaboratorError,
    MetadataError,
)
from mockfleet.models.enums import AddressMode, BootConfigMode, MetadataMode
from mockfleet.orchestrator.config import OrchestratorConfig
from mockfleet.utils.logger import get_logger

logger = get_logger(__name__)

# Host metadata keys
DATACENTER_NAME_KEY = "sdc:datacenter_name"
DNS_DOMAIN_KEY = "sdc:dns_domain"
OUI_KEY = "mock_oui"
NICS_KEY = "sdc:nics"


# =============================================================================
# Command Helper
# =============================================================================


async def run_command(
    argv: list[str],
    error_cls: type[ExternalCollaboratorError],
    timeout: float | None = None,
) -> str:
    """
    Run a collaborator command and return its stdout.

    Raises:
        error_cls: When the command cannot be started, times out or exits
            non-zero.
    """
    logger.debug(f"cmd: {' '.join(argv)}")

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise error_cls(f"cannot run {argv[0]}: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError as e:
        proc.kill()
        await proc.wait()
        raise error_cls(f"{argv[0]} timed out after {timeout}s") from e

    err_text = stderr.decode(errors="replace")
    if proc.returncode != 0:
        raise error_cls(
            f"{argv[0]} exited with code {proc.returncode}", stderr=err_text
        )
    return stdout.decode(errors="replace")


# =============================================================================
# Host Metadata
# =============================================================================


class HostMetadata(Protocol):
    async def get(self, key: str) -> str: ...

    async def get_oui(self) -> str: ...

    async def build_stamp(self) -> str: ...

    async def admin_ip(self) -> str | None: ...


class MdataHostMetadata:
    """Host metadata from the hypervisor's mdata-get and uname -v."""

    def __init__(
        self,
        mdata_get_path: str,
        uname_path: str,
        timeout: float | None = None,
        oui_override: str = "",
    ):
        self.mdata_get_path = mdata_get_path
        self.uname_path = uname_path
        self.timeout = timeout
        self.oui_override = oui_override

    async def _mdata(self, key: str) -> str:
        return await run_command(
            [self.mdata_get_path, key], MetadataError, self.timeout
        )

    async def get(self, key: str) -> str:
        """First line of ``mdata-get <key>``."""
        output = await self._mdata(key)
        value = output.split("\n", 1)[0].strip()
        if not value:
            raise MetadataError(f"empty metadata value for {key}")
        return value

    async def get_oui(self) -> str:
        if self.oui_override:
            return self.oui_override
        return await self.get(OUI_KEY)

    async def build_stamp(self) -> str:
        """Platform build stamp, the second "_" field of ``uname -v``."""
        output = await run_command(
            [self.uname_path, "-v"], MetadataError, self.timeout
        )
        parts = output.strip().split("_")
        if len(parts) < 2 or not parts[1]:
            raise MetadataError(f"unexpected uname -v output: {output.strip()!r}")
        return parts[1]

    async def admin_ip(self) -> str | None:
        """IP of the host NIC whose nic_tag is "admin"."""
        output = await self._mdata(NICS_KEY)
        try:
            nics = json.loads(output)
        except json.JSONDecodeError as e:
            raise MetadataError(f"cannot parse {NICS_KEY}: {e}") from e

        admin_ip = None
        for nic in nics if isinstance(nics, list) else []:
            if isinstance(nic, dict) and nic.get("nic_tag") == "admin":
                admin_ip = nic.get("ip")
        return admin_ip


class StaticHostMetadata:
    """Host metadata from fixed values."""

    def __init__(
        self,
        values: dict[str, str] | None = None,
        build_stamp: str = "",
        admin_ip: str = "",
    ):
        self.values = {k: v for k, v in (values or {}).items() if v}
        self._build_stamp = build_stamp
        self._admin_ip = admin_ip

    async def get(self, key: str) -> str:
        if key not in self.values:
            raise MetadataError(f"no metadata value configured for {key}")
        return self.values[key]

    async def get_oui(self) -> str:
        return await self.get(OUI_KEY)

    async def build_stamp(self) -> str:
        if not self._build_stamp:
            raise MetadataError("no build stamp configured")
        return self._build_stamp

    async def admin_ip(self) -> str | None:
        return self._admin_ip or None


# =============================================================================
# Address Assignment
# =============================================================================


@dataclass(frozen=True)
class AddressLease:
    """Address handed to an admin NIC, and the server that handed it out."""

    ip: str
    server: str


class AddressAssigner(Protocol):
    async def get_address(self, mac: str, uuid: str) -> AddressLease: ...


class DhcpCommandAddressAssigner:
    """
    Leases addresses by running a DHCP probe command.

    The command is invoked as ``<command> <mac> <uuid>`` and must print a
    JSON object with "ip" and "server".
    """

    def __init__(self, command: str, timeout: float | None = None):
        self.argv = shlex.split(command)
        self.timeout = timeout

    async def get_address(self, mac: str, uuid: str) -> AddressLease:
        output = await run_command(
            [*self.argv, mac, uuid], AddressAssignmentError, self.timeout
        )
        try:
            result = json.loads(output)
            return AddressLease(ip=str(result["ip"]), server=str(result["server"]))
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            raise AddressAssignmentError(
                f"unexpected DHCP probe output for {mac}: {output.strip()!r}"
            ) from e


class PoolAddressAssigner:
    """
    Hands out addresses sequentially from an IPv4 network.

    The same MAC always gets the same address for the lifetime of the
    assigner. The server address itself is never handed out.
    """

    def __init__(self, network: str, server: str):
        self.network = ipaddress.IPv4Network(network, strict=False)
        self.server = server
        self._leases: dict[str, str] = {}
        self._next_offset = 1
        self._lock = asyncio.Lock()

    async def get_address(self, mac: str, uuid: str) -> AddressLease:
        async with self._lock:
            if mac not in self._leases:
                self._leases[mac] = self._next_free()
                logger.debug(f"Leased {self._leases[mac]} to {mac} ({uuid})")
            return AddressLease(ip=self._leases[mac], server=self.server)

    def _next_free(self) -> str:
        leased = set(self._leases.values())
        while self._next_offset < self.network.num_addresses - 1:
            candidate = str(self.network.network_address + self._next_offset)
            self._next_offset += 1
            if candidate != self.server and candidate not in leased:
                return candidate
        raise AddressAssignmentError(f"address pool {self.network} exhausted")


# =============================================================================
# Boot Configuration
# =============================================================================

_VARIABLE_RE = re.compile(r"^variable (.*) (.*)")
_KERNEL_RE = re.compile(r"^ *kernel.* ([^ ]*)$")
_OPTION_RE = re.compile(r"([^=]+='[^']+\"|[^=]+=[^,]+)")


def parse_boot_params(text: str) -> dict[str, str]:
    """
    Extract boot parameters from a menu.lst document.

    Only the first ``kernel`` line counts. ``variable NAME VALUE`` lines
    before it define ``${NAME}`` substitutions. The kernel line's last word
    is a comma separated list of key=value options; keys get "-" replaced
    by "_" and values lose their double quotes.
    """
    variables: dict[str, str] = {}
    for line in text.split("\n"):
        match = _VARIABLE_RE.match(line)
        if match:
            variables[match.group(1)] = match.group(2)
            continue

        for name, value in variables.items():
            line = line.replace("${" + name + "}", value)

        match = _KERNEL_RE.match(line)
        if not match:
            continue

        params = {}
        for option in _OPTION_RE.findall(match.group(1)):
            chunks = option.split("=")
            key = chunks[0].replace("-", "_").lstrip(",")
            params[key] = chunks[1].replace('"', "")
        return params

    return {}


class BootConfigFetcher(Protocol):
    async def fetch(self, mac: str, server: str) -> dict[str, str]: ...


class TftpBootConfigFetcher:
    """Fetches menu.lst.01<MAC> over TFTP and parses its kernel line."""

    def __init__(self, tftp_path: str, tmp_dir: str, timeout: float | None = None):
        self.tftp_path = tftp_path
        self.tmp_dir = tmp_dir
        self.timeout = timeout

    @staticmethod
    def menu_filename(mac: str) -> str:
        return "menu.lst.01" + mac.replace(":", "").upper()

    async def fetch(self, mac: str, server: str) -> dict[str, str]:
        fd, local_path = tempfile.mkstemp(dir=self.tmp_dir, prefix="menu.lst.")
        os.close(fd)
        try:
            await run_command(
                [
                    self.tftp_path,
                    server,
                    "-c",
                    "get",
                    self.menu_filename(mac),
                    local_path,
                ],
                BootConfigError,
                self.timeout,
            )
            try:
                text = await asyncio.to_thread(_read_text, local_path)
            except OSError as e:
                raise BootConfigError(f"cannot read boot menu for {mac}: {e}") from e
            return parse_boot_params(text)
        finally:
            try:
                os.unlink(local_path)
            except OSError:
                pass


def _read_text(path: str) -> str:
    with open(path, encoding="utf-8", errors="replace") as f:
        return f.read()


class StaticBootConfigFetcher:
    """Returns the same boot parameters for every node."""

    def __init__(self, params: dict[str, str] | None = None):
        self.params = dict(params or {})

    async def fetch(self, mac: str, server: str) -> dict[str, str]:
        return dict(self.params)


# =============================================================================
# Factory
# =============================================================================


@dataclass
class Collaborators:
    metadata: HostMetadata
    address_assigner: AddressAssigner
    boot_config: BootConfigFetcher


def build_collaborators(cfg: OrchestratorConfig) -> Collaborators:
    """Build the collaborator set selected by the config's mode options."""
    timeout = cfg.get_command_timeout()

    if cfg.METADATA_MODE == MetadataMode.STATIC:
        metadata = StaticHostMetadata(
            values={
                DATACENTER_NAME_KEY: cfg.DATACENTER_NAME,
                DNS_DOMAIN_KEY: cfg.DNS_DOMAIN,
                OUI_KEY: cfg.MOCK_OUI,
            },
            build_stamp=cfg.BUILD_STAMP,
            admin_ip=cfg.ADMIN_IP,
        )
    else:
        metadata = MdataHostMetadata(
            cfg.MDATA_GET_PATH, cfg.UNAME_PATH, timeout, oui_override=cfg.MOCK_OUI
        )

    if cfg.ADDRESS_MODE == AddressMode.POOL:
        address_assigner = PoolAddressAssigner(
            cfg.ADDRESS_POOL, cfg.get_address_server()
        )
    else:
        address_assigner = DhcpCommandAddressAssigner(cfg.DHCP_PROBE_COMMAND, timeout)

    if cfg.BOOT_CONFIG_MODE == BootConfigMode.STATIC:
        boot_config = StaticBootConfigFetcher(cfg.STATIC_BOOT_PARAMS)
    else:
        boot_config = TftpBootConfigFetcher(cfg.TFTP_PATH, cfg.TMP_DIR, timeout)

    logger.debug(
        f"Collaborators: metadata={cfg.METADATA_MODE.value}, "
        f"address={cfg.ADDRESS_MODE.value}, boot={cfg.BOOT_CONFIG_MODE.value}"
    )
    return Collaborators(metadata, address_assigner, boot_config)


async def load_sdc_config(metadata: HostMetadata) -> dict:
    """
    Datacenter-wide settings handed to every node's agents.

    Missing values are logged and left out; agents cope without them.
    """
    sdc_config = {}
    for name, key in (
        ("datacenter_name", DATACENTER_NAME_KEY),
        ("dns_domain", DNS_DOMAIN_KEY),
    ):
        try:
            sdc_config[name] = await metadata.get(key)
        except MetadataError as e:
            logger.warning(f"Cannot load {key} for agent config: {e}")
    return sdc_config
