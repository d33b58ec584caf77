"""Shared fixtures: temp-dir config, static collaborators, recording agents."""

import json
import os
import uuid as uuid_lib
from pathlib import Path

import pytest

from mockfleet.errors import AddressAssignmentError, BootConfigError
from mockfleet.models.enums import AddressMode, BootConfigMode, MetadataMode
from mockfleet.orchestrator.config import OrchestratorConfig
from mockfleet.orchestrator.services.collaborators import (
    DATACENTER_NAME_KEY,
    DNS_DOMAIN_KEY,
    OUI_KEY,
    Collaborators,
    PoolAddressAssigner,
    StaticBootConfigFetcher,
    StaticHostMetadata,
)
from mockfleet.orchestrator.services.defaults import DefaultingPipeline
from mockfleet.orchestrator.services.identity import IdentityLedger
from mockfleet.orchestrator.services.profiles import ProfileCatalog
from mockfleet.sandbox.factory import SandboxFactory

TEST_OUI = "06:de:ad"
TEST_BUILD_STAMP = "20240101T000000Z"
TEST_DATACENTER = "us-test-1"


# =============================================================================
# Helpers
# =============================================================================


def new_uuid() -> str:
    return str(uuid_lib.uuid4())


def write_node(root: str, uuid: str, sysinfo: dict | None = None) -> str:
    """Create a node directory holding a minimal sysinfo.json."""
    node_dir = os.path.join(root, uuid)
    os.makedirs(node_dir, exist_ok=True)
    with open(os.path.join(node_dir, "sysinfo.json"), "w") as f:
        json.dump(sysinfo or {"UUID": uuid, "Hostname": "n-" + uuid[:8]}, f)
    return node_dir


def static_collaborators(
    boot_params: dict | None = None,
    metadata_values: dict | None = None,
) -> Collaborators:
    values = {
        DATACENTER_NAME_KEY: TEST_DATACENTER,
        DNS_DOMAIN_KEY: "test.local",
        OUI_KEY: TEST_OUI,
    }
    if metadata_values is not None:
        values = metadata_values
    return Collaborators(
        metadata=StaticHostMetadata(
            values, build_stamp=TEST_BUILD_STAMP, admin_ip="10.0.0.1"
        ),
        address_assigner=PoolAddressAssigner("10.99.0.0/24", "10.99.0.1"),
        boot_config=StaticBootConfigFetcher(boot_params or {"console": "ttyb"}),
    )


class FailingBootConfig:
    async def fetch(self, mac: str, server: str) -> dict[str, str]:
        raise BootConfigError("tftp timed out", stderr="Transfer timed out.\n")


class FailingAddressAssigner:
    async def get_address(self, mac: str, uuid: str):
        raise AddressAssignmentError("no DHCP offer")


class RecordingTaskAgent:
    def __init__(self, ctx, events: list):
        self.ctx = ctx
        self.events = events

    async def start(self) -> None:
        self.events.append(("task_start", self.ctx.uuid))


class RecordingRegistrationAgent:
    def __init__(self, ctx, events: list):
        self.ctx = ctx
        self.events = events

    async def start(self) -> None:
        self.events.append(("registration_start", self.ctx.uuid))

    async def shutdown(self) -> None:
        self.events.append(("registration_shutdown", self.ctx.uuid))


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def cfg(tmp_path: Path) -> OrchestratorConfig:
    """Orchestrator config rooted in a temp directory, all collaborators static."""
    tmp_dir = tmp_path / "tmp"
    tmp_dir.mkdir()
    return OrchestratorConfig(
        NODE_ROOT=str(tmp_path / "mockcn"),
        LEDGER_FILE=str(tmp_path / "mockcn.json"),
        LOG_ROOT=str(tmp_path / "log"),
        TMP_DIR=str(tmp_dir),
        METADATA_MODE=MetadataMode.STATIC,
        MOCK_OUI=TEST_OUI,
        DATACENTER_NAME=TEST_DATACENTER,
        BUILD_STAMP=TEST_BUILD_STAMP,
        ADDRESS_MODE=AddressMode.POOL,
        ADDRESS_POOL="10.99.0.0/24",
        BOOT_CONFIG_MODE=BootConfigMode.STATIC,
    )


@pytest.fixture
def ledger(cfg: OrchestratorConfig) -> IdentityLedger:
    return IdentityLedger(cfg.LEDGER_FILE)


@pytest.fixture
def catalog() -> ProfileCatalog:
    return ProfileCatalog.load_bundled()


@pytest.fixture
def collaborators() -> Collaborators:
    return static_collaborators()


@pytest.fixture
def pipeline(ledger, catalog, collaborators) -> DefaultingPipeline:
    return DefaultingPipeline(ledger, catalog, collaborators, clock=lambda: 1700000000)


@pytest.fixture
def agent_events() -> list:
    return []


@pytest.fixture
def recording_factory(cfg, agent_events) -> SandboxFactory:
    """Sandbox factory whose agents only record start/shutdown calls."""
    return SandboxFactory(
        cfg,
        task_agent_factory=lambda ctx: RecordingTaskAgent(ctx, agent_events),
        registration_agent_factory=lambda ctx: RecordingRegistrationAgent(
            ctx, agent_events
        ),
    )
