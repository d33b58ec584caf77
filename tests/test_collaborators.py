"""Tests for host metadata, address assignment and boot configuration."""

import os
import stat
from pathlib import Path

import pytest

from mockfleet.errors import AddressAssignmentError, BootConfigError, MetadataError
from mockfleet.models.enums import AddressMode, BootConfigMode, MetadataMode
from mockfleet.orchestrator.services.collaborators import (
    DATACENTER_NAME_KEY,
    DNS_DOMAIN_KEY,
    NICS_KEY,
    DhcpCommandAddressAssigner,
    MdataHostMetadata,
    PoolAddressAssigner,
    StaticBootConfigFetcher,
    StaticHostMetadata,
    TftpBootConfigFetcher,
    build_collaborators,
    load_sdc_config,
    parse_boot_params,
)

MENU_LST = """default 0
timeout 5
variable os_console ttyb
title Live 64-bit
  kernel /os/20240101T000000Z/platform/i86pc/kernel/amd64/unix -B console=${os_console},ttyb-mode="115200",hostname=node-7,admin_nic=06:de:ad:00:07:00
  module /os/20240101T000000Z/platform/i86pc/amd64/boot_archive
title Second entry
  kernel /other/unix -B console=vga
"""


def make_script(directory: Path, name: str, body: str) -> str:
    path = directory / name
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


# =============================================================================
# Boot Parameter Parsing
# =============================================================================


class TestParseBootParams:
    def test_first_kernel_line_with_variables(self):
        params = parse_boot_params(MENU_LST)
        assert params == {
            "console": "ttyb",
            "ttyb_mode": "115200",
            "hostname": "node-7",
            "admin_nic": "06:de:ad:00:07:00",
        }

    def test_no_kernel_line(self):
        assert parse_boot_params("default 0\ntitle nothing\n") == {}

    def test_empty_document(self):
        assert parse_boot_params("") == {}


# =============================================================================
# Host Metadata
# =============================================================================


@pytest.fixture
def mdata_get(tmp_path: Path) -> str:
    return make_script(
        tmp_path,
        "mdata-get",
        """case "$1" in
  sdc:datacenter_name) echo "us-east-1"; echo "ignored" ;;
  sdc:dns_domain) echo "example.com" ;;
  mock_oui) echo "06:de:ad" ;;
  sdc:nics) echo '[{"nic_tag": "external", "ip": "1.2.3.4"}, {"nic_tag": "admin", "ip": "10.0.0.5"}]' ;;
  *) echo "No metadata for '$1'" >&2; exit 1 ;;
esac
""",
    )


@pytest.fixture
def uname(tmp_path: Path) -> str:
    return make_script(tmp_path, "uname", 'echo "joyent_20240101T000000Z"\n')


class TestMdataHostMetadata:
    @pytest.mark.asyncio
    async def test_first_line_of_value(self, mdata_get, uname):
        metadata = MdataHostMetadata(mdata_get, uname, timeout=10)
        assert await metadata.get(DATACENTER_NAME_KEY) == "us-east-1"
        assert await metadata.get_oui() == "06:de:ad"

    @pytest.mark.asyncio
    async def test_oui_override(self, mdata_get, uname):
        metadata = MdataHostMetadata(mdata_get, uname, oui_override="02:00:00")
        assert await metadata.get_oui() == "02:00:00"

    @pytest.mark.asyncio
    async def test_build_stamp(self, mdata_get, uname):
        metadata = MdataHostMetadata(mdata_get, uname)
        assert await metadata.build_stamp() == "20240101T000000Z"

    @pytest.mark.asyncio
    async def test_bad_build_stamp(self, tmp_path, mdata_get):
        bad_uname = make_script(tmp_path, "uname-bad", 'echo "plain"\n')
        metadata = MdataHostMetadata(mdata_get, bad_uname)
        with pytest.raises(MetadataError):
            await metadata.build_stamp()

    @pytest.mark.asyncio
    async def test_admin_ip(self, mdata_get, uname):
        metadata = MdataHostMetadata(mdata_get, uname)
        assert await metadata.admin_ip() == "10.0.0.5"

    @pytest.mark.asyncio
    async def test_failure_carries_stderr(self, mdata_get, uname):
        metadata = MdataHostMetadata(mdata_get, uname)
        with pytest.raises(MetadataError) as exc_info:
            await metadata.get("nothing")
        assert "No metadata" in exc_info.value.stderr
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_missing_binary(self, tmp_path, uname):
        metadata = MdataHostMetadata(str(tmp_path / "absent"), uname)
        with pytest.raises(MetadataError):
            await metadata.get(DATACENTER_NAME_KEY)

    @pytest.mark.asyncio
    async def test_timeout(self, tmp_path, uname):
        slow = make_script(tmp_path, "slow-mdata", "exec sleep 5\n")
        metadata = MdataHostMetadata(slow, uname, timeout=0.2)
        with pytest.raises(MetadataError, match="timed out"):
            await metadata.get(DATACENTER_NAME_KEY)


class TestStaticHostMetadata:
    @pytest.mark.asyncio
    async def test_values_and_missing(self):
        metadata = StaticHostMetadata({DATACENTER_NAME_KEY: "dc1", DNS_DOMAIN_KEY: ""})
        assert await metadata.get(DATACENTER_NAME_KEY) == "dc1"
        with pytest.raises(MetadataError):
            await metadata.get(DNS_DOMAIN_KEY)
        with pytest.raises(MetadataError):
            await metadata.build_stamp()
        assert await metadata.admin_ip() is None

    @pytest.mark.asyncio
    async def test_load_sdc_config_skips_missing(self):
        metadata = StaticHostMetadata({DATACENTER_NAME_KEY: "dc1"})
        assert await load_sdc_config(metadata) == {"datacenter_name": "dc1"}


# =============================================================================
# Address Assignment
# =============================================================================


class TestAddressAssigners:
    @pytest.mark.asyncio
    async def test_dhcp_command(self, tmp_path):
        probe = make_script(
            tmp_path,
            "dhcp-probe",
            'printf \'{"ip": "10.1.1.5", "server": "10.1.1.1", "mac": "%s"}\' "$1"\n',
        )
        assigner = DhcpCommandAddressAssigner(probe, timeout=10)
        lease = await assigner.get_address("06:de:ad:00:00:00", "some-uuid")
        assert lease.ip == "10.1.1.5"
        assert lease.server == "10.1.1.1"

    @pytest.mark.asyncio
    async def test_dhcp_command_bad_output(self, tmp_path):
        probe = make_script(tmp_path, "dhcp-probe", "echo nonsense\n")
        assigner = DhcpCommandAddressAssigner(probe)
        with pytest.raises(AddressAssignmentError):
            await assigner.get_address("06:de:ad:00:00:00", "some-uuid")

    @pytest.mark.asyncio
    async def test_dhcp_command_failure(self, tmp_path):
        probe = make_script(tmp_path, "dhcp-probe", "echo 'no offer' >&2; exit 2\n")
        assigner = DhcpCommandAddressAssigner(probe)
        with pytest.raises(AddressAssignmentError) as exc_info:
            await assigner.get_address("06:de:ad:00:00:00", "some-uuid")
        assert "no offer" in exc_info.value.stderr

    @pytest.mark.asyncio
    async def test_pool_is_stable_per_mac_and_skips_server(self):
        assigner = PoolAddressAssigner("10.99.0.0/24", "10.99.0.1")
        first = await assigner.get_address("mac-a", "a")
        second = await assigner.get_address("mac-b", "b")
        again = await assigner.get_address("mac-a", "a")

        assert first.ip == "10.99.0.2"
        assert second.ip == "10.99.0.3"
        assert again.ip == first.ip
        assert first.server == "10.99.0.1"

    @pytest.mark.asyncio
    async def test_pool_exhaustion(self):
        assigner = PoolAddressAssigner("10.99.0.0/30", "10.99.0.1")
        await assigner.get_address("mac-a", "a")
        with pytest.raises(AddressAssignmentError):
            await assigner.get_address("mac-b", "b")


# =============================================================================
# Boot Configuration
# =============================================================================


class TestBootConfigFetchers:
    @pytest.mark.asyncio
    async def test_tftp_fetch(self, tmp_path):
        served = tmp_path / "served"
        served.mkdir()
        (served / "menu.lst.0106DEAD000700").write_text(MENU_LST)
        tftp = make_script(
            tmp_path, "tftp", f'[ "$2" = "-c" ] || exit 3\ncat "{served}/$4" > "$5"\n'
        )
        tmp_dir = tmp_path / "tmp"
        tmp_dir.mkdir()

        fetcher = TftpBootConfigFetcher(tftp, str(tmp_dir), timeout=10)
        params = await fetcher.fetch("06:de:ad:00:07:00", "10.99.0.1")

        assert params["hostname"] == "node-7"
        assert os.listdir(tmp_dir) == []

    @pytest.mark.asyncio
    async def test_tftp_failure(self, tmp_path):
        tftp = make_script(tmp_path, "tftp", "echo 'Transfer timed out.' >&2; exit 1\n")
        fetcher = TftpBootConfigFetcher(tftp, str(tmp_path))
        with pytest.raises(BootConfigError):
            await fetcher.fetch("06:de:ad:00:07:00", "10.99.0.1")

    def test_menu_filename(self):
        assert (
            TftpBootConfigFetcher.menu_filename("06:de:ad:00:07:0a")
            == "menu.lst.0106DEAD00070A"
        )

    @pytest.mark.asyncio
    async def test_static_returns_copies(self):
        fetcher = StaticBootConfigFetcher({"console": "ttyb"})
        params = await fetcher.fetch("mac", "server")
        params["console"] = "vga"
        assert (await fetcher.fetch("mac", "server")) == {"console": "ttyb"}


class TestBuildCollaborators:
    def test_static_modes(self, cfg):
        collaborators = build_collaborators(cfg)
        assert isinstance(collaborators.metadata, StaticHostMetadata)
        assert isinstance(collaborators.address_assigner, PoolAddressAssigner)
        assert isinstance(collaborators.boot_config, StaticBootConfigFetcher)

    def test_command_modes(self, cfg):
        cfg.METADATA_MODE = MetadataMode.MDATA
        cfg.ADDRESS_MODE = AddressMode.DHCP
        cfg.BOOT_CONFIG_MODE = BootConfigMode.TFTP
        collaborators = build_collaborators(cfg)
        assert isinstance(collaborators.metadata, MdataHostMetadata)
        assert isinstance(collaborators.address_assigner, DhcpCommandAddressAssigner)
        assert isinstance(collaborators.boot_config, TftpBootConfigFetcher)
        assert collaborators.metadata.oui_override == "06:de:ad"


def test_nics_key_constant():
    assert NICS_KEY == "sdc:nics"
