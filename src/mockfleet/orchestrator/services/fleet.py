"""
Fleet service: the operations behind the control API.

Create runs as one transaction:

    validate payload -> reserve UUID -> defaulting pipeline -> host admin IP
    -> write <node>/disks.json and <node>/sysinfo.json -> start sandbox

A failure at any point removes the node directory again and releases the
UUID. The ledger index, once allocated, is kept.
"""

import asyncio
import json
import os
import shutil
import uuid as uuid_lib

from mockfleet.errors import NotFoundError
from mockfleet.models.disks import (
    DiskDescriptor,
    build_disk_descriptors,
    strip_descriptor_only_keys,
)
from mockfleet.models.node_record import ADMIN_IP, PRODUCT, UUID, validate_payload
from mockfleet.models.requests import ProfileSummary, ServerEntry
from mockfleet.orchestrator.config import OrchestratorConfig
from mockfleet.orchestrator.services.collaborators import HostMetadata
from mockfleet.orchestrator.services.defaults import DefaultingPipeline
from mockfleet.orchestrator.services.profiles import ProfileCatalog
from mockfleet.orchestrator.services.reconciler import FleetReconciler
from mockfleet.sandbox.factory import DISKS_FILE, SYSINFO_FILE, SandboxHandle
from mockfleet.utils.logger import get_logger

logger = get_logger(__name__)


class FleetService:
    """List, inspect, create and delete simulated nodes."""

    def __init__(
        self,
        cfg: OrchestratorConfig,
        reconciler: FleetReconciler,
        pipeline: DefaultingPipeline,
        catalog: ProfileCatalog,
        metadata: HostMetadata,
    ):
        self.cfg = cfg
        self.reconciler = reconciler
        self.pipeline = pipeline
        self.catalog = catalog
        self.metadata = metadata
        # Profile chosen at creation time, for nodes created by this process
        self._profiles: dict[str, str] = {}

    # =========================================================================
    # Queries
    # =========================================================================

    def list_servers(self) -> list[ServerEntry]:
        return [self._entry(handle) for handle in self.reconciler.registry.handles()]

    def get(self, uuid: str) -> ServerEntry:
        handle = self.reconciler.registry.get(uuid)
        if handle is None:
            raise NotFoundError(uuid)
        return self._entry(handle)

    def list_profiles(self) -> list[ProfileSummary]:
        return self.catalog.summaries()

    def _entry(self, handle: SandboxHandle) -> ServerEntry:
        profile = self._profiles.get(handle.uuid)
        if profile is None and handle.sysinfo.get(PRODUCT) in self.catalog:
            profile = handle.sysinfo[PRODUCT]
        return ServerEntry(uuid=handle.uuid, sysinfo=handle.sysinfo, profile=profile)

    # =========================================================================
    # Create
    # =========================================================================

    async def create(self, payload) -> ServerEntry:
        """
        Create, persist and start a new node.

        Raises:
            ValidationError: Invalid payload or incomplete result record.
            ConflictError: UUID already in use.
            ExternalCollaboratorError: Host metadata or address lookup failed.
            LedgerError: No index could be allocated.
        """
        validated = validate_payload(payload)
        uuid = validated.setdefault(UUID, str(uuid_lib.uuid4()))
        node_dir = self.cfg.get_node_dir(uuid)

        await self.reconciler.reserve(uuid)
        logger.info(f"[CN {uuid}] creating")

        dir_created = False
        try:
            ctx = await self.pipeline.run(validated)
            record = ctx.record

            admin_ip = await self.metadata.admin_ip()
            if admin_ip:
                record[ADMIN_IP] = admin_ip

            disks = build_disk_descriptors(record)
            strip_descriptor_only_keys(record)

            await asyncio.to_thread(os.makedirs, node_dir)
            dir_created = True
            await asyncio.to_thread(self._write_node_files, node_dir, record, disks)
        except BaseException:
            if dir_created:
                await asyncio.to_thread(shutil.rmtree, node_dir, ignore_errors=True)
            await self.reconciler.release(uuid)
            raise

        try:
            handle = await self.reconciler.instantiate_one(uuid)
        except BaseException:
            logger.error(f"[CN {uuid}] sandbox failed to start, removing node")
            await asyncio.to_thread(shutil.rmtree, node_dir, ignore_errors=True)
            raise

        if ctx.profile_name:
            self._profiles[uuid] = ctx.profile_name
        logger.info(f"[CN {uuid}] created ({record.get('Hostname')})")
        return self._entry(handle)

    @staticmethod
    def _write_node_files(
        node_dir: str, record: dict, disks: list[DiskDescriptor]
    ) -> None:
        with open(os.path.join(node_dir, DISKS_FILE), "w") as f:
            json.dump([d.model_dump() for d in disks], f, indent=2)
            f.write("\n")
        with open(os.path.join(node_dir, SYSINFO_FILE), "w") as f:
            json.dump(record, f, indent=2)
            f.write("\n")

    # =========================================================================
    # Delete
    # =========================================================================

    async def delete(self, uuid: str) -> None:
        """
        Stop a node and remove its directory. Its ledger index stays taken.

        Raises:
            NotFoundError: Unknown UUID.
        """
        await self.reconciler.retire(uuid, remove_dir=True)
        self._profiles.pop(uuid, None)

    async def shutdown_all(self) -> None:
        """Stop every sandbox without touching the node directories."""
        for uuid in self.reconciler.registry.uuids():
            await self.reconciler.retire(uuid, remove_dir=False)
