"""
Fleet reconciliation.

The node root directory is the source of truth: one sub-directory per
simulated node. FleetReconciler brings the live SandboxRegistry in line
with it, starting sandboxes for new directories and shutting down those
whose directory disappeared.

One asyncio lock serialises reconciliation, creation and deletion, so a
background rescan never races a create or delete for the same UUID.
"""

import asyncio
import os
import shutil

from mockfleet.errors import ConflictError, NotFoundError, ReconcileError
from mockfleet.orchestrator.config import OrchestratorConfig
from mockfleet.sandbox.factory import SandboxFactory, SandboxHandle
from mockfleet.utils.logger import format_traceback, get_logger

logger = get_logger(__name__)


# =============================================================================
# Registry
# =============================================================================


class SandboxRegistry:
    """Live sandboxes keyed by node UUID."""

    def __init__(self):
        self._sandboxes: dict[str, SandboxHandle] = {}

    def get(self, uuid: str) -> SandboxHandle | None:
        return self._sandboxes.get(uuid)

    def add(self, handle: SandboxHandle) -> None:
        self._sandboxes[handle.uuid] = handle

    def remove(self, uuid: str) -> SandboxHandle | None:
        return self._sandboxes.pop(uuid, None)

    def uuids(self) -> list[str]:
        return list(self._sandboxes)

    def handles(self) -> list[SandboxHandle]:
        return list(self._sandboxes.values())

    def __contains__(self, uuid: str) -> bool:
        return uuid in self._sandboxes

    def __len__(self) -> int:
        return len(self._sandboxes)


# =============================================================================
# Reconciler
# =============================================================================


class FleetReconciler:
    """Keeps the SandboxRegistry in sync with the node root directory."""

    def __init__(
        self,
        cfg: OrchestratorConfig,
        factory: SandboxFactory,
        registry: SandboxRegistry | None = None,
    ):
        self.cfg = cfg
        self.factory = factory
        self.registry = registry if registry is not None else SandboxRegistry()
        self.lock = asyncio.Lock()
        # UUIDs whose create transaction is in flight
        self.pending: set[str] = set()

    # =========================================================================
    # Reconciliation
    # =========================================================================

    async def reconcile(self) -> None:
        """
        Start sandboxes for new node directories, stop those for removed ones.

        Safe to call repeatedly. Every new node is attempted even when some
        fail.

        Raises:
            ReconcileError: Wrapping the first instantiation failure.
        """
        async with self.lock:
            entries = await asyncio.to_thread(self._list_node_dirs)
            on_disk = set(entries)

            new = [
                uuid
                for uuid in entries
                if uuid not in self.registry and uuid not in self.pending
            ]
            results = await asyncio.gather(
                *(self._start(uuid) for uuid in new), return_exceptions=True
            )

            failures: list[tuple[str, BaseException]] = []
            for uuid, result in zip(new, results):
                if isinstance(result, BaseException):
                    logger.error(f"[CN {uuid}] failed to start sandbox: {result}")
                    logger.debug(format_traceback(result))
                    failures.append((uuid, result))
                else:
                    self.registry.add(result)

            for uuid in self.registry.uuids():
                if uuid in on_disk:
                    continue
                logger.info(f"[CN {uuid}] directory gone, removing sandbox")
                handle = self.registry.remove(uuid)
                await self._shutdown(handle)

            logger.debug(
                f"Reconciled fleet: {len(self.registry)} running, "
                f"{len(new) - len(failures)} started, {len(failures)} failed"
            )

        if failures:
            first_uuid, first_error = failures[0]
            raise ReconcileError(first_uuid, first_error, failed=len(failures))

    def _list_node_dirs(self) -> list[str]:
        try:
            names = sorted(os.listdir(self.cfg.NODE_ROOT))
        except FileNotFoundError:
            logger.debug(f"Node root {self.cfg.NODE_ROOT} does not exist")
            return []
        return [
            name
            for name in names
            if os.path.isdir(os.path.join(self.cfg.NODE_ROOT, name))
        ]

    async def _start(self, uuid: str) -> SandboxHandle:
        await asyncio.to_thread(
            os.makedirs, self.cfg.get_task_log_dir(uuid), exist_ok=True
        )
        return await self.factory.instantiate(uuid, self.cfg.get_node_dir(uuid))

    async def _shutdown(self, handle: SandboxHandle) -> None:
        try:
            await handle.shutdown()
        except Exception as e:
            logger.error(f"[CN {handle.uuid}] error during sandbox shutdown: {e}")

    # =========================================================================
    # Single-Node Operations
    # =========================================================================

    async def reserve(self, uuid: str) -> None:
        """
        Claim a UUID for a create transaction.

        Raises:
            ConflictError: The node is running, being created or on disk.
        """
        async with self.lock:
            if (
                uuid in self.registry
                or uuid in self.pending
                or os.path.exists(self.cfg.get_node_dir(uuid))
            ):
                raise ConflictError(uuid)
            self.pending.add(uuid)

    async def release(self, uuid: str) -> None:
        """Drop a reservation after a failed create."""
        async with self.lock:
            self.pending.discard(uuid)

    async def instantiate_one(self, uuid: str) -> SandboxHandle:
        """Start and register the sandbox of a freshly created node."""
        async with self.lock:
            try:
                handle = await self._start(uuid)
            finally:
                self.pending.discard(uuid)
            self.registry.add(handle)
            return handle

    async def retire(
        self, uuid: str, remove_dir: bool = True
    ) -> SandboxHandle | None:
        """
        Shut a node's sandbox down and forget it.

        A node directory whose sandbox never started (it failed to start
        and is not being created) is removed as well when ``remove_dir`` is
        set; None is returned for it.

        Args:
            uuid: Node UUID.
            remove_dir: Also delete the node directory, so the next
                reconcile does not bring the node back.

        Raises:
            NotFoundError: No such node, running or on disk.
        """
        async with self.lock:
            node_dir = self.cfg.get_node_dir(uuid)
            handle = self.registry.remove(uuid)
            if handle is None:
                if (
                    not remove_dir
                    or uuid in self.pending
                    or not os.path.isdir(node_dir)
                ):
                    raise NotFoundError(uuid)
                await asyncio.to_thread(shutil.rmtree, node_dir, ignore_errors=True)
                logger.info(f"[CN {uuid}] removed directory of stopped node")
                return None

            await self._shutdown(handle)
            if remove_dir:
                await asyncio.to_thread(shutil.rmtree, node_dir, ignore_errors=True)
            logger.info(f"[CN {uuid}] retired")
            return handle
