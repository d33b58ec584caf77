"""
Identity allocation for simulated compute nodes.

Every node gets a small integer index, recorded in a JSON ledger that
survives orchestrator restarts. The index is the only input (besides the
fleet-wide OUI and the NIC ordinal) to the node's MAC addresses:

    <oui>:<index hi byte>:<index lo byte>:<nic ordinal>

e.g. OUI 06:de:ad, index 7, second NIC -> 06:de:ad:00:07:01

Ledger file format:
    {"cn_indexes": {"<uuid>": {"cn_index": 7}, ...}}

Indices are never released. Deleting a node keeps its ledger entry so a
later node can never be handed the same MAC addresses.
"""

import asyncio
import json
import os
import tempfile

from mockfleet.errors import LedgerError
from mockfleet.utils.logger import get_logger

logger = get_logger(__name__)

MAX_INDEX = 0xFFFF
MAX_NIC_ORDINAL = 0xFF


def derive_mac(oui: str, index: int, nic_ordinal: int) -> str:
    """
    Build the MAC address of one simulated NIC.

    Args:
        oui: Fleet-wide three-octet prefix, e.g. "06:de:ad".
        index: Node index from the ledger (0..65535).
        nic_ordinal: Zero-based position of the NIC in its node (0..255).

    Returns:
        Lower-case colon separated MAC address.

    Raises:
        ValueError: If index or ordinal do not fit their octets.
    """
    if not 0 <= index <= MAX_INDEX:
        raise ValueError(f"node index {index} does not fit in two octets")
    if not 0 <= nic_ordinal <= MAX_NIC_ORDINAL:
        raise ValueError(f"NIC ordinal {nic_ordinal} does not fit in one octet")

    index_hex = f"{index:04x}"
    return f"{oui.lower()}:{index_hex[:2]}:{index_hex[2:]}:{nic_ordinal:02x}"


class IdentityLedger:
    """
    Persisted mapping of node UUID -> allocated index.

    All mutations happen under an asyncio lock and are written to disk
    before the lock is released, so an index returned to one caller is
    durable before any other allocation can run.
    """

    def __init__(self, path: str):
        self.path = path
        self._indexes: dict[str, int] = {}
        self._lock = asyncio.Lock()

    # =========================================================================
    # Loading / Saving
    # =========================================================================

    async def load(self) -> None:
        """
        Load the ledger from disk.

        A missing file is an empty ledger.

        Raises:
            LedgerError: If the file exists but cannot be read or parsed.
        """
        async with self._lock:
            self._indexes = await asyncio.to_thread(self._read_sync)
        logger.info(f"Identity ledger loaded: {len(self._indexes)} entries")

    def _read_sync(self) -> dict[str, int]:
        try:
            with open(self.path) as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.debug(f"No ledger at {self.path}, starting empty")
            return {}
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load ledger {self.path}: {e}")
            raise LedgerError(f"cannot load ledger {self.path}: {e}") from e

        try:
            entries = data.get("cn_indexes", {})
            return {uuid: int(entry["cn_index"]) for uuid, entry in entries.items()}
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise LedgerError(f"malformed ledger {self.path}: {e}") from e

    def _write_sync(self, indexes: dict[str, int]) -> None:
        data = {
            "cn_indexes": {
                uuid: {"cn_index": index} for uuid, index in indexes.items()
            }
        }
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)

        # Write-then-rename keeps the previous ledger intact on failure
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".ledger-")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
                f.write("\n")
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    # =========================================================================
    # Allocation
    # =========================================================================

    async def allocate_index(self, uuid: str) -> int:
        """
        Allocate (or return the existing) index for a node.

        New indices are one more than the highest index in the ledger, or 0
        for an empty ledger.

        Raises:
            LedgerError: If the ledger cannot be persisted. The allocation
                is rolled back and not considered committed.
        """
        async with self._lock:
            if uuid in self._indexes:
                return self._indexes[uuid]

            index = max(self._indexes.values(), default=-1) + 1
            if index > MAX_INDEX:
                raise LedgerError("identity ledger exhausted (65536 indices used)")

            updated = dict(self._indexes)
            updated[uuid] = index
            try:
                await asyncio.to_thread(self._write_sync, updated)
            except OSError as e:
                logger.error(f"Failed to persist ledger {self.path}: {e}")
                raise LedgerError(f"cannot persist ledger {self.path}: {e}") from e

            self._indexes = updated
            logger.info(f"Allocated index {index} for CN {uuid}")
            return index

    # =========================================================================
    # Queries
    # =========================================================================

    def get_index(self, uuid: str) -> int | None:
        return self._indexes.get(uuid)

    def entries(self) -> dict[str, int]:
        """Snapshot of the ledger."""
        return dict(self._indexes)

    def __len__(self) -> int:
        return len(self._indexes)
