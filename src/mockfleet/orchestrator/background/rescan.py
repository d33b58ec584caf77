"""
Fleet Rescan Background Task.

Re-runs reconciliation periodically so node directories added or removed
by hand are picked up without a restart.
"""

import asyncio

from mockfleet.errors import ReconcileError
from mockfleet.orchestrator.services.reconciler import FleetReconciler
from mockfleet.utils.logger import get_logger

logger = get_logger(__name__)


# =============================================================================
# Background Task
# =============================================================================


async def rescan_fleet(reconciler: FleetReconciler, interval: float) -> None:
    """Reconcile every ``interval`` seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)

        try:
            await reconciler.reconcile()
        except ReconcileError as e:
            logger.warning(f"Periodic reconcile incomplete: {e}")
        except Exception as e:
            logger.error(f"Error during periodic reconcile: {e}")
