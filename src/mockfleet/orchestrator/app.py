"""
MockFleet Orchestrator FastAPI Application.

This module provides the main entry point for the orchestrator, which runs
every simulated compute node of the fleet inside one process.

Responsibilities:
    - Identity ledger loading
    - Fleet reconciliation at startup (and optionally on a timer)
    - Control API for creating, listing and deleting nodes
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from mockfleet import __version__
from mockfleet.errors import MockFleetError, ReconcileError
from mockfleet.models.enums import LogLevel
from mockfleet.models.requests import ErrorResponse
from mockfleet.orchestrator.background.rescan import rescan_fleet
from mockfleet.orchestrator.config import OrchestratorConfig, config
from mockfleet.orchestrator.endpoints import servers
from mockfleet.orchestrator.services.collaborators import (
    Collaborators,
    build_collaborators,
    load_sdc_config,
)
from mockfleet.orchestrator.services.defaults import DefaultingPipeline
from mockfleet.orchestrator.services.fleet import FleetService
from mockfleet.orchestrator.services.identity import IdentityLedger
from mockfleet.orchestrator.services.profiles import ProfileCatalog
from mockfleet.orchestrator.services.reconciler import FleetReconciler
from mockfleet.sandbox.factory import SandboxFactory
from mockfleet.utils.logger import configure_logging, get_logger

logger = get_logger(__name__)


# =============================================================================
# Application Factory
# =============================================================================


def create_app(
    cfg: OrchestratorConfig = config,
    collaborators: Collaborators | None = None,
    sandbox_factory: SandboxFactory | None = None,
    catalog: ProfileCatalog | None = None,
) -> FastAPI:
    """
    Build the orchestrator application.

    Args:
        cfg: Orchestrator configuration.
        collaborators: Overrides the collaborators selected by ``cfg``.
        sandbox_factory: Overrides the factory built from ``cfg``.
        catalog: Overrides the bundled hardware profile catalog.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await startup_event(app, cfg, collaborators, sandbox_factory, catalog)
        try:
            yield
        finally:
            await shutdown_event(app)

    app = FastAPI(
        title="MockFleet Orchestrator",
        description="Simulated compute node fleet",
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(servers.router, tags=["Servers"])
    app.add_exception_handler(MockFleetError, mockfleet_error_handler)
    return app


async def mockfleet_error_handler(request: Request, exc: MockFleetError):
    """Render MockFleet errors as structured JSON bodies."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    body = ErrorResponse.model_validate(exc.to_dict())
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


# =============================================================================
# Lifecycle Events
# =============================================================================


async def startup_event(
    app: FastAPI,
    cfg: OrchestratorConfig,
    collaborators: Collaborators | None,
    sandbox_factory: SandboxFactory | None,
    catalog: ProfileCatalog | None,
):
    """Load the ledger, wire services and bring the fleet up."""
    logger.info("Orchestrator starting up")
    logger.debug(f"Node root: {cfg.NODE_ROOT}, ledger: {cfg.LEDGER_FILE}")

    ledger = IdentityLedger(cfg.LEDGER_FILE)
    await ledger.load()

    collaborators = collaborators or build_collaborators(cfg)
    if catalog is None:
        catalog = (
            ProfileCatalog.load_file(cfg.PROFILE_FILE)
            if cfg.PROFILE_FILE
            else ProfileCatalog.load_bundled()
        )
    sdc_config = await load_sdc_config(collaborators.metadata)

    factory = sandbox_factory or SandboxFactory(cfg, sdc_config=sdc_config)
    reconciler = FleetReconciler(cfg, factory)
    pipeline = DefaultingPipeline(ledger, catalog, collaborators)

    app.state.ledger = ledger
    app.state.reconciler = reconciler
    app.state.fleet = FleetService(
        cfg, reconciler, pipeline, catalog, collaborators.metadata
    )
    app.state.background_tasks = set()

    try:
        await reconciler.reconcile()
    except ReconcileError as e:
        # Nodes that did start keep running
        logger.error(f"Initial reconcile incomplete: {e}")

    logger.info(f"Fleet up: {len(reconciler.registry)} simulated nodes")

    _start_background_tasks(app, cfg, reconciler)


async def shutdown_event(app: FastAPI):
    """Stop background tasks and every sandbox."""
    logger.info("Orchestrator shutting down")

    background_tasks: set[asyncio.Task] = getattr(app.state, "background_tasks", set())
    for task in background_tasks:
        task.cancel()
    if background_tasks:
        await asyncio.gather(*background_tasks, return_exceptions=True)

    fleet: FleetService | None = getattr(app.state, "fleet", None)
    if fleet is not None:
        await fleet.shutdown_all()

    logger.info("Orchestrator shut down complete")


def _start_background_tasks(
    app: FastAPI, cfg: OrchestratorConfig, reconciler: FleetReconciler
):
    """Start the periodic rescan, if enabled."""
    if cfg.RECONCILE_INTERVAL_SECONDS <= 0:
        return

    task = asyncio.create_task(
        rescan_fleet(reconciler, cfg.RECONCILE_INTERVAL_SECONDS), name="fleet_rescan"
    )
    app.state.background_tasks.add(task)
    task.add_done_callback(app.state.background_tasks.discard)
    logger.debug(f"Fleet rescan every {cfg.RECONCILE_INTERVAL_SECONDS}s")


# =============================================================================
# Entry Point
# =============================================================================


def run():
    """Run the orchestrator using uvicorn."""
    import uvicorn

    # Configure logging before starting uvicorn
    configure_logging(config.LOG_LEVEL, config.LOG_FILE)

    uvicorn_level_map = {
        LogLevel.FULL: "debug",
        LogLevel.DEBUG: "debug",
        LogLevel.INFO: "info",
        LogLevel.WARNING: "warning",
    }
    uvicorn_level = uvicorn_level_map.get(config.LOG_LEVEL, "info")

    logger.info(f"Starting orchestrator on {config.get_base_url()}")

    uvicorn.run(
        create_app(config),
        host=config.BIND_IP,
        port=config.PORT,
        log_level=uvicorn_level,
        log_config=None,  # Disable uvicorn's default logging config (use loguru)
    )


def main():
    """Entry point for the orchestrator."""
    run()


if __name__ == "__main__":
    main()
