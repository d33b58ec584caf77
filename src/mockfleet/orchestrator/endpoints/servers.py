"""
Server Endpoints.

Control API for the simulated fleet: list, inspect, create and delete
nodes, plus the catalog of canned hardware profiles.

Errors are raised as MockFleetError subclasses and rendered by the
application's exception handler into {"code", "message", "errors"}.
"""

import json

from fastapi import APIRouter, Depends, Path, Request, Response

from mockfleet.errors import FieldError, ValidationError
from mockfleet.models.requests import ProfileSummary, ServerEntry
from mockfleet.orchestrator.services.fleet import FleetService
from mockfleet.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


def get_fleet(request: Request) -> FleetService:
    """Fleet service created during application startup."""
    return request.app.state.fleet


# =============================================================================
# Queries
# =============================================================================


@router.get("/servers", response_model=list[ServerEntry])
async def list_servers(fleet: FleetService = Depends(get_fleet)):
    """List every running simulated node with its sysinfo."""
    return fleet.list_servers()


@router.get("/servers/{uuid}", response_model=ServerEntry)
async def get_server(
    uuid: str = Path(..., description="Server UUID"),
    fleet: FleetService = Depends(get_fleet),
):
    """Get one simulated node."""
    return fleet.get(uuid)


@router.get("/profiles", response_model=list[ProfileSummary])
async def list_profiles(fleet: FleetService = Depends(get_fleet)):
    """List canned hardware profiles usable as "Product" on create."""
    return fleet.list_profiles()


# =============================================================================
# Mutations
# =============================================================================


@router.post("/servers", response_model=ServerEntry, status_code=201)
async def create_server(request: Request, fleet: FleetService = Depends(get_fleet)):
    """
    Create a simulated node.

    The body is a (partial) sysinfo document. Unknown attributes are
    ignored; everything missing is filled in from host metadata and a
    hardware profile.
    """
    body = await request.body()
    try:
        payload = json.loads(body) if body else {}
    except json.JSONDecodeError as e:
        raise ValidationError(
            [FieldError("<body>", "InvalidJSON", f"body is not valid JSON: {e}")]
        ) from e

    entry = await fleet.create(payload)
    logger.info(f"Created server {entry.uuid}")
    return entry


@router.delete("/servers/{uuid}", status_code=204)
async def delete_server(
    uuid: str = Path(..., description="Server UUID"),
    fleet: FleetService = Depends(get_fleet),
):
    """Stop a simulated node and remove its directory."""
    await fleet.delete(uuid)
    logger.info(f"Deleted server {uuid}")
    return Response(status_code=204)
