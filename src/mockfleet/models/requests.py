"""
Pydantic models for control API responses.

Create payloads are intentionally NOT a pydantic model: the body is a free
form sysinfo fragment checked against NODE_RECORD_SCHEMA, with unknown keys
dropped rather than rejected.
"""

from typing import Any

from pydantic import BaseModel, Field


# =============================================================================
# Server Responses
# =============================================================================


class ServerEntry(BaseModel):
    """One simulated compute node as returned by the control API."""

    uuid: str = Field(..., description="Server UUID")
    sysinfo: dict[str, Any] = Field(
        default_factory=dict,
        description="Complete node record (sysinfo document)",
    )
    profile: str | None = Field(
        default=None,
        description="Hardware profile the record was built from",
    )


class ProfileSummary(BaseModel):
    """A canned hardware profile available for creation."""

    name: str
    manufacturer: str | None = None
    memory_mib: int | None = None
    disks: int = 0
    nics: int = 0


# =============================================================================
# Error Responses
# =============================================================================


class FieldErrorDetail(BaseModel):
    field: str
    code: str
    message: str


class ErrorResponse(BaseModel):
    """Structured error body for every non-2xx answer."""

    code: str = Field(..., description="Stable CamelCase error code")
    message: str = Field(..., description="Human readable message")
    errors: list[FieldErrorDetail] = Field(default_factory=list)
