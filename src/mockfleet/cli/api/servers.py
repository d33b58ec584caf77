"""
Server and profile API wrappers.
"""

import httpx

from mockfleet.cli.api._base import (
    APIError,
    _get_host_url,
    _handle_http_error,
    _make_request,
    logger,
)

__all__ = [
    "get_servers",
    "get_server",
    "create_server",
    "delete_server",
    "get_profiles",
]


# =============================================================================
# Server Operations
# =============================================================================


def get_servers() -> list[dict]:
    """Get all simulated servers."""
    url = f"{_get_host_url()}/servers"
    try:
        response = _make_request("get", url)
        response.raise_for_status()
        return response.json()
    except httpx.HTTPStatusError as e:
        _handle_http_error(e, "list servers")
    except httpx.RequestError as e:
        logger.error(f"Request error: {e}")
        raise APIError(f"Network error: {e}")
    return []


def get_server(uuid: str) -> dict:
    """Get one simulated server."""
    url = f"{_get_host_url()}/servers/{uuid}"
    try:
        response = _make_request("get", url)
        response.raise_for_status()
        return response.json()
    except httpx.HTTPStatusError as e:
        _handle_http_error(e, f"get server {uuid}")
    except httpx.RequestError as e:
        logger.error(f"Request error: {e}")
        raise APIError(f"Network error: {e}")
    return {}


def create_server(payload: dict) -> dict:
    """Create a simulated server from a (partial) sysinfo payload."""
    url = f"{_get_host_url()}/servers"
    try:
        response = _make_request("post", url, json=payload)
        response.raise_for_status()
        return response.json()
    except httpx.HTTPStatusError as e:
        _handle_http_error(e, "create server")
    except httpx.RequestError as e:
        logger.error(f"Request error: {e}")
        raise APIError(f"Network error: {e}")
    return {}


def delete_server(uuid: str) -> None:
    """Delete a simulated server."""
    url = f"{_get_host_url()}/servers/{uuid}"
    try:
        response = _make_request("delete", url)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        _handle_http_error(e, f"delete server {uuid}")
    except httpx.RequestError as e:
        logger.error(f"Request error: {e}")
        raise APIError(f"Network error: {e}")


# =============================================================================
# Profiles
# =============================================================================


def get_profiles() -> list[dict]:
    """Get the canned hardware profiles."""
    url = f"{_get_host_url()}/profiles"
    try:
        response = _make_request("get", url)
        response.raise_for_status()
        return response.json()
    except httpx.HTTPStatusError as e:
        _handle_http_error(e, "list profiles")
    except httpx.RequestError as e:
        logger.error(f"Request error: {e}")
        raise APIError(f"Network error: {e}")
    return []
