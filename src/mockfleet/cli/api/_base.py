"""
Shared HTTP client setup, base URL config, and error handling.

All domain-specific API modules import from here.
"""

import httpx

from mockfleet.cli import config as cli_config
from mockfleet.utils.logger import get_logger

logger = get_logger(__name__)

__all__ = ["APIError"]


class APIError(Exception):
    """API request error with status code and detail."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        detail: str | None = None,
        code: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail
        self.code = code


def _get_host_url() -> str:
    """Get the orchestrator URL from config."""
    return f"http://{cli_config.HOST_ADDRESS}:{cli_config.HOST_PORT}"


def _make_request(
    method: str,
    url: str,
    **kwargs,
) -> httpx.Response:
    """Make an HTTP request with the configured timeout."""
    kwargs.setdefault("timeout", cli_config.REQUEST_TIMEOUT)
    return getattr(httpx, method)(url, **kwargs)


def _handle_http_error(e: httpx.HTTPStatusError, context: str = "request") -> None:
    """Turn an error response into APIError, keeping its code and field list."""
    status = e.response.status_code
    code = None
    try:
        body = e.response.json()
        code = body.get("code")
        detail_str = body.get("message", str(body))
        fields = [err.get("field") for err in body.get("errors", [])]
        if fields:
            detail_str += f" ({', '.join(str(f) for f in fields)})"
    except Exception:
        detail_str = e.response.text

    logger.debug(f"HTTP {status} on {context}: {detail_str}")
    raise APIError(
        f"HTTP {status}: {detail_str}", status_code=status, detail=detail_str, code=code
    )
