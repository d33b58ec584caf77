"""
CLI client settings.

Module-level values set from global options in cli/main.py and read by the
API wrappers.
"""

HOST_ADDRESS: str = "127.0.0.1"
HOST_PORT: int = 8080
OUTPUT_FORMAT: str = "table"
REQUEST_TIMEOUT: float = 30.0
