"""
API client subpackage for CLI commands.

Re-exports all API functions and classes from domain-specific modules
so that ``from mockfleet.cli.api import X`` works for any public name.
"""

from mockfleet.cli.api._base import *  # noqa: F401,F403
from mockfleet.cli.api.servers import *  # noqa: F401,F403
