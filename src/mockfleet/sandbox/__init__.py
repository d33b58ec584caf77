"""
Per-node sandboxes.

Provides the command runner, agent interfaces and the sandbox factory.
"""

from mockfleet.sandbox.agents import (
    AgentContext,
    CommandTaskAgent,
    RegistrationAgent,
    SysinfoRegistrationAgent,
    TaskAgent,
)
from mockfleet.sandbox.factory import SandboxFactory, SandboxHandle, load_factory
from mockfleet.sandbox.runner import (
    SERVER_UUID_ENV,
    CommandResult,
    NodeCommandRunner,
)

__all__ = [
    # Runner
    "SERVER_UUID_ENV",
    "CommandResult",
    "NodeCommandRunner",
    # Agents
    "AgentContext",
    "TaskAgent",
    "RegistrationAgent",
    "CommandTaskAgent",
    "SysinfoRegistrationAgent",
    # Factory
    "SandboxFactory",
    "SandboxHandle",
    "load_factory",
]
