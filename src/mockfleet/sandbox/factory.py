"""
Sandbox construction and teardown.

A sandbox is the live simulation of one node: its record, one command
runner bound to its UUID, and one instance of each embedded agent. Agent
classes are resolved once per factory, but every sandbox gets its own
runner and its own agent instances.
"""

import asyncio
import importlib
import json
import os
import secrets
from collections.abc import Callable
from dataclasses import dataclass

from mockfleet.models.enums import SandboxState
from mockfleet.orchestrator.config import OrchestratorConfig, config
from mockfleet.sandbox.agents import AgentContext, RegistrationAgent, TaskAgent
from mockfleet.sandbox.runner import NodeCommandRunner
from mockfleet.utils.logger import get_logger

logger = get_logger(__name__)

SYSINFO_FILE = "sysinfo.json"
DISKS_FILE = "disks.json"
SETUP_STATE_FILE = "setup.json"


def load_factory(path: str) -> Callable:
    """Resolve a "package.module:attribute" reference."""
    module_name, sep, attr = path.partition(":")
    if not sep or not attr:
        raise ValueError(f"Invalid factory reference {path!r}, expected module:attr")
    module = importlib.import_module(module_name)
    return getattr(module, attr)


@dataclass
class SandboxHandle:
    """A running simulated node."""

    uuid: str
    node_dir: str
    sysinfo: dict
    runner: NodeCommandRunner
    task_agent: TaskAgent | None
    registration_agent: RegistrationAgent | None
    state: SandboxState = SandboxState.STARTING

    async def shutdown(self) -> None:
        """Stop both agents and drop the agent references."""
        if self.state == SandboxState.STOPPED:
            return
        if self.registration_agent is not None:
            await self.registration_agent.shutdown()
        # Task agents may opt in to a shutdown hook
        task_shutdown = getattr(self.task_agent, "shutdown", None)
        if task_shutdown is not None:
            await task_shutdown()
        self.registration_agent = None
        self.task_agent = None
        self.state = SandboxState.STOPPED
        logger.info(f"[CN {self.uuid}] sandbox stopped")


class SandboxFactory:
    """Builds SandboxHandles from node directories."""

    def __init__(
        self,
        cfg: OrchestratorConfig = config,
        sdc_config: dict | None = None,
        task_agent_factory: Callable[[AgentContext], TaskAgent] | None = None,
        registration_agent_factory: (
            Callable[[AgentContext], RegistrationAgent] | None
        ) = None,
    ):
        self.cfg = cfg
        self.sdc_config = sdc_config if sdc_config is not None else {}
        self.task_agent_factory = task_agent_factory or load_factory(
            cfg.TASK_AGENT_FACTORY
        )
        self.registration_agent_factory = registration_agent_factory or load_factory(
            cfg.REGISTRATION_AGENT_FACTORY
        )

    def build_context(self, uuid: str, node_dir: str) -> AgentContext:
        return AgentContext(
            uuid=uuid,
            node_dir=node_dir,
            sysinfo_file=os.path.join(node_dir, SYSINFO_FILE),
            setup_state_file=os.path.join(node_dir, SETUP_STATE_FILE),
            startup_file=os.path.join(
                self.cfg.TMP_DIR, f"{uuid}.tmp-{secrets.token_hex(4)}"
            ),
            task_log_dir=self.cfg.get_task_log_dir(uuid),
            runner=NodeCommandRunner(uuid),
            sdc_config=self.sdc_config,
        )

    async def instantiate(self, uuid: str, node_dir: str) -> SandboxHandle:
        """
        Start the simulation of one node.

        Raises:
            OSError: sysinfo.json cannot be read.
            json.JSONDecodeError: sysinfo.json is not valid JSON.
        """
        logger.info(f"[CN {uuid}] starting sandbox")
        ctx = self.build_context(uuid, node_dir)
        sysinfo = await asyncio.to_thread(_read_json, ctx.sysinfo_file)

        task_agent = self.task_agent_factory(ctx)
        registration_agent = self.registration_agent_factory(ctx)

        handle = SandboxHandle(
            uuid=uuid,
            node_dir=node_dir,
            sysinfo=sysinfo,
            runner=ctx.runner,
            task_agent=task_agent,
            registration_agent=registration_agent,
        )

        try:
            await task_agent.start()
            await registration_agent.start()
        except BaseException:
            logger.error(f"[CN {uuid}] agent failed to start, stopping sandbox")
            await handle.shutdown()
            raise
        handle.state = SandboxState.RUNNING
        return handle


def _read_json(path: str):
    with open(path) as f:
        return json.load(f)
