"""
Embedded agent interfaces and the built-in agents.

Each sandbox runs one task agent and one registration agent. Both are
constructed by a factory taking a single AgentContext, so alternative
agents can be plugged in through the TASK_AGENT_FACTORY and
REGISTRATION_AGENT_FACTORY config options ("module:attribute").

Built-in agents:
    CommandTaskAgent          runs commands for the node, one log per task
    SysinfoRegistrationAgent  writes setup.json and periodically posts the
                              node's sysinfo to REGISTRATION_URL
"""

import asyncio
import datetime
import json
import os
import uuid as uuid_lib
from dataclasses import dataclass, field
from typing import Protocol

import httpx

from mockfleet.models.enums import SandboxState
from mockfleet.models.node_record import memory_info
from mockfleet.orchestrator.config import config
from mockfleet.sandbox.runner import CommandResult, NodeCommandRunner
from mockfleet.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class AgentContext:
    """Everything an agent instance knows about its node."""

    uuid: str
    node_dir: str
    sysinfo_file: str
    setup_state_file: str
    startup_file: str
    task_log_dir: str
    runner: NodeCommandRunner
    sdc_config: dict = field(default_factory=dict)


class TaskAgent(Protocol):
    """Executes work for a node. shutdown() is optional and called if present."""

    async def start(self) -> None: ...


class RegistrationAgent(Protocol):
    """Announces a node. Must stop all activity on shutdown()."""

    async def start(self) -> None: ...

    async def shutdown(self) -> None: ...


# =============================================================================
# Task Agent
# =============================================================================


class CommandTaskAgent:
    """Runs commands through the node's runner and keeps a log per task."""

    def __init__(self, ctx: AgentContext):
        self.ctx = ctx
        self.runner = ctx.runner

    async def start(self) -> None:
        await asyncio.to_thread(os.makedirs, self.ctx.task_log_dir, exist_ok=True)
        logger.info(f"[CN {self.ctx.uuid}] task agent started")

    async def run_task(
        self, task: str, argv: list[str], timeout: float | None = None
    ) -> CommandResult:
        """
        Run one task command.

        Args:
            task: Task name, used for the log file name.
            argv: Program and arguments.
            timeout: Optional limit in seconds.

        Returns:
            The command result. A non-zero exit is not an error here.
        """
        task_id = f"{task}-{uuid_lib.uuid4().hex[:8]}"
        started_at = datetime.datetime.now()
        logger.info(f"[CN {self.ctx.uuid}] [Task {task_id}] running {argv[0]}")

        result = await self.runner.exec_file(argv, timeout=timeout)

        entry = {
            "task": task,
            "task_id": task_id,
            "argv": argv,
            "started_at": started_at.isoformat(),
            "finished_at": datetime.datetime.now().isoformat(),
            "exit_code": result.returncode,
            "stdout": result.stdout,
            "stderr": result.stderr,
        }
        log_path = os.path.join(self.ctx.task_log_dir, f"{task_id}.log")
        await asyncio.to_thread(_write_json, log_path, entry)

        logger.info(
            f"[CN {self.ctx.uuid}] [Task {task_id}] finished with exit code "
            f"{result.returncode}"
        )
        return result


# =============================================================================
# Registration Agent
# =============================================================================


class SysinfoRegistrationAgent:
    """
    Keeps a node announced.

    On start it writes the node's setup state file (if absent) and its
    startup marker file. With a registration URL it then posts the sysinfo
    document every ``interval`` seconds; without one it stays idle.
    """

    def __init__(
        self,
        ctx: AgentContext,
        url: str | None = None,
        interval: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.ctx = ctx
        self.runner = ctx.runner
        self.url = config.REGISTRATION_URL if url is None else url
        self.interval = (
            config.REGISTRATION_INTERVAL_SECONDS if interval is None else interval
        )
        self.state = SandboxState.STARTING
        self.registrations = 0
        self.transport = transport
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        await asyncio.to_thread(self._write_state_files)

        if self.url:
            self._task = asyncio.create_task(
                self._register_loop(), name=f"register-{self.ctx.uuid}"
            )
        else:
            logger.debug(f"[CN {self.ctx.uuid}] no registration URL, idling")

        self.state = SandboxState.RUNNING
        logger.info(f"[CN {self.ctx.uuid}] registration agent started")

    async def shutdown(self) -> None:
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None

        try:
            await asyncio.to_thread(os.unlink, self.ctx.startup_file)
        except FileNotFoundError:
            pass

        self.runner = None
        self.state = SandboxState.STOPPED
        logger.info(f"[CN {self.ctx.uuid}] registration agent stopped")

    def _write_state_files(self) -> None:
        if not os.path.exists(self.ctx.setup_state_file):
            _write_json(
                self.ctx.setup_state_file,
                {
                    "complete": False,
                    "current_state": "unsetup",
                    "last_updated": datetime.datetime.now().isoformat(),
                },
            )
        with open(self.ctx.startup_file, "w") as f:
            f.write(f"{os.getpid()}\n")

    # =========================================================================
    # Registration Loop
    # =========================================================================

    async def _register_loop(self) -> None:
        while True:
            await self.register_once()
            await asyncio.sleep(self.interval)

    async def register_once(self) -> bool:
        """Post the current sysinfo once. Returns True on success."""
        try:
            sysinfo = await asyncio.to_thread(_read_json, self.ctx.sysinfo_file)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"[CN {self.ctx.uuid}] cannot read sysinfo: {e}")
            return False

        payload = {
            "uuid": self.ctx.uuid,
            "sysinfo": sysinfo,
            "memory": memory_info(sysinfo),
            "sdc_config": self.ctx.sdc_config,
        }

        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.post(self.url, json=payload, timeout=10.0)
                response.raise_for_status()

        except httpx.RequestError as e:
            logger.warning(f"[CN {self.ctx.uuid}] failed to register: {e}")
            return False

        except httpx.HTTPStatusError as e:
            logger.warning(
                f"[CN {self.ctx.uuid}] registration rejected: "
                f"{e.response.status_code} - {e.response.text}"
            )
            return False

        self.registrations += 1
        return True


# =============================================================================
# File Helpers
# =============================================================================


def _read_json(path: str):
    with open(path) as f:
        return json.load(f)


def _write_json(path: str, data) -> None:
    with open(path, "w") as f:
        json.dump(data, f, indent=2)
        f.write("\n")
