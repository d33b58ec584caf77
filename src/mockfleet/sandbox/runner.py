"""
Per-node command runner.

Every simulated node shares the orchestrator process, so agents cannot
learn which node they act for from their environment. Each sandbox hands
its agents a NodeCommandRunner bound to the node's UUID instead; every
process started through it carries MOCKCN_SERVER_UUID=<uuid>, which the
mock system tools read to find the node's state directory.

Agents must start processes only through their runner. Nothing in here
touches global state, so any number of runners can coexist.
"""

import asyncio
import os
import subprocess
from dataclasses import dataclass

from mockfleet.utils.logger import get_logger

logger = get_logger(__name__)

SERVER_UUID_ENV = "MOCKCN_SERVER_UUID"


@dataclass
class CommandResult:
    """Outcome of a finished command."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class NodeCommandRunner:
    """
    Starts processes on behalf of one simulated node.

    Args:
        uuid: Node UUID injected into every spawned process.
        base_env: Environment used when a call passes none. Defaults to the
            orchestrator's environment at call time.
    """

    def __init__(self, uuid: str, base_env: dict[str, str] | None = None):
        self.uuid = uuid
        self.base_env = base_env

    def build_env(self, env: dict[str, str] | None = None) -> dict[str, str]:
        """Caller env (or the base env) with the node UUID merged over it."""
        if env is None:
            env = self.base_env if self.base_env is not None else os.environ
        merged = dict(env)
        merged[SERVER_UUID_ENV] = self.uuid
        return merged

    # =========================================================================
    # Async Execution
    # =========================================================================

    async def exec(
        self,
        command: str,
        env: dict[str, str] | None = None,
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """Run a shell command line to completion."""
        logger.debug(f"[CN {self.uuid}] exec: {command}")
        proc = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=self.build_env(env),
            cwd=cwd,
        )
        return await self._collect(proc, timeout)

    async def exec_file(
        self,
        argv: list[str],
        env: dict[str, str] | None = None,
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """Run a program (no shell) to completion."""
        logger.debug(f"[CN {self.uuid}] exec_file: {' '.join(argv)}")
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=self.build_env(env),
            cwd=cwd,
        )
        return await self._collect(proc, timeout)

    async def spawn(
        self,
        argv: list[str],
        env: dict[str, str] | None = None,
        cwd: str | None = None,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.DEVNULL,
    ) -> asyncio.subprocess.Process:
        """Start a long-running process and return it without waiting."""
        logger.debug(f"[CN {self.uuid}] spawn: {' '.join(argv)}")
        return await asyncio.create_subprocess_exec(
            *argv,
            stdout=stdout,
            stderr=stderr,
            env=self.build_env(env),
            cwd=cwd,
        )

    async def _collect(
        self, proc: asyncio.subprocess.Process, timeout: float | None
    ) -> CommandResult:
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise

        return CommandResult(
            returncode=proc.returncode,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )

    # =========================================================================
    # Blocking Execution
    # =========================================================================

    def run_sync(
        self,
        argv: list[str],
        env: dict[str, str] | None = None,
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """Blocking variant of exec_file, for agent code running in a thread."""
        logger.debug(f"[CN {self.uuid}] run_sync: {' '.join(argv)}")
        completed = subprocess.run(
            argv,
            capture_output=True,
            text=True,
            env=self.build_env(env),
            cwd=cwd,
            timeout=timeout,
        )
        return CommandResult(
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )
