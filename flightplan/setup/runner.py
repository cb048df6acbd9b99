"""
Setup Runner

Prepares a workspace before the agent starts: provisions services, writes
the environment, runs the project's setup commands and optionally starts a
dev server. Every step is published to the :class:`StatusStore` (and
mirrored to the Gateway) so waiters in other processes can follow along:

    initializing
    installing <service>        (per service)
    configuring environment
    setup command <i>/<n>       (per command)
    starting dev server
    waiting for dev server
    -> ready | failed

The terminal status is written exactly once.
"""

import asyncio
import os
import re
import shutil
import signal
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

from dotenv import dotenv_values

from .event_sender import SetupEventSender
from .plan import SetupPlan
from .services import LocalServiceProvisioner, Provisioner, env_var_for, wait_for_port
from .status_store import DevServerInfo, SetupState, SetupStatus, StatusStore
from ..errors import SetupError
from ..runner.types import utc_timestamp
from ..utils.logger import get_logger

logger = get_logger(__name__)

ENV_FILE_NAME = ".env"
ENV_HEADER = "# Flightplan-managed environment variables"

# Connection URLs that may already be provided by the sandbox
PRESET_SERVICE_VARS = ("POSTGRES_URL", "REDIS_URL", "DATABASE_URL")

_NEEDS_QUOTES = re.compile(r"[\s\"'$`\\]")


# ============================================
# .env handling
# ============================================


def format_env_value(value: str) -> str:
    """Quote values that a dotenv parser would otherwise split or expand."""
    if not _NEEDS_QUOTES.search(value):
        return value
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def write_env_vars(path: Union[str, Path], env: Mapping[str, str]) -> List[str]:
    """
    Append ``env`` to the dotenv file at ``path``.

    Keys already defined in the file are left untouched.

    Returns:
        The keys that were written
    """
    path = Path(path)
    existing = path.read_text(encoding="utf-8") if path.exists() else ""
    defined = set(dotenv_values(path)) if existing else set()

    added = [key for key in env if key not in defined]
    if not added:
        return []

    lines = []
    if existing and not existing.endswith("\n"):
        lines.append("")
    if ENV_HEADER not in existing:
        lines.append(ENV_HEADER)
    lines.extend(f"{key}={format_env_value(env[key])}" for key in added)

    with path.open("a", encoding="utf-8") as handle:
        handle.write("\n".join(lines) + "\n")
    return added


# ============================================
# Runner
# ============================================


class SetupRunner:
    """Runs one workspace setup and publishes its progress."""

    def __init__(
        self,
        workspace: Union[str, Path],
        plan: Optional[SetupPlan] = None,
        store: Optional[StatusStore] = None,
        sender: Optional[SetupEventSender] = None,
        provisioner: Optional[Provisioner] = None,
        secrets: Optional[Mapping[str, str]] = None,
        env: Optional[Mapping[str, str]] = None,
    ):
        self.workspace = Path(workspace)
        self.plan = plan
        self.store = store or StatusStore.for_workspace(self.workspace)
        self.sender = sender or SetupEventSender(None)
        self._env = dict(os.environ if env is None else env)
        self._provisioner = provisioner or LocalServiceProvisioner(self._env)
        self._secrets = dict(secrets or {})

        self.status = SetupStatus()
        self.dev_server: Optional[asyncio.subprocess.Process] = None

    async def run(self) -> SetupStatus:
        """
        Run every step. Never raises for step failures: the returned status
        is ``failed`` and carries the error.
        """
        context: Dict[str, str] = dict(self._secrets)
        for name in PRESET_SERVICE_VARS:
            if self._env.get(name):
                context[name] = self._env[name]

        try:
            await self._step("initializing")
            if self.plan is None:
                self.plan = SetupPlan.load(self.workspace, self._env)

            service_vars: Dict[str, str] = {}
            for spec in self.plan.services:
                await self._step(f"installing {spec.name}")
                instance = await self._provisioner(spec)
                self.status.services.append(instance)
                service_vars[env_var_for(spec)] = instance.url
                logger.info(f"Service ready: {spec.name}", url=instance.url, port=instance.port)
            context.update(service_vars)

            await self._step("configuring environment")
            self._configure_environment(service_vars, context)

            total = len(self.plan.setup_commands)
            for index, command in enumerate(self.plan.setup_commands, start=1):
                await self._step(f"setup command {index}/{total}")
                await self._run_command(command)

            dev_server = self.plan.dev_server
            if dev_server is not None:
                await self._step("starting dev server")
                self.dev_server = await self._start_dev_server(dev_server.command)
                self.status.dev_server = DevServerInfo(port=dev_server.port, pid=self.dev_server.pid)

                await self._step("waiting for dev server")
                if not await wait_for_port(dev_server.port, dev_server.timeout):
                    raise SetupError(
                        f"Dev server did not open port {dev_server.port} within {dev_server.timeout:g}s",
                        step=self.status.step,
                    )

            self.status.status = SetupState.READY
            self.status.step = None
            await self._publish()
            logger.info("Setup complete", services=len(self.status.services))

        except Exception as e:
            logger.error("Setup failed", step=self.status.step, error=str(e), exc_info=True)
            self.status.status = SetupState.FAILED
            self.status.error = str(e) or type(e).__name__
            await self._publish()
            await self.stop_dev_server()

        return self.status

    async def _step(self, step: str) -> None:
        logger.info(f"Step: {step}")
        self.status.step = step
        await self._publish()

    async def _publish(self) -> None:
        self.status.timestamp = utc_timestamp()
        self.store.write(self.status)
        await self.sender.send(self.status)

    def _configure_environment(self, service_vars: Dict[str, str], context: Dict[str, str]) -> None:
        env_path = self.workspace / ENV_FILE_NAME

        if self.plan.env_file:
            source = self.workspace / self.plan.env_file
            if source.exists():
                shutil.copyfile(source, env_path)
                logger.info(f"Copied {self.plan.env_file} to {ENV_FILE_NAME}")
            else:
                logger.warning(f"Env file not found, skipping: {self.plan.env_file}")

        resolved = self.plan.resolve_env(context)
        self.status.env = resolved

        managed = {**service_vars, **resolved}
        if managed:
            written = write_env_vars(env_path, managed)
            logger.info("Environment written", path=str(env_path), keys=written)

        # Setup commands and the dev server see the same environment
        self._env.update(managed)

    async def _run_command(self, command: str) -> None:
        logger.info(f"Running: {command}")
        process = await asyncio.create_subprocess_exec(
            "bash", "-c", command, cwd=str(self.workspace), env=self._env
        )
        returncode = await process.wait()
        if returncode != 0:
            raise SetupError(f"Command failed with code {returncode}: {command}", step=self.status.step)

    async def _start_dev_server(self, command: str) -> asyncio.subprocess.Process:
        logger.info(f"Starting dev server: {command}")
        return await asyncio.create_subprocess_exec(
            "bash",
            "-c",
            command,
            cwd=str(self.workspace),
            env=self._env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
            start_new_session=True,
        )

    async def stop_dev_server(self) -> None:
        process = self.dev_server
        if process is None or process.returncode is not None:
            return
        logger.info("Stopping dev server", pid=process.pid)
        process.terminate()
        try:
            await asyncio.wait_for(process.wait(), timeout=5)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()

    async def keep_alive(self) -> Optional[int]:
        """
        Block while the dev server runs. SIGINT/SIGTERM stop it.

        Returns:
            The dev server's exit code, or None when there is no dev server
        """
        process = self.dev_server
        if process is None:
            return None

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, process.terminate)
        try:
            logger.info("Keeping setup process alive for dev server", pid=process.pid)
            return await process.wait()
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)


__all__ = [
    "ENV_FILE_NAME",
    "ENV_HEADER",
    "format_env_value",
    "write_env_vars",
    "SetupRunner",
]
