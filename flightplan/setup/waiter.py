#!/usr/bin/env python3
"""
Setup Waiter

Polls the setup status document until it reaches a terminal state or the
timeout elapses. Run from the agent process or by a human operator:

    flightplan-wait [workspace] [--timeout=60]

Exit codes: 0 ready, 1 failed, 2 timeout.
"""

import argparse
import asyncio
import os
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from .status_store import SetupState, SetupStatus, StatusStore
from ..utils.logger import configure_logging, get_logger

logger = get_logger(__name__)

DEFAULT_WORKSPACE = "/workspace"
DEFAULT_TIMEOUT = 60.0
POLL_INTERVAL = 0.5


class WaitOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"

    @property
    def exit_code(self) -> int:
        return {WaitOutcome.SUCCESS: 0, WaitOutcome.FAILURE: 1, WaitOutcome.TIMEOUT: 2}[self]


@dataclass
class WaitResult:
    outcome: WaitOutcome
    status: Optional[SetupStatus] = None
    elapsed: float = 0.0

    @property
    def exit_code(self) -> int:
        return self.outcome.exit_code

    @property
    def error(self) -> Optional[str]:
        return self.status.error if self.status is not None else None


class SetupWaiter:
    """Waits on a :class:`StatusStore` written by another process."""

    def __init__(self, store: StatusStore, poll_interval: float = POLL_INTERVAL):
        self.store = store
        self.poll_interval = poll_interval

    async def wait(self, timeout: float = DEFAULT_TIMEOUT) -> WaitResult:
        """
        Poll until ``ready``/``failed`` or until ``timeout`` seconds pass.

        An absent or unreadable document counts as still running. Step
        changes are logged once each.
        """
        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + timeout
        last_step: Optional[str] = None

        while True:
            status = self.store.read()
            elapsed = loop.time() - started

            if status is not None:
                if status.status is SetupState.READY:
                    logger.info("Setup complete", elapsed=round(elapsed, 2))
                    return WaitResult(WaitOutcome.SUCCESS, status, elapsed)
                if status.status is SetupState.FAILED:
                    logger.error("Setup failed", error=status.error)
                    return WaitResult(WaitOutcome.FAILURE, status, elapsed)
                if status.step and status.step != last_step:
                    logger.info(f"Step: {status.step}")
                    last_step = status.step

            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.error(f"Timed out after {timeout}s waiting for setup")
                return WaitResult(WaitOutcome.TIMEOUT, status, loop.time() - started)
            await asyncio.sleep(min(self.poll_interval, remaining))


async def wait_for_setup(
    workspace: Union[str, Path],
    timeout: float = DEFAULT_TIMEOUT,
    poll_interval: float = POLL_INTERVAL,
) -> WaitResult:
    """Convenience wrapper: wait on the status document of ``workspace``."""
    waiter = SetupWaiter(StatusStore.for_workspace(workspace), poll_interval=poll_interval)
    return await waiter.wait(timeout)


def _print_result(result: WaitResult) -> None:
    if result.outcome is WaitOutcome.SUCCESS:
        print("✓ Setup complete")
        status = result.status
        if status.services:
            print("  Services:")
            for service in status.services:
                print(f"    {service.name}: {service.url}")
        if status.dev_server is not None:
            print(f"  Dev server: port {status.dev_server.port}")
    elif result.outcome is WaitOutcome.FAILURE:
        print(f"✗ Setup failed: {result.error or 'unknown error'}", file=sys.stderr)
    else:
        print(f"✗ Timed out after {result.elapsed:.1f}s waiting for setup", file=sys.stderr)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point. Returns the process exit code."""
    parser = argparse.ArgumentParser(
        prog="flightplan-wait",
        description="Wait for the Flightplan setup process to finish",
        epilog="Exit codes: 0 ready, 1 failed, 2 timeout",
    )
    parser.add_argument(
        "workspace",
        nargs="?",
        default=os.environ.get("WORKSPACE", DEFAULT_WORKSPACE),
        help="Workspace containing the status file (default: $WORKSPACE or /workspace)",
    )
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT, help="Seconds to wait (default: 60)")

    args = parser.parse_args(argv)

    configure_logging(os.environ.get("FLIGHTPLAN_LOG_LEVEL", "INFO"), process_role="wait")

    store = StatusStore.for_workspace(args.workspace)
    print(f"Waiting for setup: {store.path} (timeout {args.timeout:g}s)")

    result = asyncio.run(SetupWaiter(store).wait(args.timeout))
    _print_result(result)
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
