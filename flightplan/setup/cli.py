#!/usr/bin/env python3
"""
Flightplan Setup CLI

    flightplan-setup [workspace]

Environment:
    WORKSPACE            workspace path when no argument is given
    FLIGHTPLAN_CONFIG    inline JSON setup plan (else <workspace>/flightplan.json)
    SECRETS_JSON         JSON object of secrets available to ``${NAME}`` in env
    KEEP_ALIVE           "true" keeps the process alive while the dev server runs
    GATEWAY_URL, WEBHOOK_SECRET, MISSION_ID
                         mirror progress to the Gateway when all are set
"""

import argparse
import asyncio
import json
import os
import sys
from typing import Dict, List, Optional

from dotenv import load_dotenv

from .event_sender import SetupEventSender
from .runner import SetupRunner
from .status_store import SetupState, SetupStatus
from ..utils.logger import configure_logging, get_logger

logger = get_logger(__name__)

DEFAULT_LOG_FILE = "/tmp/flightplan-setup.log"


def parse_secrets(raw: Optional[str]) -> Dict[str, str]:
    """
    Raises:
        ValueError: ``raw`` is not a JSON object
    """
    if not raw:
        return {}
    secrets = json.loads(raw)
    if not isinstance(secrets, dict):
        raise ValueError("SECRETS_JSON must be a JSON object")
    return {str(k): str(v) for k, v in secrets.items()}


def print_summary(status: SetupStatus) -> None:
    print("=" * 50)
    if status.status is SetupState.READY:
        print("Setup complete")
    else:
        print(f"Setup failed: {status.error}")
        if status.step:
            print(f"  During: {status.step}")
    for service in status.services:
        print(f"  {service.name}: {service.url}")
    if status.dev_server is not None:
        print(f"  Dev server: http://localhost:{status.dev_server.port} (pid {status.dev_server.pid})")
    print("=" * 50)


async def run_setup(workspace: str, secrets: Dict[str, str], keep_alive: bool) -> int:
    sender = SetupEventSender.from_env()
    runner = SetupRunner(workspace, sender=sender, secrets=secrets)
    try:
        status = await runner.run()
        print_summary(status)
        if status.status is not SetupState.READY:
            return 1
        if keep_alive and runner.dev_server is not None:
            await runner.keep_alive()
        return 0
    finally:
        await sender.close()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point. Returns the process exit code."""
    parser = argparse.ArgumentParser(
        prog="flightplan-setup",
        description="Prepare a Flightplan workspace: services, environment, setup commands, dev server",
    )
    parser.add_argument("workspace", nargs="?", default=None, help="Workspace path (default: $WORKSPACE)")
    parser.add_argument("--env-file", default=None, help="Path of a .env file to load")
    parser.add_argument("--log-file", default=DEFAULT_LOG_FILE, help=f"Log file (default: {DEFAULT_LOG_FILE})")

    args = parser.parse_args(argv)

    load_dotenv(args.env_file)
    configure_logging(os.environ.get("FLIGHTPLAN_LOG_LEVEL", "INFO"), log_file=args.log_file, process_role="setup")

    workspace = args.workspace or os.environ.get("WORKSPACE")
    if not workspace:
        print("Error: workspace path required (argument or WORKSPACE)", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return 1

    try:
        secrets = parse_secrets(os.environ.get("SECRETS_JSON"))
    except ValueError as e:
        print(f"Error: invalid SECRETS_JSON: {e}", file=sys.stderr)
        return 1

    keep_alive = os.environ.get("KEEP_ALIVE") == "true"
    logger.info("Starting setup", workspace=workspace, keep_alive=keep_alive)

    try:
        return asyncio.run(run_setup(workspace, secrets, keep_alive))
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 1


if __name__ == "__main__":
    sys.exit(main())
