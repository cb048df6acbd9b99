#!/usr/bin/env python3
"""
Flightplan Runner CLI

Command-line entry point for the agent process.
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from dotenv import load_dotenv

from .config import RunnerConfig
from .mission import run_mission
from ..errors import ConfigError
from ..utils.logger import configure_logging, get_logger

logger = get_logger(__name__)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point. Returns the process exit code."""
    parser = argparse.ArgumentParser(description="Flightplan mission runner")
    parser.add_argument("--env-file", default=None, help="Path of a .env file to load")
    parser.add_argument("--log-level", default=None, help="Log level (overrides FLIGHTPLAN_LOG_LEVEL)")
    parser.add_argument("--log-file", default=None, help="Optional rotating log file")

    args = parser.parse_args(argv)

    load_dotenv(args.env_file)

    # Load configuration
    try:
        config = RunnerConfig.from_env()
        config.validate()
    except (ConfigError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    configure_logging(args.log_level or config.log_level, log_file=args.log_file, process_role="runner")

    try:
        asyncio.run(run_mission(config))
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 1
    except Exception as e:
        logger.error("Mission failed", error=str(e))
        return 1

    logger.info("Completed successfully")
    return 0


if __name__ == "__main__":
    sys.exit(main())
