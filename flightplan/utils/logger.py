"""
Flightplan Logging Framework

Logging shared by the runner, setup and wait processes. Every record is
stamped with the process role and the mission it belongs to, so lines from
the three sandbox processes can be told apart once they are interleaved in
the container log.

Usage:
    from flightplan.utils.logger import get_logger
    logger = get_logger(__name__)

    logger.info("Event delivered", event_type="agent:start", attempt=2)
    # 2025-01-04 12:00:00 | INFO     | runner m-42 | reporter.py:_deliver:88 | Event delivered | event_type=agent:start attempt=2
"""

import io
import logging
import logging.handlers
import os
import sys
from typing import Optional, Any, Dict


ROOT_LOGGER_NAME = "flightplan"
QUIET_LIBRARIES = ("aiohttp", "anthropic", "httpx", "sqlalchemy")

LINE_FORMAT = "%(asctime)s | %(levelname)-8s | %(process_role)s %(mission_id)s | %(location)s | %(message)s%(context_str)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


# =============================================================================
# Record stamping
# =============================================================================

class MissionFilter(logging.Filter):
    """Adds ``process_role`` and ``mission_id`` to every record."""

    def __init__(self, process_role: str, mission_id: Optional[str]):
        super().__init__()
        self.process_role = process_role
        self.mission_id = mission_id or "-"

    def filter(self, record: logging.LogRecord) -> bool:
        record.process_role = self.process_role
        record.mission_id = self.mission_id
        return True


class ContextFormatter(logging.Formatter):
    """Renders the call site and the structured ``key=value`` context."""

    def format(self, record: logging.LogRecord) -> str:
        for attr, default in (("process_role", "flightplan"), ("mission_id", "-")):
            if not hasattr(record, attr):
                setattr(record, attr, default)

        record.location = f"{record.filename}:{record.funcName}:{record.lineno}"

        context = getattr(record, "context", None) or {}
        pairs = " ".join(f"{key}={value}" for key, value in context.items())
        record.context_str = f" | {pairs}" if pairs else ""

        return super().format(record)


# =============================================================================
# Adapter
# =============================================================================

class FlightplanLogger(logging.LoggerAdapter):
    """
    Logger adapter taking structured context as keyword arguments.

    Anything that is not a standard ``logging`` keyword ends up in the
    record's ``context`` dict, after the adapter's own bound fields.
    """

    _PASSTHROUGH = {"exc_info", "stack_info", "stacklevel", "extra"}

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        context = dict(self.extra)
        for key in [k for k in kwargs if k not in self._PASSTHROUGH]:
            context[key] = kwargs.pop(key)

        extra = dict(kwargs.get("extra") or {})
        extra["context"] = context
        kwargs["extra"] = extra
        return msg, kwargs


# =============================================================================
# Setup
# =============================================================================

_configured = False


def configure_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    log_to_console: bool = True,
    process_role: str = "flightplan",
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 2,
) -> None:
    """
    Install handlers on the ``flightplan`` logger. Later calls are ignored.

    Args:
        log_level: Console threshold; unknown names fall back to INFO
        log_file: Rotating file that receives DEBUG and above
        log_to_console: Whether to log to stderr
        process_role: Short name of the process (runner, setup, wait)
    """
    global _configured

    if _configured:
        return

    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(logging.DEBUG)
    root.handlers.clear()

    stamp = MissionFilter(process_role, os.environ.get("MISSION_ID"))
    formatter = ContextFormatter(LINE_FORMAT, datefmt=DATE_FORMAT)
    handlers = []

    if log_to_console:
        if hasattr(sys.stderr, "reconfigure"):
            try:
                sys.stderr.reconfigure(errors="replace")
            except (ValueError, io.UnsupportedOperation):
                pass
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(level)
        handlers.append(console)

    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        rotating = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
        rotating.setLevel(logging.DEBUG)
        handlers.append(rotating)

    for handler in handlers:
        handler.addFilter(stamp)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True


def get_logger(name: Optional[str] = None, **bound: Any) -> FlightplanLogger:
    """Return an adapter under the ``flightplan`` hierarchy, optionally with bound context."""
    if not name:
        logger_name = ROOT_LOGGER_NAME
    elif name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        logger_name = name
    else:
        logger_name = f"{ROOT_LOGGER_NAME}.{name}"

    return FlightplanLogger(logging.getLogger(logger_name), bound)


__all__ = [
    "configure_logging",
    "get_logger",
    "FlightplanLogger",
    "ContextFormatter",
    "MissionFilter",
]
