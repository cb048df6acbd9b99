"""
Flightplan Setup - workspace preparation process

Core Components:
- StatusStore: atomically replaced setup status document
- SetupRunner: provisions services and runs the project's setup steps
- SetupWaiter: polls the status document from another process
- SetupEventSender: mirrors setup progress to the Gateway
"""

from .event_sender import SetupEventSender
from .plan import DevServerSpec, ServiceSpec, SetupPlan
from .runner import SetupRunner, write_env_vars
from .services import LocalServiceProvisioner, wait_for_port
from .status_store import (
    STATUS_FILE_NAME,
    DevServerInfo,
    ServiceInstance,
    SetupState,
    SetupStatus,
    StatusStore,
)
from .waiter import SetupWaiter, WaitOutcome, WaitResult, wait_for_setup

__all__ = [
    "SetupEventSender",
    "DevServerSpec",
    "ServiceSpec",
    "SetupPlan",
    "SetupRunner",
    "write_env_vars",
    "LocalServiceProvisioner",
    "wait_for_port",
    "STATUS_FILE_NAME",
    "DevServerInfo",
    "ServiceInstance",
    "SetupState",
    "SetupStatus",
    "StatusStore",
    "SetupWaiter",
    "WaitOutcome",
    "WaitResult",
    "wait_for_setup",
]
