"""
Core infrastructure for the telemon supervisor.

Exposes the device configuration model, the hot-apply policy, the worker
registry and the reconciliation machinery built on top of them.
"""

from .config import ConfigError, DeviceConfig, PathSpec, load_config, load_file_list
from .contracts import ReconciliationReport, ReloadCommand, TerminateCommand, WorkerCommand
from .reconciler import reconcile
from .registry import WorkerHandle, WorkerRegistry
from .settings import SupervisorSettings, load_settings
from .supervisor import Supervisor
from .validator import ChangeRejectedError, is_change_allowed, serialize

__all__ = [
    "ChangeRejectedError",
    "ConfigError",
    "DeviceConfig",
    "PathSpec",
    "ReconciliationReport",
    "ReloadCommand",
    "Supervisor",
    "SupervisorSettings",
    "TerminateCommand",
    "WorkerCommand",
    "WorkerHandle",
    "WorkerRegistry",
    "is_change_allowed",
    "load_config",
    "load_file_list",
    "load_settings",
    "reconcile",
    "serialize",
]
