"""
telemon - supervisor for per-device telemetry monitoring workers

Keeps one worker per device config file and reconciles the fleet with an
editable config file list on SIGHUP, without restarting the process.
"""

__version__ = "0.1.0"

from telemon.core import DeviceConfig, Supervisor, SupervisorSettings, WorkerRegistry

__all__ = [
    "DeviceConfig",
    "Supervisor",
    "SupervisorSettings",
    "WorkerRegistry",
]
