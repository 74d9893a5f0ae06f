"""
Contracts shared by the supervisor and its device workers.

Workers are driven exclusively through the command payloads below, which
travel over a per-worker control channel. Reconciliation passes produce a
report so operators (and tests) can see exactly what a reload did.
"""

from __future__ import annotations

import datetime as dt
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class BasePayload(BaseModel):
    """Base class for command and status payloads."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class ReloadCommand(BasePayload):
    """Re-read the worker's config file and hot-apply what the policy allows."""

    kind: Literal["reload"] = "reload"


class TerminateCommand(BasePayload):
    """Drain and exit. Advisory: the sender does not wait for confirmation."""

    kind: Literal["terminate"] = "terminate"


WorkerCommand = Annotated[ReloadCommand | TerminateCommand, Field(discriminator="kind")]

RELOAD = ReloadCommand()
TERMINATE = TerminateCommand()


class ReconciliationReport(BasePayload):
    """Outcome of one reconciliation pass."""

    finished_utc: dt.datetime = Field(default_factory=lambda: dt.datetime.now(tz=dt.UTC))
    added: tuple[str, ...] = Field(default=(), description="Devices that got a new worker.")
    reloaded: tuple[str, ...] = Field(default=(), description="Devices sent a reload command.")
    removed: tuple[str, ...] = Field(
        default=(), description="Devices terminated and dropped from the registry."
    )
    errors: dict[str, str] = Field(
        default_factory=dict, description="Per-device failures, keyed by config file."
    )
    list_error: str | None = Field(
        default=None, description="Set when the desired file list could not be loaded."
    )

    @property
    def ok(self) -> bool:
        return self.list_error is None and not self.errors


class WorkerStatus(BasePayload):
    """Point-in-time view of one registered worker."""

    device: str
    running: bool
    last_error: str | None = None


__all__ = [
    "RELOAD",
    "TERMINATE",
    "BasePayload",
    "ReconciliationReport",
    "ReloadCommand",
    "TerminateCommand",
    "WorkerCommand",
    "WorkerStatus",
]
