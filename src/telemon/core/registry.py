"""
Registry of live device workers.

The registry is owned by the supervisor and mutated only from the
reconciliation pass, which the supervisor serializes. It does no locking of
its own; other components should read it through ``snapshot()``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator

from .contracts import WorkerCommand

logger = logging.getLogger(__name__)


class WorkerHandle:
    """Control channel plus bookkeeping for one running worker."""

    def __init__(
        self,
        device: str,
        channel: asyncio.Queue[WorkerCommand],
        task: asyncio.Task[None] | None = None,
    ) -> None:
        self.device = device
        self.channel = channel
        self.task = task
        self.last_error: str | None = None

    async def send(self, command: WorkerCommand) -> None:
        """
        Deliver a command in order. Waits while the channel is full, which
        stalls the caller until the worker catches up.
        """
        if self.channel.full():
            logger.warning("Control channel for %s is full; waiting for the worker.", self.device)
        await self.channel.put(command)
        logger.debug("Sent %s to %s", command.kind, self.device)

    @property
    def done(self) -> bool:
        return self.task is not None and self.task.done()

    def exit_reason(self) -> str:
        """Describe why a finished worker task ended and record it as the last error."""
        if self.task is None or not self.task.done():
            return ""
        if self.task.cancelled():
            reason = "worker task was cancelled"
        elif (exc := self.task.exception()) is not None:
            reason = f"worker task crashed: {exc!r}"
        else:
            reason = self.last_error or "worker task exited"
        self.last_error = reason
        return reason

    def __repr__(self) -> str:
        return f"WorkerHandle(device={self.device!r}, done={self.done})"


class WorkerRegistry:
    """Mapping from config file identifier to the worker running it."""

    def __init__(self) -> None:
        self._handles: dict[str, WorkerHandle] = {}

    def get(self, device: str) -> WorkerHandle | None:
        return self._handles.get(device)

    def put(self, device: str, handle: WorkerHandle) -> None:
        if device in self._handles:
            raise ValueError(f"A worker is already registered for {device}")
        self._handles[device] = handle

    def remove(self, device: str) -> WorkerHandle | None:
        return self._handles.pop(device, None)

    def keys(self) -> list[str]:
        """Registered identifiers in insertion order."""
        return list(self._handles)

    def items(self) -> list[tuple[str, WorkerHandle]]:
        return list(self._handles.items())

    def snapshot(self) -> frozenset[str]:
        """Point-in-time copy of the registered identifiers."""
        return frozenset(self._handles)

    def __contains__(self, device: object) -> bool:
        return device in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())


__all__ = ["WorkerHandle", "WorkerRegistry"]
