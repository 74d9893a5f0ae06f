"""
Lifecycle coordinator for device workers.

The supervisor owns the worker registry, starts the initial fleet and turns
reload triggers into reconciliation passes. Triggers are serialized with a
lock: a trigger that arrives mid-pass waits for the running pass to finish.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
from collections.abc import Sequence
from pathlib import Path

from .config import EmptyConfigListError
from .contracts import RELOAD, TERMINATE, ReconciliationReport, WorkerStatus
from .reconciler import SpawnWorker, reconcile
from .registry import WorkerRegistry
from .settings import SupervisorSettings

logger = logging.getLogger(__name__)


class Supervisor:
    """Manage device worker lifecycle and configuration reloads."""

    def __init__(
        self,
        settings: SupervisorSettings | None = None,
        *,
        spawn: SpawnWorker | None = None,
    ) -> None:
        self.settings = settings or SupervisorSettings()
        self.registry = WorkerRegistry()
        self._spawn = spawn or self._default_spawn()
        self._config_file_list: Path | None = None
        self._reload_lock = asyncio.Lock()
        self._running = False
        self._last_report: ReconciliationReport | None = None

    def _default_spawn(self) -> SpawnWorker:
        from ..worker import spawn_worker

        return functools.partial(spawn_worker, queue_size=self.settings.control_queue_size)

    @property
    def running(self) -> bool:
        return self._running

    @property
    def last_report(self) -> ReconciliationReport | None:
        return self._last_report

    async def start(
        self,
        config_files: Sequence[str],
        *,
        config_file_list: str | Path | None = None,
    ) -> None:
        """
        Start one worker per config file. Any failure is fatal: workers that
        already started are terminated and the error propagates.
        """
        if self._running:
            logger.warning("Supervisor already running.")
            return
        if not config_files:
            raise EmptyConfigListError("Can not run without any config file")
        self._config_file_list = Path(config_file_list) if config_file_list else None
        for device in dict.fromkeys(config_files):
            try:
                handle = await self._spawn(device)
            except Exception:
                logger.error("Failed to start worker for %s; aborting startup.", device)
                await self._terminate_all()
                raise
            self.registry.put(device, handle)
        self._running = True
        logger.info("Supervisor started %d workers.", len(self.registry))

    async def reload(self) -> ReconciliationReport:
        """Handle one reload trigger."""
        async with self._reload_lock:
            if not self._running:
                logger.warning("Ignoring reload trigger; supervisor is not running.")
                return ReconciliationReport()
            if self._config_file_list is not None:
                report = await reconcile(self._config_file_list, self.registry, self._spawn)
            else:
                report = await self._reload_all()
            self._last_report = report
            return report

    async def stop(self) -> None:
        """Terminate every worker and wait briefly for them to exit."""
        if not self._running:
            logger.warning("Supervisor stop requested while not running.")
            return
        async with self._reload_lock:
            await self._terminate_all()
            self._running = False
        logger.info("Supervisor stopped.")

    def known_devices(self) -> frozenset[str]:
        """Point-in-time copy of the devices with a registered worker."""
        return self.registry.snapshot()

    def status(self) -> dict[str, WorkerStatus]:
        return {
            device: WorkerStatus(
                device=device, running=not handle.done, last_error=handle.last_error
            )
            for device, handle in self.registry.items()
        }

    async def _reload_all(self) -> ReconciliationReport:
        # Single-file mode: no list to diff against, every worker re-reads its own file.
        reloaded: list[str] = []
        errors: dict[str, str] = {}
        for device, handle in self.registry.items():
            if handle.done:
                errors[device] = handle.exit_reason()
                logger.error(
                    "Worker for %s is gone (%s); skipping reload.", device, errors[device]
                )
                continue
            logger.info("Sending reload to %s", device)
            await handle.send(RELOAD)
            reloaded.append(device)
        return ReconciliationReport(reloaded=tuple(reloaded), errors=errors)

    async def _terminate_all(self) -> None:
        tasks: list[asyncio.Task[None]] = []
        for device, handle in self.registry.items():
            self.registry.remove(device)
            if handle.done:
                continue
            await handle.send(TERMINATE)
            if handle.task is not None:
                tasks.append(handle.task)
        if not tasks:
            return
        _done, pending = await asyncio.wait(tasks, timeout=self.settings.shutdown_timeout_seconds)
        for task in pending:
            logger.warning("Worker %s did not exit in time; cancelling.", task.get_name())
            task.cancel()
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError):
                await task


__all__ = ["Supervisor"]
