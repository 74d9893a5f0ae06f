"""
Per-device worker.

The worker owns one device's running configuration and its control channel.
The telemetry session itself lives outside this package; what matters here
is that reload commands are applied according to the hot-apply policy and
that terminate commands end the worker.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from .core.config import ConfigError, DeviceConfig, load_config
from .core.contracts import WorkerCommand
from .core.registry import WorkerHandle
from .core.validator import apply_change, evaluate_change, serialize

logger = logging.getLogger(__name__)


class DeviceWorker:
    """Consume control commands for one device config file."""

    def __init__(self, file: str | Path, *, queue_size: int = 16) -> None:
        self.file = str(file)
        self._queue_size = queue_size
        self._config: DeviceConfig | None = None
        self._handle: WorkerHandle | None = None

    @property
    def config(self) -> DeviceConfig:
        if self._config is None:
            raise RuntimeError(f"Worker for {self.file} has not been started.")
        return self._config

    @property
    def handle(self) -> WorkerHandle:
        if self._handle is None:
            raise RuntimeError(f"Worker for {self.file} has not been started.")
        return self._handle

    async def start(self) -> WorkerHandle:
        """Load the initial config and launch the command loop."""
        self._config = load_config(self.file)
        self._log_running_config()
        channel: asyncio.Queue[WorkerCommand] = asyncio.Queue(maxsize=self._queue_size)
        self._handle = WorkerHandle(self.file, channel)
        self._handle.task = asyncio.create_task(self._run(), name=f"telemon-worker:{self.file}")
        logger.info("Worker started for %s (%s:%d)", self.file, self.config.host, self.config.port)
        return self._handle

    def apply_reload(self) -> None:
        """Re-read the config file and hot-apply it if the policy allows."""
        handle = self.handle
        try:
            proposed = load_config(self.file)
        except ConfigError as exc:
            handle.last_error = str(exc)
            logger.warning(
                "Config parsing error for %s, keeping running config: %s", self.file, exc
            )
            return

        decision = evaluate_change(self.config, proposed)
        if decision.outcome == "unchanged":
            handle.last_error = None
            logger.debug("No config change for %s", self.file)
            return
        if decision.outcome == "rejected":
            handle.last_error = (
                f"restart required for changed fields: {', '.join(decision.blocking)}"
            )
            logger.warning(
                "Ignoring config change for %s; only paths can change without restart (%s)",
                self.file,
                ", ".join(decision.blocking),
            )
            return

        self._config = apply_change(self.config, proposed)
        handle.last_error = None
        logger.info("Config has been updated for %s (%d paths)", self.file, len(self.config.paths))
        self._log_running_config()

    async def _run(self) -> None:
        channel = self.handle.channel
        while True:
            command = await channel.get()
            try:
                if command.kind == "terminate":
                    logger.info("Worker for %s received terminate; exiting.", self.file)
                    return
                self.apply_reload()
            except Exception as exc:
                self.handle.last_error = str(exc) or exc.__class__.__name__
                logger.exception("Reload failed for %s; keeping running config.", self.file)
            finally:
                channel.task_done()

    def _log_running_config(self) -> None:
        level = logging.INFO if self.config.verbose else logging.DEBUG
        if logger.isEnabledFor(level):
            logger.log(
                level,
                "Running config of %s:\n%s",
                self.file,
                serialize(self.config).decode("utf-8"),
            )


async def spawn_worker(file: str, *, queue_size: int = 16) -> WorkerHandle:
    """Start a DeviceWorker for ``file`` and return its handle."""
    return await DeviceWorker(file, queue_size=queue_size).start()


__all__ = ["DeviceWorker", "spawn_worker"]
