"""
Reconciliation of the desired device list against the running workers.

One pass loads the file-list document, reloads workers that are already
running, spawns workers for new entries and terminates workers whose entry
disappeared. The pass is not reentrant; callers must serialize triggers.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

from .config import ConfigError, load_file_list
from .contracts import RELOAD, TERMINATE, ReconciliationReport
from .registry import WorkerHandle, WorkerRegistry

logger = logging.getLogger(__name__)

SpawnWorker = Callable[[str], Awaitable[WorkerHandle]]


async def reconcile(
    desired_list_path: str | Path,
    registry: WorkerRegistry,
    spawn: SpawnWorker,
) -> ReconciliationReport:
    """
    Bring ``registry`` in line with the file list at ``desired_list_path``.

    A list that cannot be loaded aborts the pass before anything is touched,
    so a broken edit never tears down running workers. Spawn failures are
    reported per device and the device stays absent until the next pass.
    """

    try:
        file_list = load_file_list(desired_list_path)
    except ConfigError as exc:
        logger.error(
            "Error in parsing the new config file list %s, continuing with older config: %s",
            desired_list_path,
            exc,
        )
        return ReconciliationReport(list_error=str(exc))

    desired: dict[str, None] = dict.fromkeys(file_list.filenames)
    if len(desired) != len(file_list.filenames):
        logger.warning("Duplicate entries in %s are processed once.", desired_list_path)

    added: list[str] = []
    reloaded: list[str] = []
    removed: list[str] = []
    errors: dict[str, str] = {}

    for device in desired:
        handle = registry.get(device)
        if handle is not None and handle.done:
            logger.warning("Worker for %s is gone (%s); respawning.", device, handle.exit_reason())
            registry.remove(device)
            handle = None
        if handle is not None:
            logger.info("Sending reload to %s", device)
            await handle.send(RELOAD)
            reloaded.append(device)
            continue
        logger.info("Adding a new device %s", device)
        try:
            handle = await spawn(device)
        except ConfigError as exc:
            logger.error("Failed to start worker for %s: %s", device, exc)
            errors[device] = str(exc)
            continue
        except Exception as exc:
            logger.exception("Worker for %s crashed during startup.", device)
            errors[device] = str(exc) or exc.__class__.__name__
            continue
        registry.put(device, handle)
        added.append(device)

    for device, handle in registry.items():
        if device in desired:
            continue
        logger.info("Deleting device %s", device)
        if not handle.done:
            await handle.send(TERMINATE)
        registry.remove(device)
        removed.append(device)

    report = ReconciliationReport(
        added=tuple(added),
        reloaded=tuple(reloaded),
        removed=tuple(removed),
        errors=errors,
    )
    logger.info(
        "Reconciliation finished: %d added, %d reloaded, %d removed, %d errors",
        len(report.added),
        len(report.reloaded),
        len(report.removed),
        len(report.errors),
    )
    return report


__all__ = ["SpawnWorker", "reconcile"]
