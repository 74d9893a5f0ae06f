from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from telemon.core.config import ConfigReadError
from telemon.core.contracts import RELOAD
from telemon.core.reconciler import reconcile
from telemon.core.registry import WorkerHandle, WorkerRegistry


class StubSpawner:
    """Spawn callable that hands out bare handles and records calls."""

    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.spawned: list[str] = []

    async def __call__(self, device: str) -> WorkerHandle:
        self.spawned.append(device)
        if device in self.failing:
            raise ConfigReadError(f"Unable to read {device}")
        return WorkerHandle(device, asyncio.Queue())


def _registry(*devices: str) -> WorkerRegistry:
    registry = WorkerRegistry()
    for device in devices:
        registry.put(device, WorkerHandle(device, asyncio.Queue()))
    return registry


def _commands(handle: WorkerHandle) -> list[str]:
    kinds: list[str] = []
    while not handle.channel.empty():
        kinds.append(handle.channel.get_nowait().kind)
    return kinds


@pytest.mark.asyncio
async def test_new_device_is_added_and_existing_reloaded(write_file_list) -> None:
    registry = _registry("d1")
    d1 = registry.get("d1")
    spawner = StubSpawner()

    report = await reconcile(write_file_list(["d1", "d2"]), registry, spawner)

    assert report.reloaded == ("d1",)
    assert report.added == ("d2",)
    assert report.removed == ()
    assert report.ok
    assert registry.snapshot() == {"d1", "d2"}
    assert registry.get("d1") is d1
    assert _commands(d1) == ["reload"]
    assert spawner.spawned == ["d2"]


@pytest.mark.asyncio
async def test_missing_device_is_terminated_and_removed(write_file_list) -> None:
    registry = _registry("d1", "d2")
    d1, d2 = registry.get("d1"), registry.get("d2")

    report = await reconcile(write_file_list(["d1"]), registry, StubSpawner())

    assert report.reloaded == ("d1",)
    assert report.removed == ("d2",)
    assert registry.snapshot() == {"d1"}
    assert _commands(d1) == ["reload"]
    assert _commands(d2) == ["terminate"]


@pytest.mark.asyncio
async def test_spawn_failure_is_reported_and_not_registered(write_file_list) -> None:
    registry = _registry("d1")
    spawner = StubSpawner(failing={"d3"})

    report = await reconcile(write_file_list(["d3", "d1", "d2"]), registry, spawner)

    assert "d3" in report.errors
    assert report.added == ("d2",)
    assert not report.ok
    assert registry.snapshot() == {"d1", "d2"}
    assert spawner.spawned == ["d3", "d2"]


@pytest.mark.asyncio
async def test_unreadable_list_leaves_registry_untouched(tmp_path: Path) -> None:
    registry = _registry("d1", "d2")
    broken = tmp_path / "devices.json"
    broken.write_text("{not json", encoding="utf-8")

    report = await reconcile(broken, registry, StubSpawner())

    assert report.list_error
    assert report.added == report.reloaded == report.removed == ()
    assert registry.snapshot() == {"d1", "d2"}
    assert all(handle.channel.empty() for _device, handle in registry.items())


@pytest.mark.asyncio
async def test_empty_list_does_not_tear_down_workers(write_file_list) -> None:
    registry = _registry("d1")

    report = await reconcile(write_file_list([]), registry, StubSpawner())

    assert report.list_error
    assert registry.snapshot() == {"d1"}


@pytest.mark.asyncio
async def test_each_device_gets_exactly_one_command(write_file_list) -> None:
    registry = _registry("a", "b", "c")
    handles = dict(registry.items())
    spawner = StubSpawner()

    report = await reconcile(write_file_list(["b", "d", "b", "a"]), registry, spawner)

    assert report.reloaded == ("b", "a")
    assert report.added == ("d",)
    assert report.removed == ("c",)
    assert registry.snapshot() == {"a", "b", "d"}
    assert _commands(handles["a"]) == ["reload"]
    assert _commands(handles["b"]) == ["reload"]
    assert _commands(handles["c"]) == ["terminate"]
    assert spawner.spawned == ["d"]


@pytest.mark.asyncio
async def test_unexpected_spawn_exception_is_recorded(write_file_list) -> None:
    async def explode(device: str) -> WorkerHandle:
        raise RuntimeError("boom")

    registry = WorkerRegistry()

    report = await reconcile(write_file_list(["d1"]), registry, explode)

    assert report.errors == {"d1": "boom"}
    assert len(registry) == 0


async def _dead_handle(device: str) -> WorkerHandle:
    async def crash() -> None:
        raise RuntimeError("worker died")

    channel: asyncio.Queue = asyncio.Queue(maxsize=1)
    channel.put_nowait(RELOAD)
    handle = WorkerHandle(device, channel, asyncio.create_task(crash()))
    await asyncio.wait([handle.task])
    return handle


@pytest.mark.asyncio
async def test_dead_worker_in_list_is_respawned(write_file_list) -> None:
    registry = WorkerRegistry()
    dead = await _dead_handle("d1")
    registry.put("d1", dead)
    spawner = StubSpawner()

    report = await asyncio.wait_for(
        reconcile(write_file_list(["d1"]), registry, spawner), timeout=1
    )

    assert report.added == ("d1",)
    assert report.reloaded == ()
    assert spawner.spawned == ["d1"]
    assert registry.get("d1") is not dead
    assert "worker died" in (dead.last_error or "")


@pytest.mark.asyncio
async def test_dead_worker_missing_from_list_is_dropped_without_send(write_file_list) -> None:
    registry = _registry("d1")
    dead = await _dead_handle("d2")
    registry.put("d2", dead)

    report = await asyncio.wait_for(
        reconcile(write_file_list(["d1"]), registry, StubSpawner()), timeout=1
    )

    assert report.removed == ("d2",)
    assert registry.snapshot() == {"d1"}
    assert _commands(dead) == ["reload"]
