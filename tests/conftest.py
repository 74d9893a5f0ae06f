from __future__ import annotations

import copy
import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

BASE_DEVICE: dict[str, Any] = {
    "host": "10.0.0.1",
    "port": 32767,
    "user": "lab",
    "password": "lab123",
    "cid": "telemon-lab",
    "meta": False,
    "eos": True,
    "api": {"port": 7070},
    "grpc": {"ws": 0},
    "tls": {"clientcrt": "", "clientkey": "", "ca": "", "servername": ""},
    "influx": {"server": "127.0.0.1", "port": 8086, "dbname": "lab", "measurement": "mx"},
    "paths": [
        {"path": "/interfaces", "freq": 2000},
        {"path": "/bgp", "freq": 10000, "mode": "on-change"},
    ],
    "log": {"file": "lab.log", "periodic-stats": 0, "verbose": False},
    "vendor": {"name": "juniper", "remove-namespace": True, "schema": [{"file": "a.yang"}]},
}


def write_json(path: Path, data: Any) -> Path:
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path


@pytest.fixture
def device_document() -> dict[str, Any]:
    """Fresh copy of a representative device document."""

    return copy.deepcopy(BASE_DEVICE)


@pytest.fixture
def write_device(tmp_path: Path) -> Callable[..., Path]:
    """
    Write a device config into the temporary directory.

    Keyword overrides replace top-level keys of the base document.
    """

    def _write(name: str, **overrides: Any) -> Path:
        document = copy.deepcopy(BASE_DEVICE)
        document.update(overrides)
        return write_json(tmp_path / f"{name}.json", document)

    return _write


@pytest.fixture
def write_file_list(tmp_path: Path) -> Callable[[list[str]], Path]:
    def _write(files: list[str]) -> Path:
        return write_json(tmp_path / "devices.json", {"config_file_list": files})

    return _write
