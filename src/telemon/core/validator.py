"""
Hot-apply policy for running device configurations.

A worker may swap its subscription paths while it keeps streaming. Every
other setting (endpoint, credentials, TLS, batching, ...) needs a restart
of that worker, so a proposed document touching them is rejected.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from .config import ConfigError, DeviceConfig

COMPARED_FIELDS: tuple[str, ...] = (
    "port",
    "host",
    "user",
    "password",
    "cid",
    "meta",
    "eos",
    "api",
    "grpc",
    "tls",
    "influx",
    "paths",
    "log",
    "vendor",
)
CHANGE_EXEMPT_FIELDS: frozenset[str] = frozenset({"paths"})

ChangeOutcome = Literal["unchanged", "allowed", "rejected"]


class ChangeRejectedError(ConfigError):
    """A proposed live update touches fields that cannot change in place."""

    def __init__(self, fields: tuple[str, ...]) -> None:
        super().__init__(f"Config change rejected; restart required for: {', '.join(fields)}")
        self.fields = fields


@dataclass(frozen=True)
class ChangeDecision:
    outcome: ChangeOutcome
    changed: tuple[str, ...] = ()

    @property
    def allowed(self) -> bool:
        return self.outcome == "allowed"

    @property
    def blocking(self) -> tuple[str, ...]:
        """Changed fields that are not exempt from the restart rule."""
        return tuple(name for name in self.changed if name not in CHANGE_EXEMPT_FIELDS)


def serialize(config: DeviceConfig) -> bytes:
    """Pretty-printed JSON in declaration order, used for audit logs and comparisons."""
    return config.model_dump_json(indent=4, by_alias=True).encode("utf-8")


def changed_fields(running: DeviceConfig, proposed: DeviceConfig) -> tuple[str, ...]:
    """Return the top-level fields whose subtrees differ, in COMPARED_FIELDS order."""
    before = running.model_dump(mode="json")
    after = proposed.model_dump(mode="json")
    return tuple(name for name in COMPARED_FIELDS if before[name] != after[name])


def evaluate_change(running: DeviceConfig, proposed: DeviceConfig) -> ChangeDecision:
    changed = changed_fields(running, proposed)
    if not changed:
        return ChangeDecision(outcome="unchanged")
    if all(name in CHANGE_EXEMPT_FIELDS for name in changed):
        return ChangeDecision(outcome="allowed", changed=changed)
    return ChangeDecision(outcome="rejected", changed=changed)


def is_change_allowed(running: DeviceConfig, proposed: DeviceConfig) -> bool:
    """
    True only when the documents differ and the difference is confined to
    the subscription paths. Identical documents yield False: nothing to apply.
    """
    return evaluate_change(running, proposed).allowed


def validate_config_change(running: DeviceConfig, proposed: DeviceConfig) -> ChangeDecision:
    """Like evaluate_change, but raises ChangeRejectedError for rejected proposals."""
    decision = evaluate_change(running, proposed)
    if decision.outcome == "rejected":
        raise ChangeRejectedError(decision.blocking)
    return decision


def apply_change(running: DeviceConfig, proposed: DeviceConfig) -> DeviceConfig:
    """Return the running document with its paths replaced by the proposed ones."""
    validate_config_change(running, proposed)
    return running.model_copy(update={"paths": list(proposed.paths)})


__all__ = [
    "CHANGE_EXEMPT_FIELDS",
    "COMPARED_FIELDS",
    "ChangeDecision",
    "ChangeOutcome",
    "ChangeRejectedError",
    "apply_change",
    "changed_fields",
    "evaluate_change",
    "is_change_allowed",
    "serialize",
    "validate_config_change",
]
