"""
Device configuration documents and the loader that turns JSON files into them.

Each monitored device is described by one JSON document. A supervisor can
also be pointed at a file-list document (``{"config_file_list": [...]}``)
that names the per-device documents to run. Loading always fills the
numeric defaults before validating, so callers never see a half-loaded
document.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    model_validator,
)

logger = logging.getLogger(__name__)

DEFAULT_GRPC_WINDOW_SIZE = 1048576
DEFAULT_INFLUX_BATCH_FREQUENCY = 2000
DEFAULT_INFLUX_BATCH_SIZE = 1024 * 100

SubscriptionMode = Literal["", "on-change", "target-defined", "sample"]


class ConfigError(RuntimeError):
    """Raised when configuration files are missing or invalid."""


class ConfigReadError(ConfigError):
    """The configuration file could not be read from disk."""


class ConfigDecodeError(ConfigError):
    """The configuration file is not a well-formed document."""


class EmptyConfigListError(ConfigError):
    """A list of configuration files resolved to zero entries."""


class ConfigValidationError(ConfigError):
    """A decoded configuration violates a structural invariant."""


class _Document(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)


class ApiSettings(_Document):
    """Port of the worker's local API server (0 disables it)."""

    port: int = Field(default=0, ge=0, le=65535)


class GrpcSettings(_Document):
    """Transport tuning for the telemetry session."""

    ws: int = Field(default=0, ge=0, description="Initial window size in bytes.")


class TlsSettings(_Document):
    client_crt: str = Field(default="", alias="clientcrt")
    client_key: str = Field(default="", alias="clientkey")
    ca: str = Field(default="")
    server_name: str = Field(default="", alias="servername")

    @model_validator(mode="after")
    def _client_pair(self) -> TlsSettings:
        if bool(self.client_crt) != bool(self.client_key):
            raise ValueError("tls clientcrt and clientkey must be provided together")
        return self


class InfluxSettings(_Document):
    """Metrics backend connection and batching parameters."""

    server: str = Field(default="")
    port: int = Field(default=0, ge=0, le=65535)
    dbname: str = Field(default="")
    user: str = Field(default="")
    password: str = Field(default="")
    recreate: bool = Field(default=False)
    measurement: str = Field(default="")
    batch_size: int = Field(default=0, ge=0, alias="batchsize")
    batch_frequency: int = Field(
        default=0, ge=0, alias="batchfrequency", description="Flush interval in milliseconds."
    )
    http_timeout: int = Field(default=0, ge=0, alias="http-timeout")
    retention_policy: str = Field(default="", alias="retention-policy")


class PathSpec(_Document):
    """Single subscription target."""

    path: str = Field(default="")
    freq: int = Field(default=0, ge=0, description="Reporting interval.")
    mode: SubscriptionMode = Field(default="")


class LogSettings(_Document):
    file: str = Field(default="")
    periodic_stats: int = Field(default=0, ge=0, alias="periodic-stats")
    verbose: bool = Field(default=False)
    drop_check: bool = Field(default=False, alias="drop-check")
    latency_check: bool = Field(default=False, alias="latency-check")
    csv_stats: bool = Field(default=False, alias="csv-stats")


class VendorSchema(_Document):
    file: str = Field(default="")


class VendorSettings(_Document):
    name: str = Field(default="")
    remove_namespace: bool = Field(default=False, alias="remove-namespace")
    schema_files: list[VendorSchema] = Field(default_factory=list, alias="schema")


class DeviceConfig(_Document):
    """Full configuration of one monitored device."""

    port: int = Field(default=0, ge=0, le=65535)
    host: str = Field(default="")
    user: str = Field(default="")
    password: str = Field(default="")
    cid: str = Field(default="", description="Client identifier presented to the device.")
    meta: bool = Field(default=False)
    eos: bool = Field(default=False, description="Request an end-of-sync marker.")
    api: ApiSettings = Field(default_factory=ApiSettings)
    grpc: GrpcSettings = Field(default_factory=GrpcSettings)
    tls: TlsSettings = Field(default_factory=TlsSettings)
    influx: InfluxSettings = Field(default_factory=InfluxSettings)
    paths: list[PathSpec] = Field(default_factory=list)
    log: LogSettings = Field(default_factory=LogSettings)
    vendor: VendorSettings = Field(default_factory=VendorSettings)

    @property
    def verbose(self) -> bool:
        return self.log.verbose


class ConfigFileList(_Document):
    """Ordered list of per-device configuration files."""

    filenames: list[str] = Field(default_factory=list, alias="config_file_list")


def _read_json(path: str | Path) -> Any:
    try:
        raw = Path(path).read_bytes()
    except OSError as exc:
        raise ConfigReadError(f"Unable to read {path}: {exc}") from exc
    try:
        return json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError, RecursionError) as exc:
        raise ConfigDecodeError(f"Malformed JSON in {path}: {exc}") from exc


_RULE_ERROR_TYPES = frozenset(
    {
        "greater_than",
        "greater_than_equal",
        "less_than",
        "less_than_equal",
        "literal_error",
        "value_error",
    }
)


def _is_shape_error(exc: ValidationError) -> bool:
    """True when the document has the wrong shape or types rather than out-of-range values."""
    return any(error["type"] not in _RULE_ERROR_TYPES for error in exc.errors())


def load_file_list(path: str | Path) -> ConfigFileList:
    """Load a file-list document; at least one entry is required."""

    data = _read_json(path)
    try:
        file_list = ConfigFileList.model_validate(data)
    except ValidationError as exc:
        raise ConfigDecodeError(f"Malformed config file list in {path}") from exc
    if not file_list.filenames:
        raise EmptyConfigListError(f"File list doesn't have any files in {path}")
    return file_list


def fill_defaults(config: DeviceConfig) -> DeviceConfig:
    """
    Replace zero-valued window size and batching parameters with the system
    defaults. Already defaulted documents are returned unchanged.
    """

    grpc = config.grpc
    if grpc.ws == 0:
        grpc = grpc.model_copy(update={"ws": DEFAULT_GRPC_WINDOW_SIZE})

    influx_updates: dict[str, int] = {}
    if config.influx.batch_frequency == 0:
        influx_updates["batch_frequency"] = DEFAULT_INFLUX_BATCH_FREQUENCY
    if config.influx.batch_size == 0:
        influx_updates["batch_size"] = DEFAULT_INFLUX_BATCH_SIZE

    if grpc is config.grpc and not influx_updates:
        return config
    influx = config.influx.model_copy(update=influx_updates) if influx_updates else config.influx
    return config.model_copy(update={"grpc": grpc, "influx": influx})


def validate_structure(config: DeviceConfig) -> DeviceConfig:
    """Check invariants that only hold once defaults are applied."""

    if config.grpc.ws <= 0:
        raise ConfigValidationError("grpc.ws must be positive")
    if config.influx.batch_frequency <= 0 or config.influx.batch_size <= 0:
        raise ConfigValidationError("influx batching parameters must be positive")
    return config


def load_config(path: str | Path) -> DeviceConfig:
    """
    Decode a device configuration, fill defaults and validate it.

    Raises ConfigReadError/ConfigDecodeError for unreadable or malformed files
    and ConfigValidationError when the document breaks a structural rule.
    """

    data = _read_json(path)
    try:
        config = DeviceConfig.model_validate(data)
    except ValidationError as exc:
        if _is_shape_error(exc):
            raise ConfigDecodeError(f"Malformed config {path}: {exc}") from exc
        raise ConfigValidationError(f"Invalid config {path}: {exc}") from exc
    config = fill_defaults(config)
    try:
        validate_structure(config)
    except ConfigValidationError as exc:
        raise ConfigValidationError(f"Invalid config {path}: {exc}") from exc
    logger.debug("Loaded config %s (%d paths)", path, len(config.paths))
    return config


def explore_config() -> str:
    """Return a pretty-printed skeleton document operators can start from."""

    skeleton = DeviceConfig.model_validate({"paths": [{}]})
    return skeleton.model_dump_json(indent=4, by_alias=True)


def resolve_config_files(
    config_files: Sequence[str | Path] | None,
    config_file_list: str | Path | None,
) -> list[str]:
    """
    Work out which device configs to start with.

    A file-list document takes precedence over individually named files.
    """

    if config_file_list:
        return list(load_file_list(config_file_list).filenames)
    files = [str(path) for path in (config_files or [])]
    if not files:
        raise EmptyConfigListError("Can not run without any config file")
    return files


__all__ = [
    "DEFAULT_GRPC_WINDOW_SIZE",
    "DEFAULT_INFLUX_BATCH_FREQUENCY",
    "DEFAULT_INFLUX_BATCH_SIZE",
    "ApiSettings",
    "ConfigDecodeError",
    "ConfigError",
    "ConfigFileList",
    "ConfigReadError",
    "ConfigValidationError",
    "DeviceConfig",
    "EmptyConfigListError",
    "GrpcSettings",
    "InfluxSettings",
    "LogSettings",
    "PathSpec",
    "SubscriptionMode",
    "TlsSettings",
    "VendorSchema",
    "VendorSettings",
    "explore_config",
    "fill_defaults",
    "load_config",
    "load_file_list",
    "resolve_config_files",
    "validate_structure",
]
