"""
Dynaconf-powered supervisor settings with Pydantic validation.

These settings tune the supervisor process itself (logging, control channel
capacity, shutdown grace period). Device documents are handled separately in
``telemon.core.config``. Values come from an optional settings file and from
``TELEMON_*`` environment variables, the latter taking precedence.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from dynaconf import Dynaconf
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config import ConfigError

ENVVAR_PREFIX = "TELEMON"


class SupervisorSettings(BaseModel):
    """Runtime knobs for the supervisor process."""

    model_config = ConfigDict(extra="ignore")

    log_level: str = Field(default="INFO")
    log_file: Path | None = Field(default=None)
    log_max_mb: int = Field(default=10, ge=1)
    log_backup_count: int = Field(default=3, ge=0)
    control_queue_size: int = Field(
        default=16, ge=1, description="Pending commands a worker channel holds before blocking."
    )
    shutdown_timeout_seconds: float = Field(default=5.0)

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("log_file", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path | None:
        if value in (None, ""):
            return None
        if isinstance(value, Path):
            return value
        return Path(value)

    @field_validator("shutdown_timeout_seconds")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("shutdown_timeout_seconds must be positive")
        return value


def load_settings(
    settings_file: str | Path | None = None,
    *,
    overrides: dict[str, Any] | None = None,
) -> SupervisorSettings:
    """
    Build SupervisorSettings from the optional file, the environment and
    explicit overrides (highest precedence, ``None`` values ignored).
    """

    settings_files: list[str] = []
    if settings_file is not None:
        path = Path(settings_file)
        if not path.exists():
            raise ConfigError(f"Settings file {path} does not exist.")
        settings_files.append(str(path))

    settings = Dynaconf(
        envvar_prefix=ENVVAR_PREFIX,
        settings_files=settings_files,
        load_dotenv=True,
        environments=False,
    )
    data = {str(key).lower(): value for key, value in settings.as_dict().items()}
    for key, value in (overrides or {}).items():
        if value is not None:
            data[key] = value
    try:
        return SupervisorSettings.model_validate(data)
    except ValidationError as exc:
        raise ConfigError("Supervisor settings validation failed") from exc


__all__ = ["ENVVAR_PREFIX", "SupervisorSettings", "load_settings"]
