from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_PORT = 8080


def normalize_resource_path(path: str) -> str:
    if not path.startswith("/"):
        return "/" + path
    return path


class ServerSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    # URL path of the virtual resource.
    path: str = "/"
    # Directory to serve every other path from.
    directory: Optional[str] = None
    # Named pipe to poll instead of reading standard input once.
    poll: Optional[str] = None

    # Empty host binds all interfaces.
    host: str = ""
    port: int = Field(default=DEFAULT_PORT, ge=0, le=65535)

    show_index: bool = True

    @field_validator("path")
    @classmethod
    def _normalize_path(cls, value: str) -> str:
        return normalize_resource_path(value)

    @field_validator("directory", "poll")
    @classmethod
    def _empty_as_unset(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value


class FileRotationSettings(BaseModel):
    """
    Date-based rotation settings (daily).

    This maps cleanly to Python's standard library TimedRotatingFileHandler behavior.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    backup_count: int = 7


class FileLoggingSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    path: str = ""
    rotation: FileRotationSettings = FileRotationSettings()


class LoggingSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    level: str = "warning"
    file: FileLoggingSettings = FileLoggingSettings()


class AppConfig(BaseModel):
    """Effective runtime configuration after applying all precedence rules."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    server: ServerSettings = ServerSettings()
    logging: LoggingSettings = LoggingSettings()


@dataclass(frozen=True, slots=True)
class ConfigLoadRequest:
    """
    Inputs for the configuration loader.

    `overrides` is a nested mapping applied last, typically built from
    command-line flags.
    """

    yaml_path: Optional[str] = None
    env_prefix: str = "ABSERVE__"
    dotenv_path: Optional[str] = None
    overrides: Optional[dict] = None
