"""Configuration models and loading."""

from abserve.config.listen import parse_listen
from abserve.config.loader import ConfigLoader
from abserve.config.models import (
    AppConfig,
    ConfigLoadRequest,
    LoggingSettings,
    ServerSettings,
    normalize_resource_path,
)

__all__ = [
    "AppConfig",
    "ConfigLoadRequest",
    "ConfigLoader",
    "LoggingSettings",
    "ServerSettings",
    "normalize_resource_path",
    "parse_listen",
]
