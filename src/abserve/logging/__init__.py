from __future__ import annotations

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from abserve.config.models import LoggingSettings


def resolve_level(name: str) -> int:
    level = logging.getLevelNamesMapping().get(name.strip().upper())
    if level is None:
        raise ValueError(f"Invalid logging level: {name}")
    return level


def init_logging(settings: LoggingSettings, prog: str = "abserve") -> None:
    """
    Initialize application logging.

    Standard error gets terse ``<prog>: <message>`` lines; the optional log
    file gets timestamped records and rotates daily.
    """

    root_logger = logging.getLogger()
    level = resolve_level(settings.level)

    root_logger.setLevel(level)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setLevel(level)
    stream_handler.setFormatter(logging.Formatter(fmt=f"{prog}: %(message)s"))
    root_logger.addHandler(stream_handler)

    file_path = settings.file.path.strip()
    if not file_path:
        return

    formatter = logging.Formatter(
        fmt="[%(asctime)s][%(levelname)s][%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        file_path_obj = Path(file_path)
        if file_path_obj.parent and not file_path_obj.parent.exists():
            file_path_obj.parent.mkdir(parents=True, exist_ok=True)

        file_handler = TimedRotatingFileHandler(
            filename=str(file_path_obj),
            when="midnight",
            interval=1,
            backupCount=settings.file.rotation.backup_count,
            encoding="utf-8",
        )
        file_handler.suffix = "%Y-%m-%d"
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
    except OSError:
        root_logger.error(
            "File logging handler failed to initialize path=%s",
            file_path,
            exc_info=True,
        )


__all__ = ["init_logging", "resolve_level"]
