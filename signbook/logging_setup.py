from __future__ import annotations

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import List, Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "ERROR": logging.ERROR,
}


def resolve_level(name: str) -> int:
    return _LEVELS.get((name or "").upper(), logging.INFO)


def configure_logging(log_file: Optional[str] = None, level: str = "INFO", rotation_hours: int = 24) -> None:
    """
    Log to the console and, when `log_file` is given, to a file rotated every
    `rotation_hours` hours keeping one backup.
    """
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            TimedRotatingFileHandler(
                log_path,
                when="h",
                interval=max(rotation_hours, 1),
                backupCount=1,
                encoding="utf-8",
            )
        )

    logging.basicConfig(
        level=resolve_level(level),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
