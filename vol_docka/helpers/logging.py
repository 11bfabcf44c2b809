################################################################################
# VOL-DOCKA
#
# @file:        logging.py
# @module:      vol_docka.helpers.logging
# @description: Central logging setup with rich console output and optional log file.
# @author:      Vol-Docka Contributors
# @repository:  https://github.com/vol-docka/vol-docka
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 Vol-Docka Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
# ==============================================================================
# Hinweise:
# - get_logger() hands out children of the "vol_docka" logger
# - log_manager.configure() is called once by the CLI callback
# - StructuredFormatter renders extra={...} context (volume, container, ...)
################################################################################

"""
Logging helpers for Vol-Docka.

Console output goes to stderr through rich, so stdout stays clean for
reports. A rotating log file can be enabled via the [logging] section.
"""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from .constants import LOG_FORMAT, LOG_DATE_FORMAT

ROOT_LOGGER_NAME = "vol_docka"

# Attributes every LogRecord carries; anything else came in through extra=
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime"}


class StructuredFormatter(logging.Formatter):
    """Formatter that appends extra context fields as key=value pairs."""

    def __init__(self, fmt: str = LOG_FORMAT, datefmt: str = LOG_DATE_FORMAT):
        super().__init__(fmt=fmt, datefmt=datefmt)

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        context = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        }
        if not context:
            return base
        rendered = " ".join(f"{k}={v}" for k, v in sorted(context.items()))
        return f"{base} [{rendered}]"


class LogManager:
    """Owns the handlers attached to the package root logger."""

    def __init__(self):
        self._configured = False
        self.level = logging.INFO
        self.log_file: Optional[Path] = None

    def configure(
        self,
        level: str = "INFO",
        log_file: Optional[str] = None,
        max_size_mb: int = 10,
        backup_count: int = 3,
    ) -> None:
        """
        (Re)configure logging.

        Args:
            level: Log level name (DEBUG, INFO, WARNING, ERROR)
            log_file: Optional path to a rotating log file
            max_size_mb: Rotate after this many megabytes
            backup_count: Number of rotated files to keep
        """
        numeric_level = logging.getLevelName(level.upper())
        if not isinstance(numeric_level, int):
            raise ValueError(f"Invalid log level: {level}")

        root = logging.getLogger(ROOT_LOGGER_NAME)
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()

        console_handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=numeric_level <= logging.DEBUG,
        )
        console_handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(console_handler)

        self.log_file = None
        if log_file:
            path = Path(log_file).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                path,
                maxBytes=max_size_mb * 1024 * 1024,
                backupCount=backup_count,
                encoding="utf-8",
            )
            file_handler.setFormatter(StructuredFormatter())
            root.addHandler(file_handler)
            self.log_file = path

        root.setLevel(numeric_level)
        root.propagate = False
        self.level = numeric_level
        self._configured = True

    @property
    def configured(self) -> bool:
        return self._configured


log_manager = LogManager()


def get_logger(name: str) -> logging.Logger:
    """Return a logger below the package root logger."""
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")

