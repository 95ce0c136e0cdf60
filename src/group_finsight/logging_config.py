# Group FinSight - Multi-entity consolidation engine for SMB groups
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Logging for Group FinSight runs.

The ``[logging]`` section of the configuration file drives two handlers:

- a console handler on stderr, with the level name coloured through
  colorama (stdout is reserved for the tables printed by the CLI);
- an optional plain-text file handler, appended to across runs, whose
  lines also carry the source location of the message.

Library modules only ever call ``logging.getLogger(__name__)``; handlers
are installed once, by the CLI, through ``configure_logging``.
"""

import logging
import sys
from pathlib import Path

import colorama
from colorama import Fore, Style

from .config import LoggingOptions

colorama.init()

CONSOLE_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
FILE_FORMAT = (
    "%(asctime)s %(levelname)-8s [%(name)s] %(message)s (%(filename)s:%(lineno)d)"
)
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# Loggers of third-party libraries kept at WARNING whatever the run level.
QUIET_LOGGERS = ("openpyxl", "pandas")

LEVEL_COLOURS = {
    logging.DEBUG: Style.DIM,
    logging.INFO: Fore.GREEN,
    logging.WARNING: Fore.YELLOW,
    logging.ERROR: Fore.RED,
    logging.CRITICAL: Fore.RED + Style.BRIGHT,
}


class LevelColourFormatter(logging.Formatter):
    """Formatter that colours the level name of console records."""

    def format(self, record: logging.LogRecord) -> str:
        colour = LEVEL_COLOURS.get(record.levelno)
        if colour is None:
            return super().format(record)
        # The record is shared with the file handler.
        painted = logging.makeLogRecord(record.__dict__)
        painted.levelname = f"{colour}{record.levelname}{Style.RESET_ALL}"
        return super().format(painted)


def resolve_level(name: str) -> int:
    """Map a level name such as ``"warning"`` to its numeric value."""
    level = logging.getLevelName(str(name).strip().upper())
    if not isinstance(level, int):
        raise ValueError(
            f"Invalid logging level: {name!r}. "
            "Expected DEBUG, INFO, WARNING, ERROR or CRITICAL."
        )
    return level


def build_handlers(options: LoggingOptions) -> list[logging.Handler]:
    """Create the console handler and, when configured, the file handler."""
    level = resolve_level(options.level)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(LevelColourFormatter(CONSOLE_FORMAT, TIMESTAMP_FORMAT))
    handlers: list[logging.Handler] = [console]

    if options.file is not None:
        log_path = Path(options.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, TIMESTAMP_FORMAT))
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(level)
    return handlers


def configure_logging(options: LoggingOptions) -> None:
    """Replace the root logger handlers with those described by ``options``."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    root.setLevel(resolve_level(options.level))
    for handler in build_handlers(options):
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        "Logging at %s%s",
        options.level,
        f", copy in {options.file}" if options.file else "",
    )
