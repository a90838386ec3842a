"""
LC-3 Virtual Machine — Logging Setup

Console output goes through rich's RichHandler; an optional log file
captures everything at DEBUG with the full pipe-separated format.
Library modules only call logging.getLogger("lc3vm.<part>"); handlers
are attached here, once, by the CLI (or by an embedding application).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler

from .config import LOG_NAME


FILE_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(funcName)s:%(lineno)d | %(message)s"
CONSOLE_FORMAT = "%(message)s"


def setup_logging(
    name: str = LOG_NAME,
    console_level: int = logging.WARNING,
    log_file: Optional[Path] = None,
    rich_console: bool = True,
) -> logging.Logger:
    """
    Configure and return the package logger.

    log_file: explicit file to write DEBUG+ records to.
    rich_console: False swaps RichHandler for a plain stderr handler,
              for piping output or terminals without color support.
    """
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    # ── Console handler: WARNING+ default, DEBUG with -v ──
    if rich_console:
        ch = RichHandler(
            level=console_level,
            show_time=True,
            show_path=False,
            markup=False,
            rich_tracebacks=True,
        )
        ch.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    else:
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-7s | %(message)s", datefmt="%H:%M:%S",
        ))
    ch.setLevel(console_level)
    logger.addHandler(ch)

    # ── File handler: captures everything (DEBUG+) ──
    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(log_file), encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(fh)
        logger.debug("Log file: %s", log_file)

    return logger
