"""
Logging setup for the CHIP-8 VM and its tools.

Console output goes through rich's RichHandler; an optional log file
captures everything at DEBUG with a pipe-separated format. Library
modules only ever call logging.getLogger(__name__); handlers are
attached here, once, by whoever owns the process (the CLI, a host
front-end, a test).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from rich.logging import RichHandler

ROOT_LOGGER = "chip8_vm"

FILE_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(funcName)s:%(lineno)d | %(message)s"
FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    name: str = ROOT_LOGGER,
) -> logging.Logger:
    """Configure and return the package logger.

    Calling it again replaces the handlers it installed before, so the
    CLI can re-apply a level chosen on the command line.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {level}")

    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.DEBUG if log_file else level)
    logger.propagate = False

    console = RichHandler(
        level=level,
        show_time=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    logger.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(path), encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=FILE_DATEFMT))
        logger.addHandler(fh)
        logger.debug("Log file: %s", path)

    return logger
