"""
Logging configuration for Model Lifecycle.

Every module obtains its logger through ``get_logger(__name__)`` so that all
records flow through the ``model_lifecycle`` package logger.  Call
``setup_logging()`` once from an entry point (CLI, service bootstrap) to
attach handlers; library code never configures handlers itself.

Usage:
    from model_lifecycle.utils.logging_config import setup_logging, get_logger

    setup_logging()
    logger = get_logger(__name__)
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional, Union

PACKAGE_LOGGER_NAME = "model_lifecycle"

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_configured = False


def get_logger(name: str) -> logging.Logger:
    """Return a logger for *name*, namespaced under the package logger."""
    if name == PACKAGE_LOGGER_NAME or name.startswith(PACKAGE_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{PACKAGE_LOGGER_NAME}.{name}")


def setup_logging(
    level: Optional[Union[int, str]] = None,
    log_file: Optional[Union[str, Path]] = None,
    fmt: str = DEFAULT_FORMAT,
    force: bool = False,
) -> logging.Logger:
    """
    Configure the package logger with a console handler and an optional file handler.

    Safe to call multiple times; only the first call (or a call with
    ``force=True``) installs handlers.

    Args:
        level: Log level name or number. Defaults to ``LOG_LEVEL`` env var, then INFO.
        log_file: Optional path of a file to mirror log records into.
        fmt: ``logging.Formatter`` format string.
        force: Replace handlers installed by a previous call.

    Returns:
        The configured package logger.
    """
    global _configured

    package_logger = logging.getLogger(PACKAGE_LOGGER_NAME)
    if _configured and not force:
        return package_logger

    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(fmt, datefmt=DEFAULT_DATE_FORMAT)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    package_logger.addHandler(console)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

    package_logger.setLevel(level)
    package_logger.propagate = False
    _configured = True
    return package_logger
