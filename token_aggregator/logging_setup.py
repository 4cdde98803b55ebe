"""
Logging configuration for the command-line entrypoints.

Library modules only call ``logging.getLogger(__name__)``; handlers are attached
here, once, on the package logger.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_LOG_DIR = Path("logs")


def setup_logger(
    name: str = "token_aggregator",
    log_dir: Optional[Union[str, Path]] = None,
    level: Union[int, str] = logging.INFO,
    log_to_file: bool = False,
) -> logging.Logger:
    """
    Attach a console handler (and optionally a daily file handler) to ``name``.

    Args:
        name: Logger to configure; child loggers inherit its handlers.
        log_dir: Directory for the log file (default: ./logs).
        level: Logging level (int or name such as "DEBUG").
        log_to_file: Also write to ``<log_dir>/<name>_<YYYYMMDD>.log``.

    Returns:
        The configured logger. Calling again for the same name only updates the level.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Avoid adding handlers multiple times
    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_to_file:
        directory = Path(log_dir) if log_dir is not None else DEFAULT_LOG_DIR
        os.makedirs(directory, exist_ok=True)
        module_name = name.split(".")[-1]
        log_filepath = directory / f"{module_name}_{datetime.now().strftime('%Y%m%d')}.log"

        file_handler = logging.FileHandler(log_filepath, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

        logger.info("Logging to file: %s", log_filepath)

    return logger
