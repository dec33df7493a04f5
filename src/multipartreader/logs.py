"""Logging setup for the upload tools."""

from __future__ import annotations

import logging
import os

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

console = Console(stderr=True)


def setup_logging(log_path: str = None, log_level: int = logging.INFO) -> logging.Logger:
    """Send package logs to the console and, optionally, to a file.

    Args:
        log_path (str, optional): File to append log records to. Its directory is created if needed.
        log_level (int, optional): Level for the package logger. Defaults to logging.INFO.

    Returns:
        logging.Logger: The package logger.
    """
    logger = logging.getLogger("multipartreader")
    logger.setLevel(log_level)
    logger.handlers.clear()
    logger.propagate = False

    logger.addHandler(RichHandler(console=console, level=log_level, show_path=False, rich_tracebacks=True))

    if log_path:
        log_dir = os.path.dirname(os.path.abspath(log_path))
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        file_handler.setLevel(log_level)
        logger.addHandler(file_handler)

    # Disable all the weird terminal noise from urllib3
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("urllib3").propagate = False

    return logger
