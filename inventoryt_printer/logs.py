"""Logging setup for the printer service."""

from __future__ import annotations

import logging
import sys

from inventoryt_printer.config import PrinterConfig

SUCCESS = 25
LOG_FORMAT = "[%(asctime)s] %(levelname)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logging.addLevelName(SUCCESS, "SUCCESS")


def log_success(logger: logging.Logger, message: str, *args: object) -> None:
    logger.log(SUCCESS, message, *args)


def configure_logging(config: PrinterConfig, *, level: int = logging.INFO) -> logging.Logger:
    """Attach console and optional file handlers to the root logger.

    Raises:
        OSError: If file logging is enabled and the log file cannot be opened.
    """
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.enable_file_logging:
        config.log_file_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(config.log_file_path, mode="a", encoding="utf-8"))

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(level)
    return logging.getLogger("inventoryt_printer")
