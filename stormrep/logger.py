"""
Logging setup
=============

All modules log through children of the "stormrep" logger
(`logging.getLogger(__name__)`). The CLI calls `setup_logger` once to send
those messages to a timestamped file and, optionally, the console.
"""

from __future__ import annotations
from datetime import datetime
from typing import Optional, Tuple
import logging
import os

LOGGER_NAME = "stormrep"
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def setup_logger(
    log_dir: str = "logs",
    log_filename: str = "stormrep",
    timestamp: Optional[str] = None,
    verbose: bool = True,
) -> Tuple[logging.Logger, str]:
    """
    Initialize the package logger with a timestamped log file.

    Parameters
    ----------
    log_dir : str
        Directory to save logs. Created if missing.
    log_filename : str
        Base name of the log file. The timestamp is appended.
    timestamp : str, optional
        Timestamp to use; defaults to the current time (YYYYmmdd_HHMMSS).
    verbose : bool
        If True, also log INFO and above to the console.

    Returns
    -------
    logger : logging.Logger
        Configured logger instance.
    log_filepath : str
        Full path to the created log file.
    """
    timestamp = timestamp or datetime.now().strftime("%Y%m%d_%H%M%S")
    os.makedirs(log_dir, exist_ok=True)
    log_filepath = os.path.join(log_dir, f"{log_filename}_{timestamp}.log")

    logger = logging.getLogger(LOGGER_NAME)
    close_logger(logger)
    logger.setLevel(logging.DEBUG)
    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = logging.FileHandler(log_filepath, mode="w")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    if verbose:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    logger.info(f"Logger initialized: {log_filepath}")
    return logger, log_filepath


def close_logger(logger: logging.Logger) -> None:
    """Close and remove all handlers of `logger`."""
    for handler in logger.handlers[:]:  # copy, the list is modified below
        handler.close()
        logger.removeHandler(handler)
