"""
logger_config.py
Logging setup (file + console) and a global hook for uncaught exceptions.
"""

from __future__ import annotations

import logging
import os
import sys
import traceback
from datetime import datetime

from config import Config

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(module)s:%(lineno)d] - %(message)s"


def handle_exception(exc_type, exc_value, exc_traceback):
    """
    Log any uncaught exception as CRITICAL so crashes leave a trace in the log.
    """
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return

    error_msg = "".join(traceback.format_exception(exc_type, exc_value, exc_traceback))
    logging.critical(f"Uncaught exception:\n{error_msg}")


def setup_logging(log_dir: str | None = None, level: str | None = None) -> str:
    """Configure the root logger. Returns the path of the log file."""
    log_dir = log_dir or Config.LOGS_DIR
    os.makedirs(log_dir, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    log_filepath = os.path.join(log_dir, f"log_{timestamp}.log")

    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = logging.FileHandler(log_filepath, encoding="utf-8")
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    logger = logging.getLogger()
    logger.setLevel(getattr(logging, (level or Config.LOG_LEVEL).upper(), logging.INFO))

    if logger.hasHandlers():
        logger.handlers.clear()

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    sys.excepthook = handle_exception

    logging.info(f"Logging configured. Writing to: {log_filepath}")
    return log_filepath
