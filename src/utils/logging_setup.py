# ========================
# src/utils/logging_setup.py
# ========================

"""
Logging Configuration

Centralized logging setup for the loader, its scripts and the API server.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(log_level: str = "INFO",
                  log_file: Optional[str] = None,
                  log_dir: str = "logs") -> None:
    """
    Set up logging configuration for the loader.

    Args:
        log_level (str): Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file (str): Optional log file name
        log_dir (str): Directory for log files
    """
    level = getattr(logging, log_level.upper())
    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Clear existing handlers
    root_logger.handlers.clear()

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # File handler (if specified)
    if log_file:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        file_path = log_path / log_file
        file_handler = logging.FileHandler(file_path)
        file_handler.setLevel(logging.DEBUG)  # File gets all messages
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

        logging.info(f"Logging to file: {file_path}")

    # Set specific logger levels
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)
    logging.getLogger('multipart').setLevel(logging.WARNING)

    logging.info(f"Logging initialized - Level: {log_level}")


class LoadLogAdapter(logging.LoggerAdapter):
    """Prefixes every message with the label of the load it belongs to."""

    def process(self, msg, kwargs):
        kwargs['extra'] = {**self.extra, **kwargs.get('extra', {})}
        return f"[{self.extra['load']}] {msg}", kwargs


def get_load_logger(name: str, label: str) -> LoadLogAdapter:
    """
    Get a logger whose records carry the load they belong to.

    Concurrent loads in the API server write to the same handlers; the label
    keeps their lines apart. The label is also set as the record's `load`
    attribute for formatters that want it.

    Args:
        name (str): Logger name
        label (str): Short load identifier, e.g. a file name or load ID

    Returns:
        LoadLogAdapter: Adapter around the named logger
    """
    return LoadLogAdapter(logging.getLogger(name), {'load': label})
