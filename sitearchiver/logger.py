"""Logging setup: console on stdout plus an optional log file."""

import logging
import sys

CONSOLE_FORMAT = "[%(levelname)s] %(asctime)s %(message)s"
FILE_FORMAT = "%(asctime)s [%(levelname)s]: %(message)s"
DEFAULT_LOG_FILE = "application.log"


def setup_logger(name="sitearchiver", log_file=DEFAULT_LOG_FILE, level=logging.INFO):
    """Configure the package logger. Calling it again returns the same logger.

    The console handler uses ``level``; the file handler, when ``log_file``
    is set, always records DEBUG and above.
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)

    # Avoid duplicate handlers if setup_logger is called multiple times
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    return logger
