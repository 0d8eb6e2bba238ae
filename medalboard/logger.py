"""
Logging helpers for the medal board.
"""

import logging
from typing import Dict, Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_LOGGERS: Dict[str, logging.Logger] = {}
_ROOT_NAME = "medalboard"


def get_logger(
    name: str,
) -> logging.Logger:
    """
    Create or retrieve a named logger under the medalboard namespace.

    @param name: Logger namespace (e.g. storage, web)
    @return: Configured logger instance
    """
    if name in _LOGGERS:
        return _LOGGERS[name]

    logger = logging.getLogger(f"{_ROOT_NAME}.{name}")
    _LOGGERS[name] = logger
    return logger


def configure_logging(
    level: str = "INFO",
    logfile: Optional[str] = None,
) -> logging.Logger:
    """
    Attach console (and optionally file) handlers to the root medalboard logger.

    Safe to call more than once; existing handlers are replaced.

    @param level: Logging level name
    @param logfile: Optional path of a log file to append to
    @return: The root medalboard logger
    """
    root = logging.getLogger(_ROOT_NAME)
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    if logfile:
        file_handler = logging.FileHandler(logfile, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    root.propagate = False
    return root
