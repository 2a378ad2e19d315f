"""File logging for the terminal app.

The chat owns the terminal, so log records go to a rotating file instead of
stderr.
"""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MAX_LOG_BYTES = 1_000_000
LOG_BACKUP_COUNT = 3

APP_LOGGERS = ("artifact_chat", "tui")
# Chatty third-party loggers, kept at WARNING unless debugging
LIBRARY_LOGGERS = ("httpx", "httpcore", "asyncio")


def setup_logging(log_file: str, debug: bool = False) -> logging.Handler:
    """Route all log records to a rotating file.

    Calling it again replaces the handler from the previous call.

    Returns:
        The installed handler.
    """
    directory = os.path.dirname(log_file)
    if directory:
        os.makedirs(directory, exist_ok=True)

    handler = RotatingFileHandler(
        log_file, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUP_COUNT, encoding="utf-8"
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))

    root = logging.getLogger()
    for old in [h for h in root.handlers if isinstance(h, RotatingFileHandler)]:
        root.removeHandler(old)
        old.close()
    root.addHandler(handler)
    root.setLevel(logging.WARNING)

    app_level = logging.DEBUG if debug else logging.INFO
    for name in APP_LOGGERS:
        logging.getLogger(name).setLevel(app_level)
    for name in LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if debug else logging.WARNING)

    return handler
