import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from .paths import ledgerclaw_home

LOGGER_NAME = "ledgerclaw"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Shared package logger; module loggers created with getLogger(__name__)
# propagate into it.
logger = logging.getLogger(LOGGER_NAME)


def setup_logger(
    level: str = "INFO", log_dir: Optional[str] = None, name: str = LOGGER_NAME
) -> logging.Logger:
    """
    Configure the package logger to write to a rotating file and stderr.

    Safe to call more than once: handlers are only attached on the first call,
    later calls just adjust the level.
    """
    log = logging.getLogger(name)
    log.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    if getattr(log, "_ledgerclaw_configured", False):
        return log

    log_dir = log_dir or os.path.join(ledgerclaw_home(), "logs")
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, "ledgerclaw.log")

    formatter = logging.Formatter(LOG_FORMAT)

    # Max 5MB, keep 3 backups
    file_handler = RotatingFileHandler(
        log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    log.addHandler(file_handler)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    log.addHandler(stream_handler)

    log._ledgerclaw_configured = True
    return log
