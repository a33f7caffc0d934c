"""Shared logging for the transfer CLI, the relay and the browser automation.

Every named logger gets its own console handler plus the two shared files in
LOG_DIR: latest.log (this session) and transfer.log (daily archive). Console
verbosity starts at LOG_LEVEL and can be raised at runtime (migrate --verbose),
which turns on the per-step automation traces.
"""

import logging
import os
from logging.handlers import TimedRotatingFileHandler

from config import LOG_DIR, LOG_LEVEL

LATEST_LOG = os.path.join(LOG_DIR, "latest.log")
DAILY_LOG = os.path.join(LOG_DIR, "transfer.log")

_FILE_FMT = logging.Formatter(
    "%(asctime)s [%(name)s] %(levelname)-5s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
_CONSOLE_FMT = logging.Formatter("%(message)s")

_console_level = logging.getLevelName(LOG_LEVEL.upper())
if not isinstance(_console_level, int):
    _console_level = logging.INFO

_console_handlers = []
_file_handlers = None


def _shared_file_handlers():
    global _file_handlers
    if _file_handlers is None:
        os.makedirs(LOG_DIR, exist_ok=True)
        latest = logging.FileHandler(LATEST_LOG, mode="a", encoding="utf-8")
        daily = TimedRotatingFileHandler(DAILY_LOG, when="midnight", backupCount=0, encoding="utf-8")
        # transfer.log.2026-01-01 -> transfer.2026-01-01.log
        daily.namer = lambda name: name.replace(".log.", ".") + ".log"
        for handler in (latest, daily):
            handler.setLevel(logging.DEBUG)
            handler.setFormatter(_FILE_FMT)
        _file_handlers = (latest, daily)
    return _file_handlers


def get_logger(name):
    """Return a named logger wired to the console and both log files."""
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)

    if logger.handlers:
        return logger

    console = logging.StreamHandler()
    console.setLevel(_console_level)
    console.setFormatter(_CONSOLE_FMT)
    logger.addHandler(console)
    _console_handlers.append(console)

    for handler in _shared_file_handlers():
        logger.addHandler(handler)
    return logger


def set_console_level(level):
    """Change console verbosity for every logger, existing and future. Files always get DEBUG."""
    global _console_level
    _console_level = level
    for handler in _console_handlers:
        handler.setLevel(level)


def reset_latest():
    """Truncate latest.log at session start."""
    os.makedirs(LOG_DIR, exist_ok=True)
    open(LATEST_LOG, "w").close()
