"""
Logging setup for gh-helper.

Log records go to stderr so that stdout carries nothing but command results.
Every record is tagged with the pull request being worked on (``owner/repo#N``)
through a context variable, which keeps the tag correct inside the worker
threads used for bulk operations.
"""

from __future__ import annotations

import contextvars
import logging
import os
import sys
from logging.handlers import RotatingFileHandler

DEFAULT_CONTEXT = "gh-helper"

_pr_context: contextvars.ContextVar[str] = contextvars.ContextVar(
    "pr_context", default=DEFAULT_CONTEXT
)

STDERR_FORMAT = "%(levelname)s %(pr_context)s %(name)s: %(message)s"
FILE_FORMAT = "[%(asctime)s] %(levelname)s %(pr_context)s %(threadName)s %(name)s: %(message)s"


def set_pr_context(repo: str | None = None, pr_number: int | None = None) -> None:
    """Tag subsequent log records with ``repo#pr_number``.

    Either part missing resets the tag to the default.
    """
    if repo and pr_number is not None:
        _pr_context.set(f"{repo}#{pr_number}")
    else:
        _pr_context.set(DEFAULT_CONTEXT)


def clear_pr_context() -> None:
    _pr_context.set(DEFAULT_CONTEXT)


def get_pr_context() -> str:
    return _pr_context.get()


class PRContextFilter(logging.Filter):
    """Adds the current PR tag to each record as ``pr_context``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.pr_context = get_pr_context()
        return True


class LevelColorFormatter(logging.Formatter):
    """Colors a whole line by its level; INFO stays uncolored."""

    RESET = "\033[0m"
    LEVEL_COLORS = {
        logging.DEBUG: "\033[90m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[31m",
    }

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = self.LEVEL_COLORS.get(record.levelno)
        if color is None:
            return message
        return f"{color}{message}{self.RESET}"


def resolve_level(verbose: bool = False) -> int:
    """DEBUG when verbose, otherwise LOG_LEVEL from the environment (default WARNING)."""
    if verbose:
        return logging.DEBUG
    level = logging.getLevelName(os.getenv("LOG_LEVEL", "WARNING").upper())
    return level if isinstance(level, int) else logging.WARNING


def setup_logging(
    log_file: str | None = None,
    log_size: int = 5 * 1024 * 1024,
    log_backups: int = 3,
    verbose: bool = False,
) -> None:
    """
    Configure the root logger.

    Args:
        log_file: Optional path to a rotating log file; its directory is created
        log_size: Max size in bytes before rotation. Default: 5MB
        log_backups: Number of rotated files to keep. Default: 3
        verbose: Log at DEBUG regardless of LOG_LEVEL
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(resolve_level(verbose))
    root_logger.handlers.clear()

    context_filter = PRContextFilter()

    stderr_handler = logging.StreamHandler(sys.stderr)
    formatter_cls = LevelColorFormatter if sys.stderr.isatty() else logging.Formatter
    stderr_handler.setFormatter(formatter_cls(STDERR_FORMAT))
    stderr_handler.addFilter(context_filter)
    root_logger.addHandler(stderr_handler)

    if not log_file:
        return
    try:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=log_size, backupCount=log_backups)
    except OSError as e:
        root_logger.warning(f"Not logging to {log_file}: {e}")
        return
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
    file_handler.addFilter(context_filter)
    root_logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def is_debug_mode() -> bool:
    """Check if the root logger is at DEBUG."""
    return logging.getLogger().level <= logging.DEBUG
