"""Logging and execution context for the framework.

There is no global logger: the top-level run builds an ExecutionContext with
``make_context`` and passes it by reference into solvers and problems.
Components constructed without a context fall back to ``get_logger``.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

__all__ = ["LOG_FORMAT", "get_logger", "ExecutionContext", "make_context"]

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s: %(message)s"


def get_logger(name: str, level: str = "INFO") -> logging.Logger:
    """Create a logger with the uniform format.

    Args:
        name: Logger name, usually ``__name__`` of the caller module.
        level: Logging level string (e.g., 'DEBUG', 'INFO').

    Returns:
        Configured logging.Logger instance. Handlers are only attached once.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.setLevel(getattr(logging, level.upper(), logging.INFO))
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return logger


@dataclass
class ExecutionContext:
    """Per-run execution resources.

    Attributes:
        logger: Log sink shared by every component of the run.
        num_threads: Worker count available to forward solves. The
            optimization state machine itself is single-threaded.
    """

    logger: logging.Logger = field(default_factory=lambda: get_logger("diffopt"))
    num_threads: int = 1

    def child(self, suffix: str) -> logging.Logger:
        """Return a child logger (e.g. ``diffopt.optim``) sharing the handlers."""
        return self.logger.getChild(suffix)


def make_context(
    *,
    max_threads: int | None = None,
    log_level: str = "INFO",
    log_file: str | Path | None = None,
    quiet: bool = False,
    name: str = "diffopt",
) -> ExecutionContext:
    """Build the execution context of one run.

    Args:
        max_threads: Upper bound on worker threads; clamped to
            ``[1, os.cpu_count()]``. None means all cores.
        log_level: Logging level string.
        log_file: Optional path; the file is truncated.
        quiet: Suppress the stdout handler.
        name: Root logger name of the run.

    Returns:
        A fresh ExecutionContext with its own handlers.
    """
    hardware = os.cpu_count() or 1
    requested = hardware if max_threads is None else max_threads
    num_threads = max(1, min(requested, hardware))

    logger = logging.getLogger(name)
    level = getattr(logging, log_level.upper(), logging.INFO)
    logger.setLevel(level)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    if not quiet:
        stream = logging.StreamHandler(sys.stdout)
        stream.setFormatter(formatter)
        logger.addHandler(stream)
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, mode="w", encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return ExecutionContext(logger=logger, num_threads=num_threads)
