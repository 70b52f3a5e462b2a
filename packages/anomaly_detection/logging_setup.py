"""Centralized logging configuration for the ``anomaly_detection`` package.

Public helpers:

- ``configure_logging(...)``: attach a single ``StreamHandler`` to the package
  root logger (``"anomaly_detection"``). Called once by the CLI.
- ``get_logger(name)``: acquire a logger by name, ensuring that the package
  root logger has at least a ``NullHandler`` attached when not configured.
- ``detection_run(user_id)``: context manager that tags every record emitted
  during one detection run with the user it was run for, so interleaved runs
  (scheduled job plus interactive refresh) stay distinguishable in the logs.

Library modules never attach their own handlers; they call
``get_logger("anomaly_detection.<module>")`` and rely on the host application.
"""

from __future__ import annotations

import contextvars
import logging
import os
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import IO

_PKG_LOGGER_NAME = "anomaly_detection"
_DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s [%(detection_run)s] %(message)s"
_CONFIGURED = False

_current_run: contextvars.ContextVar[str] = contextvars.ContextVar(
    "anomaly_detection_run", default="-"
)


class _RunContextFilter(logging.Filter):
    """Inject ``detection_run`` (``<user>:<run id>`` or ``-``) into each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.detection_run = _current_run.get()
        return True


def _parse_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        level = level.strip().upper()
        if level.isdigit():
            return int(level)
        numeric = getattr(logging, level, None)
        if isinstance(numeric, int):
            return numeric
    env_val = os.getenv("ANOMALY_DETECTION_LOG_LEVEL")
    if env_val and level is None:
        return _parse_level(env_val)
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Configure the package root logger exactly once.

    Parameters
    ----------
    level:
        Logging level as ``int`` or level name. ``None`` falls back to the
        ``ANOMALY_DETECTION_LOG_LEVEL`` environment variable, then ``INFO``.
    fmt:
        Optional format string; may reference ``%(detection_run)s``.
    stream:
        Output stream for the handler (defaults to ``sys.stderr``).
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    resolved = _parse_level(level)
    handler = logging.StreamHandler(stream)
    handler.setLevel(resolved)
    handler.addFilter(_RunContextFilter())
    handler.setFormatter(logging.Formatter(fmt or _DEFAULT_FORMAT))

    logger.setLevel(resolved)
    logger.addHandler(handler)
    logger.propagate = False

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger by name, ensuring safe defaults for library use."""

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


@contextmanager
def detection_run(user_id: str) -> Iterator[str]:
    """Tag log records emitted inside the block with ``<user_id>:<run id>``."""

    run_tag = f"{user_id}:{uuid.uuid4().hex[:8]}"
    token = _current_run.set(run_tag)
    try:
        yield run_tag
    finally:
        _current_run.reset(token)


__all__ = ["configure_logging", "get_logger", "detection_run"]
