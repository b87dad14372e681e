"""Process-wide logging configuration for the CLI."""

from __future__ import annotations

import logging
import sys

_NOISY_LOGGERS = ("sqlalchemy", "alembic", "httpx", "httpcore")


def configure_logging(level: str | int = logging.INFO) -> None:
    """Install a single stderr handler on the root logger.

    Call once, before the first log record is emitted.
    """

    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s %(threadName)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ),
    )
    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.captureWarnings(True)
