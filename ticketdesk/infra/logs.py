"""Process-wide logging setup."""

from __future__ import annotations

import logging
import sys
import time

FORMAT = "%(asctime)sZ %(name)s %(levelname)s %(message)s"
DATEFMT = "%Y-%m-%dT%H:%M:%S"

_handler: logging.Handler | None = None


def configure_logging(level: str = "INFO") -> None:
    """
    Emit ISO timestamps (UTC) to stdout. Safe to call again; the level
    of the last call wins and the handler is installed only once.
    """
    global _handler

    root = logging.getLogger()
    if _handler is None:
        _handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter(fmt=FORMAT, datefmt=DATEFMT)
        formatter.converter = time.gmtime
        _handler.setFormatter(formatter)
        root.addHandler(_handler)

    resolved = logging.getLevelName(level.upper())
    root.setLevel(resolved if isinstance(resolved, int) else logging.INFO)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
