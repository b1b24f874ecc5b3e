# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""Logging setup for applications embedding the verifier.

The library itself only creates ``nzcp.*`` loggers; it never installs
handlers on import.  Applications call :func:`configure_logging` once at
startup.
"""

from __future__ import annotations

import datetime
import json
import logging
import sys
from typing import Any, Dict

from nzcp.config import LOG_FORMAT, LOG_LEVEL

__all__ = ["configure_logging"]

_PLAIN_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class _JSONFormatter(logging.Formatter):
    """One JSON object per log line.

    Fields: ``timestamp`` (ISO 8601 UTC), ``level``, ``logger``,
    ``message``, ``module`` and ``funcName``, plus ``exception`` holding
    the formatted traceback when the record carries one.
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.datetime.fromtimestamp(record.created, tz=datetime.timezone.utc)
        log_entry: Dict[str, Any] = {
            "timestamp": timestamp.isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "funcName": record.funcName,
        }
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def configure_logging(level: str = LOG_LEVEL, fmt: str = LOG_FORMAT) -> None:
    """Install a single stdout handler on the root logger.

    Parameters
    ----------
    level : str
        Level name for the root logger (``DEBUG``, ``INFO``, ...).
    fmt : str
        ``"json"`` for structured output, anything else for plain text.
    """
    root = logging.getLogger()

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    if fmt.lower() == "json":
        handler.setFormatter(_JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_PLAIN_FORMAT))

    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
