"""Logging configuration for remotepy.

The library only ever logs to `logging.getLogger(__name__)` loggers below
`remotepy`. Nothing is emitted unless the application configures logging or
`default_configuration` is called with a log file (or `REMOTEPY_LOG` set).
"""
from __future__ import annotations

import json
import logging
import os
import time

from logging import NullHandler

from ._typing import MYPY_CHECK_RUNNING

if MYPY_CHECK_RUNNING:
    from typing import List, Optional


logger = logging.getLogger(__name__)


LOG_ENV_VAR = "REMOTEPY_LOG"

_default_handler = NullHandler()
_new_handler = None
_root_logger = logging.getLogger("remotepy")
_root_logger.addHandler(_default_handler)


def default_configuration(log_file: Optional[str] = None) -> None:
    """Send all remotepy logging to a file, if one is requested.

    Args:
        log_file: path of the log file, falls back to `$REMOTEPY_LOG`

    Raises:
        PermissionError if the log file is not writable
    """
    global _new_handler

    if log_file is None:
        log_file = os.environ.get(LOG_ENV_VAR)

    if not log_file:
        return

    reset_configuration()

    # Let exception propagate.
    with open(log_file, "a"):
        pass

    formatter = DefaultSingleLineLogFormatter(["process", "pid"])
    _new_handler = logging.FileHandler(log_file, encoding="utf-8")
    _new_handler.setFormatter(formatter)

    def handle_error(record):
        logger.exception("Logging exception handling %r", record)

    _new_handler.handleError = handle_error
    _root_logger.addHandler(_new_handler)
    _root_logger.setLevel(logging.DEBUG)
    _root_logger.propagate = False


def reset_configuration() -> None:
    global _new_handler

    if _new_handler is not None:
        _root_logger.removeHandler(_new_handler)
        _new_handler.close()
        _new_handler = None
    _root_logger.propagate = True


class UTCFormatter(logging.Formatter):
    converter = time.gmtime


class DefaultSingleLineLogFormatter(UTCFormatter):
    _format = "{asctime}.{msecs:03.0f} {levelname} {name} {message}"
    _date_format = "%Y-%m-%dT%H:%M:%S"

    def __init__(self, rest_attrs: Optional[List[str]] = None):
        """
        Args:
            rest_attrs: attributes from the record that should be included in the
                trailing json data
        """
        super().__init__(self._format, self._date_format, style="{")
        if not rest_attrs:
            self._rest = []
        else:
            self._rest = rest_attrs

    def formatTime(self, record, datefmt=None):
        ct = self.converter(record.created)
        return time.strftime(datefmt, ct)

    def format(self, record):
        s = super().format(record)
        s = s.replace("\n", "\\n")
        d = {}
        for attr in self._rest:
            value = getattr(record, attr, None)
            if value is not None:
                d[attr] = value
        rest = json.dumps(d)
        return f"{s} {rest}"
