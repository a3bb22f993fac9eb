"""Root logging setup for the wst CLI.

Console output defaults to bare messages so the per-tick stats table stays
readable between log lines. ``WST_VERBOSE_CONSOLE=1`` switches the console to
the full timestamped format and ``WST_JSON_LOGS=1`` to one JSON object per
record. An optional log file always gets the full format.
"""
from __future__ import annotations

import json
import logging
import os
import sys

from .env_flags import env_flag

FULL_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
MESSAGE_FORMAT = '%(message)s'

# Chatty third-party loggers kept at WARNING regardless of the root level.
QUIET_LOGGERS = ('urllib3', 'requests', 'uvicorn.access')


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        doc = {
            'ts': record.created,
            'level': record.levelname,
            'logger': record.name,
            'msg': record.getMessage(),
        }
        if record.exc_info:
            doc['exc_info'] = self.formatException(record.exc_info)
        return json.dumps(doc, default=str)


def _console_formatter(fmt: str | None) -> logging.Formatter:
    if env_flag('WST_JSON_LOGS'):
        return JsonFormatter()
    if fmt:
        return logging.Formatter(fmt)
    return logging.Formatter(FULL_FORMAT if env_flag('WST_VERBOSE_CONSOLE') else MESSAGE_FORMAT)


def _attach(root: logging.Logger, handler: logging.Handler, formatter: logging.Formatter, level: int) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    root.addHandler(handler)


def setup_logging(level: str = 'INFO', log_file: str | None = None, fmt: str | None = None) -> logging.Logger:
    """(Re)configure the root logger; existing root handlers are closed first."""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO
    root = logging.getLogger()
    root.setLevel(numeric)
    while root.handlers:
        old = root.handlers[0]
        root.removeHandler(old)
        old.close()

    _attach(root, logging.StreamHandler(sys.stdout), _console_formatter(fmt), numeric)

    if log_file:
        try:
            os.makedirs(os.path.dirname(log_file) or '.', exist_ok=True)
            _attach(root, logging.FileHandler(log_file, encoding='utf-8'), logging.Formatter(FULL_FORMAT), numeric)
        except OSError as e:
            root.error("cannot open log file %s: %s", log_file, e)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return root


__all__ = ["FULL_FORMAT", "JsonFormatter", "setup_logging"]
