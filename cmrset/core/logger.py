"""
Process-wide logging for cmrset.

Output goes to stderr as text or one JSON object per line, and optionally to
a log file as well, so a long Earth Engine run leaves a record next to its
outputs. Environment overrides:

* ``CMRSET_LOG_LEVEL``: level name (``DEBUG``, ``INFO``...), default ``INFO``
* ``CMRSET_LOG_FMT``: ``json`` or a :mod:`logging` format string
* ``CMRSET_LOG_FILE``: path of an extra file handler
"""

import json
import logging
import os
from datetime import datetime, timezone
from typing import List, Optional, Union

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"

# The EE client, its HTTP stack and matplotlib's font manager log every request
# or lookup at DEBUG
_NOISY_LOGGERS = ("googleapiclient", "google.auth", "urllib3", "matplotlib")


class JSONFormatter(logging.Formatter):
    """One JSON object per record: timestamp (UTC), level, name, message[, exc_info]."""

    def format(self, record):
        payload = {
            "timestamp": datetime.fromtimestamp(
                record.created, timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def _resolve_level(level: Union[int, str, None]) -> int:
    if level is None:
        level = os.getenv("CMRSET_LOG_LEVEL", "INFO")
    if isinstance(level, int):
        return level
    return getattr(logging, str(level).upper(), logging.INFO)


def _build_handlers(fmt_mode: str, datefmt: str, log_file: Optional[str]) -> List:
    if fmt_mode.lower() == "json":
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(fmt_mode or TEXT_FORMAT, datefmt=datefmt)
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


class Logger:
    """
    Central logging setup for all modules.
    """

    _configured = False

    @staticmethod
    def setup(
        level: Union[int, str, None] = None,
        fmt: Optional[str] = None,
        log_file: Optional[str] = None,
        datefmt: str = "%Y-%m-%d %H:%M:%S",
        force: bool = False,
    ) -> None:
        """
        Configure the root logger once per process.

        Explicit arguments win over the ``CMRSET_LOG_*`` environment
        variables. ``force=True`` replaces an earlier configuration (the CLI
        uses it for ``--verbose`` and ``--log-file``).
        """
        if Logger._configured and not force:
            return
        effective_level = _resolve_level(level)
        fmt_mode = fmt if fmt is not None else os.getenv("CMRSET_LOG_FMT", "")
        log_file = log_file or os.getenv("CMRSET_LOG_FILE")

        root = logging.getLogger()
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in _build_handlers(fmt_mode, datefmt, log_file):
            root.addHandler(handler)
        root.setLevel(effective_level)

        for noisy in _NOISY_LOGGERS:
            logging.getLogger(noisy).setLevel(max(effective_level, logging.WARNING))
        Logger._configured = True

    @staticmethod
    def get_logger(name: str = "cmrset") -> logging.Logger:
        """Return the named logger, configuring logging on first use."""
        Logger.setup()
        return logging.getLogger(name)
