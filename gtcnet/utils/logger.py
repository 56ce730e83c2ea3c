"""Utilities for logging."""

import logging
import socket
import sys
from datetime import datetime, timezone
from logging import LoggerAdapter
from typing import Dict, Optional, Tuple

from dask import distributed

LOGGER_NAME = "gtcnet"

# Set once per process, on the first log call.
_WORKER_ID_CACHE: Optional[str] = None

# Maps (hostname, port) -> sequential worker number.
_WORKER_REGISTRY: Dict[Tuple[str, str], int] = {}
_NEXT_WORKER_NUM: int = 1


def _detect_worker_id_once() -> str:
    """Detect the identity of the current process.

    Returns:
        "hostname(N)" inside the N-th dask worker seen by this process, "hostname-main" otherwise.
    """
    global _NEXT_WORKER_NUM

    hostname = socket.gethostname()
    try:
        worker = distributed.get_worker()
    except (ImportError, ValueError, AttributeError):
        return f"{hostname}-main"

    port = worker.address.split(":")[-1]
    key = (hostname, port)
    if key not in _WORKER_REGISTRY:
        _WORKER_REGISTRY[key] = _NEXT_WORKER_NUM
        _NEXT_WORKER_NUM += 1
    return f"{hostname}({_WORKER_REGISTRY[key]})"


def get_worker_id() -> str:
    """Returns the cached worker ID for the current process, e.g. "hornet(1)" or "eagle-main"."""
    global _WORKER_ID_CACHE

    if _WORKER_ID_CACHE is None:
        _WORKER_ID_CACHE = _detect_worker_id_once()
    return _WORKER_ID_CACHE


class WorkerAwareAdapter(LoggerAdapter):
    """LoggerAdapter that injects the worker ID into every LogRecord.

    Detection is lazy: the dask worker context is not available yet at import time, when module-level loggers are
    created.
    """

    def __init__(self, logger: logging.Logger) -> None:
        super().__init__(logger, {})

    def process(self, msg, kwargs):
        kwargs.setdefault("extra", {})
        kwargs["extra"]["worker_id"] = get_worker_id()
        return msg, kwargs


class UTCFormatter(logging.Formatter):
    """Formatter with UTC timestamps."""

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        if datefmt:
            return dt.strftime(datefmt)
        return dt.strftime("%Y-%m-%d %H:%M:%S")


def get_logger() -> LoggerAdapter:
    """Get the package logger, wrapped to carry worker information.

    Log format:
        "2025-10-28 00:00:45 [hornet(1)] [match_ingestion.py] WARNING: message"

    Returns:
        Configured logger adapter instance.
    """
    logger = logging.getLogger(LOGGER_NAME)

    if not logger.handlers:
        logger.setLevel(logging.INFO)
        handler = logging.StreamHandler(sys.stdout)
        fmt = "%(asctime)s [%(worker_id)s] [%(filename)s] %(levelname)s: %(message)s"
        handler.setFormatter(UTCFormatter(fmt, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(handler)

    return WorkerAwareAdapter(logger)
