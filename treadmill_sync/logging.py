"""Logging configuration helpers."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Deque, Dict, List, Optional

from . import constants

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
PACKAGE_LOGGER = "treadmill_sync"

KIND_INFO = "info"
KIND_ERROR = "error"
KIND_SUCCESS = "success"
KIND_TX = "tx"


@dataclass(frozen=True, slots=True)
class LogEntry:
    timestamp: float
    message: str
    kind: str

    def as_dict(self) -> Dict[str, object]:
        return {
            "timestamp": int(self.timestamp * 1000),
            "message": self.message,
            "type": self.kind,
        }


class LogBuffer(logging.Handler):
    """Keep the most recent log entries for the status surface.

    Records may carry ``extra={"kind": ...}``; otherwise warnings and errors
    are tagged ``error`` and everything else ``info``.
    """

    def __init__(self, capacity: int = constants.LOG_BUFFER_SIZE) -> None:
        super().__init__(level=logging.DEBUG)
        self._entries: Deque[LogEntry] = deque(maxlen=capacity)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            kind = getattr(record, "kind", None)
            if kind is None:
                kind = KIND_ERROR if record.levelno >= logging.WARNING else KIND_INFO
            self._entries.append(LogEntry(record.created, record.getMessage(), kind))
        except Exception:  # pragma: no cover
            self.handleError(record)

    def entries(self, limit: Optional[int] = None) -> List[LogEntry]:
        """Return entries newest first."""

        items = list(reversed(self._entries))
        if limit is not None:
            items = items[:limit]
        return items

    def clear(self) -> None:
        self._entries.clear()


def configure_logging(
    level: str = "INFO",
    *,
    log_path: Optional[Path] = None,
    log_network: bool = False,
    buffer: Optional[LogBuffer] = None,
) -> None:
    """Configure root logging handlers.

    Parameters
    ----------
    level:
        Log level name for console and file output, e.g. "INFO".
    log_path:
        Optional filesystem path for a file handler. When absent, only console logging is configured.
    log_network:
        When true, keep verbose aiohttp logging to aid diagnostics.
    buffer:
        Optional in-memory handler attached to the package logger. It sees
        debug records (every send) regardless of the console level.
    """

    logging.captureWarnings(True)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    resolved_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=resolved_level, format=LOG_FORMAT)

    if log_path:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    if buffer is not None:
        for handler in root.handlers:
            handler.setLevel(resolved_level)
        package_logger.setLevel(logging.DEBUG)
        if buffer not in package_logger.handlers:
            package_logger.addHandler(buffer)

    if not log_network:
        logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
        logging.getLogger("aiohttp.client").setLevel(logging.WARNING)
        logging.getLogger("asyncio").setLevel(logging.WARNING)
