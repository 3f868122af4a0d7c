"""
Logging setup for the ``waypoint-tour`` command-line tool.

Engine modules only call ``logging.getLogger(__name__)``; handlers are
installed once by the process entry point. Records at INFO and below go to
stdout, WARNING and above to stderr, each tagged with the service name.

Env options (optional):
- TOUR_LOG_LEVEL=DEBUG|INFO|WARNING|ERROR (default INFO)
- TOUR_LOG_JSON=1 (one JSON object per record)
- TOUR_LOG_FILE=/path/to/file.log (RotatingFileHandler)
- TOUR_LOG_DIR=/path/to/dir (uses <service>.log when TOUR_LOG_FILE unset)
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import List, Optional

__all__ = [
    "setup_logging",
    "reset_logging",
]

_TRUTHY = ('1', 'true', 'yes', 'on')
_installed: List[logging.Handler] = []


class _ServiceFilter(logging.Filter):
    """Stamps ``record.service`` so formatters can always reference it"""

    def __init__(self, service: str):
        super().__init__()
        self.service = service

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, 'service', None):
            record.service = self.service
        return True


class _LevelRangeFilter(logging.Filter):
    def __init__(self, low: int = logging.NOTSET, high: int = logging.CRITICAL):
        super().__init__()
        self.low = low
        self.high = high

    def filter(self, record: logging.LogRecord) -> bool:
        return self.low <= record.levelno <= self.high


class _JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            'ts': self.formatTime(record, datefmt='%Y-%m-%dT%H:%M:%S'),
            'level': record.levelname,
            'name': record.name,
            'service': getattr(record, 'service', ''),
            'message': record.getMessage(),
        }
        if record.exc_info:
            payload['exc_info'] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _log_file_path(service: str) -> Optional[str]:
    log_path = os.getenv('TOUR_LOG_FILE')
    if log_path:
        return log_path
    log_dir = os.getenv('TOUR_LOG_DIR')
    if log_dir:
        return str(Path(log_dir) / f'{service}.log')
    return None


def setup_logging(service: str, level: Optional[str] = None, json_format: Optional[bool] = None) -> None:
    """Install the stdout/stderr (and optional file) handlers; later calls are no-ops.

    Args:
        service: label attached to every record (e.g. 'waypoint-tour')
        level: level name overriding TOUR_LOG_LEVEL
        json_format: force JSON output on or off, else TOUR_LOG_JSON decides
    """
    if _installed:
        return

    root = logging.getLogger()
    level_name = (level or os.getenv('TOUR_LOG_LEVEL', 'INFO')).upper()
    root.setLevel(getattr(logging, level_name, logging.INFO))

    if json_format is None:
        json_format = os.getenv('TOUR_LOG_JSON', '').lower() in _TRUTHY
    if json_format:
        formatter: logging.Formatter = _JSONFormatter()
    else:
        formatter = logging.Formatter('%(asctime)s %(levelname)s %(name)s [%(service)s] %(message)s')

    stdout_handler = logging.StreamHandler(stream=sys.stdout)
    stdout_handler.addFilter(_LevelRangeFilter(high=logging.INFO))
    stderr_handler = logging.StreamHandler(stream=sys.stderr)
    stderr_handler.addFilter(_LevelRangeFilter(low=logging.WARNING))
    handlers: List[logging.Handler] = [stdout_handler, stderr_handler]

    log_path = _log_file_path(service)
    if log_path:
        try:
            Path(log_path).parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.handlers.RotatingFileHandler(
                log_path, maxBytes=5 * 1024 * 1024, backupCount=5, encoding='utf-8'
            ))
        except OSError as exc:
            root.warning(f"Could not open log file {log_path} ({exc}), using console only")

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(_ServiceFilter(service))
        root.addHandler(handler)
        _installed.append(handler)


def reset_logging() -> None:
    """Remove the handlers installed by setup_logging so it can run again."""
    root = logging.getLogger()
    while _installed:
        handler = _installed.pop()
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.WARNING)
