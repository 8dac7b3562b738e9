"""
Per-run log trail.

A RunLog is created by the caller of a retention or replication pass and
passed into every step. Entries are timestamped, kept in memory for the
history record and forwarded to a standard logging.Logger.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional


class LogLevel(Enum):
    DEBUG = 'DEBUG'
    INFO = 'INFO'
    WARNING = 'WARNING'
    ERROR = 'ERROR'
    SUCCESS = 'SUCCESS'
    SIMULATE = 'SIMULATE'


_PYTHON_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.SUCCESS: logging.INFO,
    LogLevel.SIMULATE: logging.INFO,
}


@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime
    level: LogLevel
    message: str
    instance_key: Optional[str] = None

    def format(self) -> str:
        stamp = self.timestamp.strftime('%Y-%m-%d %H:%M:%S UTC')
        return f"[{stamp}] {self.level.value} {self.message}"


class RunLog:
    """
    Collects log entries for one run.

    Args:
        logger: Logger to forward entries to (default: this module's logger)
        prefix: Text prepended to forwarded messages, e.g. a destination name
    """

    def __init__(self, logger: Optional[logging.Logger] = None, prefix: str = ''):
        self.logger = logger or logging.getLogger(__name__)
        self.prefix = prefix
        self.entries: List[LogEntry] = []

    def log(self, message: str, level: LogLevel = LogLevel.INFO, instance_key: Optional[str] = None):
        entry = LogEntry(datetime.now(timezone.utc), level, message, instance_key)
        self.entries.append(entry)
        forwarded = f"[{self.prefix}] {message}" if self.prefix else message
        self.logger.log(_PYTHON_LEVELS[level], forwarded)

    def debug(self, message: str, instance_key: Optional[str] = None):
        self.log(message, LogLevel.DEBUG, instance_key)

    def info(self, message: str, instance_key: Optional[str] = None):
        self.log(message, LogLevel.INFO, instance_key)

    def warning(self, message: str, instance_key: Optional[str] = None):
        self.log(message, LogLevel.WARNING, instance_key)

    def error(self, message: str, instance_key: Optional[str] = None):
        self.log(message, LogLevel.ERROR, instance_key)

    def success(self, message: str, instance_key: Optional[str] = None):
        self.log(message, LogLevel.SUCCESS, instance_key)

    def simulate(self, message: str, instance_key: Optional[str] = None):
        self.log(message, LogLevel.SIMULATE, instance_key)

    def lines(self, since: int = 0) -> List[str]:
        return [e.format() for e in self.entries[since:]]

    def by_instance(self, since: int = 0) -> Dict[str, List[str]]:
        grouped: Dict[str, List[str]] = {}
        for entry in self.entries[since:]:
            if entry.instance_key is not None:
                grouped.setdefault(entry.instance_key, []).append(entry.format())
        return grouped

    def has_level(self, level: LogLevel) -> bool:
        return any(e.level is level for e in self.entries)

    def __len__(self):
        return len(self.entries)
