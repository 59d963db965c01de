"""Thread-safe timestamped logging to stdout + file.

Stdout receives lines at or above the configured minimum level.  The file
sink, when enabled, always receives ALL levels (including DEBUG).
"""

from __future__ import annotations

import os
import threading
import traceback
from datetime import datetime
from enum import Enum
from typing import TextIO


class LogLevel(Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"

    @staticmethod
    def parse(value: str) -> "LogLevel":
        """Parse a level name (case-insensitive).  Raises ValueError if unknown."""
        try:
            return LogLevel(value.strip().upper())
        except ValueError:
            raise ValueError(f"Unknown log level: {value!r}") from None


_LEVEL_ORDER: dict[LogLevel, int] = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.WARNING: 2,
    LogLevel.ERROR: 3,
}

_lock = threading.Lock()
_log_file: TextIO | None = None
_log_path: str | None = None
_stdout_min_level: LogLevel = LogLevel.INFO


def init_file(path: str) -> None:
    """Open the log file for appending. Creates parent directories if needed."""
    global _log_file, _log_path
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with _lock:
        if _log_file is not None:
            _log_file.close()
        _log_file = open(path, "a", encoding="utf-8")
        _log_path = path


def close_file() -> None:
    """Close the file sink, if open.  Stdout logging continues."""
    global _log_file, _log_path
    with _lock:
        if _log_file is not None:
            _log_file.close()
        _log_file = None
        _log_path = None


def get_log_path() -> str | None:
    """Return the active log file path, or None if file logging is not enabled."""
    return _log_path


def set_level(level: LogLevel) -> None:
    """Set the minimum level printed to stdout."""
    global _stdout_min_level
    with _lock:
        _stdout_min_level = level


def get_level() -> LogLevel:
    return _stdout_min_level


def write_line(message: str, level: LogLevel = LogLevel.INFO) -> None:
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
    line = f"[{timestamp}] [{level.value}] {message}"
    with _lock:
        if _LEVEL_ORDER[level] >= _LEVEL_ORDER[_stdout_min_level]:
            print(line, flush=True)
        if _log_file is not None:
            _log_file.write(line + "\n")
            _log_file.flush()


def log_exception(ex: BaseException, context: str | None = None) -> None:
    tb = traceback.format_exception(type(ex), ex, ex.__traceback__)
    tb_str = "".join(tb).rstrip()
    if context:
        msg = f"{context}\n{type(ex).__name__}: {ex}\n{tb_str}"
    else:
        msg = f"{type(ex).__name__}: {ex}\n{tb_str}"
    write_line(msg, LogLevel.ERROR)


def debug(message: str) -> None:
    write_line(message, LogLevel.DEBUG)


def info(message: str) -> None:
    write_line(message, LogLevel.INFO)


def warning(message: str) -> None:
    write_line(message, LogLevel.WARNING)


def error(message: str) -> None:
    write_line(message, LogLevel.ERROR)
