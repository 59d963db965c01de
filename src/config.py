"""INI config parser for roomlift.ini, with environment overrides."""

from __future__ import annotations

import configparser
import os
from dataclasses import dataclass, field
from typing import Mapping

import log
from scheduling.job import PriorityTier


# Environment variables that override [queue] settings (deployment knobs).
ENV_MAX_CONCURRENT = "MAX_CONCURRENT_PROCESSING"
ENV_MAX_QUEUE_SIZE = "MAX_QUEUE_SIZE"


def _default_priority_boost() -> dict[str, float]:
    return {
        PriorityTier.PROFESSIONAL.value: 10.0,
        PriorityTier.ENTERPRISE.value: 20.0,
    }


@dataclass
class QueueConfig:
    max_concurrent: int = 5              # jobs admitted simultaneously
    max_queue_size: int = 50             # jobs allowed to wait (excludes running)
    processing_timeout_s: float = 300.0  # max time a job may wait for a slot
    # Rank offset in milliseconds per tier; absent tiers get 0.
    priority_boost: dict[str, float] = field(default_factory=_default_priority_boost)

    def __post_init__(self):
        if self.max_concurrent < 0:
            raise ValueError(f"max_concurrent must be >= 0, got {self.max_concurrent}")
        if self.max_queue_size < 0:
            raise ValueError(f"max_queue_size must be >= 0, got {self.max_queue_size}")
        if self.processing_timeout_s <= 0:
            raise ValueError(f"processing_timeout_s must be > 0, got {self.processing_timeout_s}")
        boosts: dict[str, float] = {}
        for name, offset in self.priority_boost.items():
            key = str(name).strip().lower()
            if key not in PriorityTier.names():
                raise ValueError(f"priority_boost: unknown tier '{name}'")
            boosts[key] = float(offset)
        self.priority_boost = boosts

    @property
    def processing_timeout_ms(self) -> float:
        return self.processing_timeout_s * 1000.0

    def boost_for(self, tier: PriorityTier) -> float:
        return self.priority_boost.get(tier.value, 0.0)


@dataclass
class MonitorConfig:
    status_interval_s: float = 5.0  # status log interval


@dataclass
class LogConfig:
    level: str = "INFO"  # stdout minimum level
    file: str = ""       # empty = no file sink


def parse_priority_boost(raw: str) -> dict[str, float]:
    """Parse ``"professional:10, enterprise:20"`` into a tier -> offset mapping."""
    boosts: dict[str, float] = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        name, sep, value = entry.partition(":")
        if not sep:
            raise ValueError(f"priority_boost entry '{entry}' must be tier:offset")
        try:
            boosts[name.strip().lower()] = float(value)
        except ValueError:
            raise ValueError(f"priority_boost entry '{entry}' has a non-numeric offset") from None
    return boosts


def format_priority_boost(boosts: Mapping[str, float]) -> str:
    return ", ".join(f"{name}:{offset:g}" for name, offset in boosts.items())


def _env_int(environ: Mapping[str, str], name: str) -> int | None:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw.strip())
    except ValueError:
        log.warning(f"  Config: ignoring {name}={raw!r} (not an integer)")
        return None


@dataclass
class RoomliftConfig:
    queue: QueueConfig = field(default_factory=QueueConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    log: LogConfig = field(default_factory=LogConfig)

    @staticmethod
    def default() -> "RoomliftConfig":
        return RoomliftConfig()

    def apply_env(self, environ: Mapping[str, str] | None = None) -> "RoomliftConfig":
        """Apply MAX_CONCURRENT_PROCESSING / MAX_QUEUE_SIZE overrides in place."""
        if environ is None:
            environ = os.environ

        max_concurrent = _env_int(environ, ENV_MAX_CONCURRENT)
        max_queue_size = _env_int(environ, ENV_MAX_QUEUE_SIZE)
        if max_concurrent is None and max_queue_size is None:
            return self

        # Rebuild so the override goes through QueueConfig validation
        self.queue = QueueConfig(
            max_concurrent=self.queue.max_concurrent if max_concurrent is None else max_concurrent,
            max_queue_size=self.queue.max_queue_size if max_queue_size is None else max_queue_size,
            processing_timeout_s=self.queue.processing_timeout_s,
            priority_boost=dict(self.queue.priority_boost),
        )
        return self

    @staticmethod
    def load_from_file(path: str) -> "RoomliftConfig":
        if not os.path.isfile(path):
            raise FileNotFoundError(f"Config file not found: {path}")

        parser = configparser.ConfigParser()
        with open(path, encoding="utf-8") as f:
            parser.read_file(f)

        # Parse [queue] section
        defaults = QueueConfig()
        queue = defaults
        if parser.has_section("queue"):
            q = parser["queue"]
            boost_raw = q.get("priority_boost", None)
            queue = QueueConfig(
                max_concurrent=q.getint("max_concurrent", defaults.max_concurrent),
                max_queue_size=q.getint("max_queue_size", defaults.max_queue_size),
                processing_timeout_s=q.getfloat("processing_timeout_s", defaults.processing_timeout_s),
                priority_boost=(parse_priority_boost(boost_raw)
                                if boost_raw is not None else defaults.priority_boost),
            )

        # Parse [monitor] section
        monitor = MonitorConfig()
        if parser.has_section("monitor"):
            m = parser["monitor"]
            monitor.status_interval_s = m.getfloat("status_interval_s", monitor.status_interval_s)

        # Parse [log] section
        log_config = LogConfig()
        if parser.has_section("log"):
            s = parser["log"]
            log_config.level = s.get("level", log_config.level)
            log_config.file = s.get("file", log_config.file)
        log.LogLevel.parse(log_config.level)

        return RoomliftConfig(queue=queue, monitor=monitor, log=log_config)
