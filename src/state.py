"""Application state: the composition root that owns the processing queue."""

from __future__ import annotations

from config import RoomliftConfig
from scheduling.monitor import StatusMonitor
from scheduling.queue import ProcessingQueue


class AppState:
    """Per-process state.  Build one in main() and pass it to whatever enqueues jobs."""

    def __init__(self, config: RoomliftConfig, queue: ProcessingQueue,
                 monitor: StatusMonitor | None = None):
        self.config = config
        self.queue = queue
        self.monitor = monitor

    @staticmethod
    def from_config(config: RoomliftConfig) -> "AppState":
        queue = ProcessingQueue(config.queue)
        monitor = StatusMonitor(queue, interval_s=config.monitor.status_interval_s)
        return AppState(config=config, queue=queue, monitor=monitor)
