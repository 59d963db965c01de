"""Periodic queue status logger."""

from __future__ import annotations

import asyncio

import log
from scheduling.queue import ProcessingQueue
from scheduling.status import QueueStatus


class StatusMonitor:
    """Background loop that logs the queue status whenever it changes.

    Wakes every ``interval_s`` seconds (or immediately on poke()).  Emits a
    warning while the waiting list is at capacity.
    """

    def __init__(self, queue: ProcessingQueue, interval_s: float = 5.0):
        self._queue = queue
        self._interval_s = interval_s
        self._wake = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._last: QueueStatus | None = None
        self.rounds: int = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run_loop())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def poke(self) -> None:
        self._wake.set()

    async def _run_loop(self) -> None:
        log.debug("  StatusMonitor: Started")
        try:
            while True:
                self._wake.clear()
                try:
                    await asyncio.wait_for(self._wake.wait(), timeout=self._interval_s)
                except asyncio.TimeoutError:
                    pass

                try:
                    self._run_round()
                except Exception as ex:
                    log.log_exception(ex, "StatusMonitor: Error in status round")
        except asyncio.CancelledError:
            log.debug("  StatusMonitor: Stopped")
            raise

    def _run_round(self) -> None:
        self.rounds += 1
        status = self._queue.get_status()
        if status == self._last:
            return
        self._last = status

        cfg = self._queue.config
        line = (f"  Queue status: active {status.active_count}/{cfg.max_concurrent}, "
                f"waiting {status.queue_length}/{cfg.max_queue_size}")
        if cfg.max_queue_size and status.queue_length >= cfg.max_queue_size:
            log.warning(f"{line} (queue full, new jobs are being rejected)")
        else:
            log.info(line)
