"""Admission queue: bounded concurrency with tier priority and per-job dedup."""

from __future__ import annotations

import asyncio
import itertools
import threading
import time
from typing import Callable

import log
from config import QueueConfig
from scheduling.errors import (
    DuplicateJobError, JobCancelledError, QueueClearedError, QueueError,
    QueueFullError, QueueTimeoutError,
)
from scheduling.job import JobTicket, PriorityTier, TicketState
from scheduling.status import QueueStatus


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


def _complete(future: asyncio.Future[None], timer: asyncio.TimerHandle | None,
              error: BaseException | None) -> None:
    # Runs on the waiter's loop; the caller may already have been cancelled.
    if timer is not None:
        timer.cancel()
    if future.done():
        return
    if error is None:
        future.set_result(None)
    else:
        future.set_exception(error)


class ProcessingQueue:
    """Gate image-processing jobs by a global in-flight limit.

    A job holds its slot from admission until the caller calls release(),
    whatever the outcome of the work.  Jobs that cannot be admitted right away
    wait in a list ordered by (rank, insertion order), where
    rank = enqueue time (ms) - tier offset.  Lower rank is served first.

    Bookkeeping is guarded by a threading lock so release()/get_status() may be
    called from worker threads; waiters are always woken on their own loop.
    """

    def __init__(self, config: QueueConfig | None = None,
                 clock: Callable[[], float] | None = None):
        self._config = config or QueueConfig()
        self._clock = clock or _monotonic_ms
        self._waiting: list[JobTicket] = []
        self._running: set[str] = set()
        self._seq = itertools.count()
        self._lock = threading.Lock()

    @property
    def config(self) -> QueueConfig:
        return self._config

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._running)

    @property
    def queue_length(self) -> int:
        with self._lock:
            return len(self._waiting)

    def is_tracked(self, job_id: str) -> bool:
        with self._lock:
            return self._is_tracked_locked(job_id)

    async def enqueue(
        self,
        job_id: str,
        owner_id: str | None = None,
        tier: PriorityTier | str | None = PriorityTier.FREE,
    ) -> None:
        """Wait for a processing slot.

        Returns once the job is admitted; the caller must then release(job_id)
        exactly once when the work is done.  Raises DuplicateJobError or
        QueueFullError immediately, or QueueTimeoutError (or the clear/cancel
        errors) if the job is rejected while waiting.
        """
        if not job_id:
            raise ValueError("job_id must be a non-empty string")
        tier = PriorityTier.coerce(tier)
        loop = asyncio.get_running_loop()

        with self._lock:
            if self._is_tracked_locked(job_id):
                raise DuplicateJobError(job_id)
            if len(self._waiting) >= self._config.max_queue_size:
                log.warning(f"  Queue: Rejected {job_id}, queue full "
                            f"({len(self._waiting)}/{self._config.max_queue_size} waiting)")
                raise QueueFullError(job_id, self._config.max_queue_size)

            now = self._clock()
            ticket = JobTicket(
                job_id=job_id,
                tier=tier,
                rank=now - self._config.boost_for(tier),
                enqueued_at=now,
                seq=next(self._seq),
                owner_id=owner_id,
                future=loop.create_future(),
                loop=loop,
            )
            self._waiting.append(ticket)
            self._waiting.sort(key=lambda t: t.sort_key)
            ticket.timer = loop.call_later(
                self._config.processing_timeout_s, self._expire, ticket)
            log.debug(f"  Queue: Enqueued {ticket} (waiting: {len(self._waiting)}, "
                      f"active: {len(self._running)}/{self._config.max_concurrent})")
            self._admit_locked()

        try:
            await ticket.future
        except asyncio.CancelledError:
            self._abandon(ticket)
            raise

    def release(self, job_id: str) -> None:
        """Free the slot held by job_id and admit the next waiter.  Unknown IDs are ignored."""
        with self._lock:
            if job_id not in self._running:
                log.debug(f"  Queue: release({job_id}) ignored, not running")
                return
            self._running.discard(job_id)
            log.debug(f"  Queue: Released {job_id} "
                      f"(active: {len(self._running)}/{self._config.max_concurrent})")
            self._admit_locked()

    def cancel(self, job_id: str) -> bool:
        """Withdraw a waiting job.  Returns False if it is running or unknown."""
        with self._lock:
            ticket = self._find_waiting_locked(job_id)
            if ticket is None:
                return False
            self._waiting.remove(ticket)
            self._reject_locked(ticket, JobCancelledError(job_id))
            log.debug(f"  Queue: Cancelled {job_id} (waiting: {len(self._waiting)})")
            return True

    def get_status(self) -> QueueStatus:
        with self._lock:
            return QueueStatus(
                queue_length=len(self._waiting),
                active_count=len(self._running),
                processing_job_ids=sorted(self._running),
            )

    def clear(self) -> None:
        """Drop all waiting and running jobs.

        Waiting callers are rejected with QueueClearedError rather than left
        parked until their timeout.
        """
        with self._lock:
            dropped = self._waiting
            self._waiting = []
            self._running.clear()
            for ticket in dropped:
                self._reject_locked(ticket, QueueClearedError(ticket.job_id))
        if dropped:
            log.info(f"  Queue: Cleared, rejected {len(dropped)} waiting job(s)")

    # ------------------------------------------------------------------
    # Internals (call with self._lock held unless noted)
    # ------------------------------------------------------------------

    def _is_tracked_locked(self, job_id: str) -> bool:
        return job_id in self._running or self._find_waiting_locked(job_id) is not None

    def _find_waiting_locked(self, job_id: str) -> JobTicket | None:
        for ticket in self._waiting:
            if ticket.job_id == job_id:
                return ticket
        return None

    def _admit_locked(self) -> None:
        timeout_ms = self._config.processing_timeout_ms
        while len(self._running) < self._config.max_concurrent and self._waiting:
            self._waiting.sort(key=lambda t: t.sort_key)
            ticket = self._waiting.pop(0)

            waited = ticket.waited_ms(self._clock())
            if waited > timeout_ms:
                log.warning(f"  Queue: {ticket.job_id} timed out at admission "
                            f"after {waited / 1000.0:.1f}s")
                self._reject_locked(ticket, QueueTimeoutError(ticket.job_id, waited / 1000.0))
                continue

            self._running.add(ticket.job_id)
            self._settle_locked(ticket, TicketState.ADMITTED, None)
            log.debug(f"  Queue: Admitted {ticket} after {waited / 1000.0:.2f}s "
                      f"(active: {len(self._running)}/{self._config.max_concurrent})")

    def _reject_locked(self, ticket: JobTicket, error: QueueError) -> None:
        self._settle_locked(ticket, TicketState.REJECTED, error)

    def _settle_locked(self, ticket: JobTicket, state: TicketState,
                       error: QueueError | None) -> None:
        # The only WAITING -> * transition: the waiter is woken exactly once.
        if ticket.state is not TicketState.WAITING:
            return
        ticket.state = state
        timer, ticket.timer = ticket.timer, None
        if ticket.future is None or ticket.loop is None or ticket.loop.is_closed():
            return
        ticket.loop.call_soon_threadsafe(_complete, ticket.future, timer, error)

    def _expire(self, ticket: JobTicket) -> None:
        """Timer callback (runs on the waiter's loop)."""
        with self._lock:
            if ticket.state is not TicketState.WAITING:
                return
            self._waiting.remove(ticket)
            waited_s = ticket.waited_ms(self._clock()) / 1000.0
            self._reject_locked(ticket, QueueTimeoutError(ticket.job_id, waited_s))
        log.warning(f"  Queue: {ticket.job_id} timed out after waiting {waited_s:.1f}s")

    def _abandon(self, ticket: JobTicket) -> None:
        """The enqueue() caller was cancelled: drop the ticket or give back its slot."""
        with self._lock:
            if ticket.state is TicketState.WAITING:
                self._waiting.remove(ticket)
                self._settle_locked(ticket, TicketState.REJECTED, None)
                log.debug(f"  Queue: {ticket.job_id} abandoned while waiting")
                return
            admitted = ticket.state is TicketState.ADMITTED
        if admitted:
            log.debug(f"  Queue: {ticket.job_id} abandoned after admission, releasing slot")
            self.release(ticket.job_id)
