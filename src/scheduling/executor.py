"""Caller side of the queue: enqueue, do the work, always release.

The job-execution layer should go through these helpers instead of calling
enqueue()/release() by hand, so a slot is given back exactly once no matter
how the work ends.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import inspect
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, TypeVar

import log
from scheduling.errors import (
    DuplicateJobError, JobCancelledError, QueueClearedError, QueueError,
    QueueFullError, QueueTimeoutError,
)
from scheduling.job import PriorityTier
from scheduling.queue import ProcessingQueue

T = TypeVar("T")


@asynccontextmanager
async def admitted(
    queue: ProcessingQueue,
    job_id: str,
    owner_id: str | None = None,
    tier: PriorityTier | str | None = PriorityTier.FREE,
) -> AsyncIterator[None]:
    """Hold a processing slot for the body of the ``async with`` block.

    Usage::

        async with admitted(queue, image_id, user_id, PriorityTier.from_plan(plan)):
            await enhance(image_id)

    Queue errors from enqueue() propagate before the body runs; nothing is
    released in that case because nothing was admitted.
    """
    await queue.enqueue(job_id, owner_id, tier)
    try:
        yield
    finally:
        queue.release(job_id)


async def run_job(
    queue: ProcessingQueue,
    job_id: str,
    work: Callable[[], Awaitable[T]] | Callable[[], T],
    *,
    owner_id: str | None = None,
    tier: PriorityTier | str | None = PriorityTier.FREE,
    pool: concurrent.futures.Executor | None = None,
) -> T:
    """Run ``work`` once admitted and return its result.

    Coroutine functions are awaited on the current loop; plain callables run
    on ``pool`` (the loop's default executor when None).  Work exceptions
    propagate after the slot is released.

    A thread cannot be interrupted, so cancelling the caller while sync work
    runs keeps the slot until the thread returns; CancelledError is raised
    after that.
    """
    async with admitted(queue, job_id, owner_id, tier):
        try:
            if inspect.iscoroutinefunction(work):
                return await work()
            loop = asyncio.get_running_loop()
            pending = loop.run_in_executor(pool, work)
            try:
                return await asyncio.shield(pending)
            except asyncio.CancelledError:
                log.warning(f"  Job {job_id} cancelled, holding its slot until the worker thread exits")
                await _wait_out(pending)
                raise
        except Exception as ex:
            log.log_exception(ex, f"Job {job_id} failed")
            raise


async def _wait_out(pending: asyncio.Future) -> None:
    # Repeated cancellation must not release the slot before the thread is done.
    while not pending.done():
        try:
            await asyncio.wait({pending})
        except asyncio.CancelledError:
            continue
    if not pending.cancelled() and pending.exception() is not None:
        log.log_exception(pending.exception(), "Cancelled job raised in its worker thread")


@dataclass(frozen=True)
class Rejection:
    """How a queue rejection should be reported at the system boundary."""
    status_code: int
    error: str
    retryable: bool


_REJECTIONS: list[tuple[type[QueueError], int, str]] = [
    (DuplicateJobError, 409, "This image is already being processed."),
    (QueueFullError, 503, "Processing queue is full. Please try again in a few moments."),
    (QueueTimeoutError, 504, "Timed out waiting for a processing slot. Please try again."),
    (QueueClearedError, 503, "Processing was interrupted. Please try again."),
    (JobCancelledError, 409, "Processing was cancelled."),
]


def describe_rejection(ex: QueueError) -> Rejection:
    """Map a queue error to an HTTP-style status and a user-facing message."""
    for kind, status_code, message in _REJECTIONS:
        if isinstance(ex, kind):
            return Rejection(status_code=status_code, error=message, retryable=kind.retryable)
    return Rejection(status_code=500, error=str(ex), retryable=ex.retryable)


def rejection_payload(ex: QueueError) -> dict[str, Any]:
    rejection = describe_rejection(ex)
    return {"error": rejection.error, "retryable": rejection.retryable, "job_id": ex.job_id}
