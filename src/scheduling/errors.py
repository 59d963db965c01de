"""Errors surfaced to ProcessingQueue.enqueue() callers."""

from __future__ import annotations


class QueueError(Exception):
    """Base class for admission failures.

    ``retryable`` tells the caller whether re-enqueueing the same job later
    can succeed.
    """
    retryable: bool = False

    def __init__(self, job_id: str, message: str):
        super().__init__(message)
        self.job_id = job_id


class DuplicateJobError(QueueError):
    """The job is already waiting or running; the existing one is authoritative."""
    retryable = False

    def __init__(self, job_id: str):
        super().__init__(job_id, f"Job {job_id} is already being processed")


class QueueFullError(QueueError):
    """The waiting list is at capacity (backpressure)."""
    retryable = True

    def __init__(self, job_id: str, max_queue_size: int):
        super().__init__(job_id, "Processing queue is full. Please try again later.")
        self.max_queue_size = max_queue_size


class QueueTimeoutError(QueueError, TimeoutError):
    """The job waited longer than processing_timeout_s without being admitted."""
    retryable = True

    def __init__(self, job_id: str, waited_s: float):
        super().__init__(job_id, f"Job {job_id} timed out after waiting {waited_s:.1f}s")
        self.waited_s = waited_s


class QueueClearedError(QueueError):
    retryable = True

    def __init__(self, job_id: str):
        super().__init__(job_id, f"Job {job_id} was dropped because the queue was cleared")


class JobCancelledError(QueueError):
    retryable = False

    def __init__(self, job_id: str):
        super().__init__(job_id, f"Job {job_id} was cancelled while waiting")
