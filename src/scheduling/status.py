"""Queue status snapshot shared by the status monitor and the entry point."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from state import AppState


class QueueStatus(BaseModel):
    """Point-in-time view of the admission queue."""
    queue_length: int = 0
    active_count: int = 0
    processing_job_ids: list[str] = Field(default_factory=list)


def compute_status_snapshot(state: AppState) -> dict[str, Any]:
    """Build a status snapshot: live queue status plus its configured limits.

    Returns dict with: queue_length, active_count, processing_job_ids,
    max_concurrent, max_queue_size, processing_timeout_s, available_slots.
    """
    queue = state.queue
    status = queue.get_status()
    cfg = queue.config

    snapshot: dict[str, Any] = status.model_dump()
    snapshot.update({
        "max_concurrent": cfg.max_concurrent,
        "max_queue_size": cfg.max_queue_size,
        "processing_timeout_s": cfg.processing_timeout_s,
        "available_slots": max(cfg.max_concurrent - status.active_count, 0),
    })
    return snapshot
