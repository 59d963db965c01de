"""Tests for the queue status snapshot."""

import pytest

from config import QueueConfig, RoomliftConfig
from scheduling.status import QueueStatus, compute_status_snapshot
from state import AppState


class TestStatusSnapshot:

    def test_queue_status_defaults(self):
        status = QueueStatus()
        assert status.model_dump() == {
            "queue_length": 0,
            "active_count": 0,
            "processing_job_ids": [],
        }

    @pytest.mark.asyncio
    async def test_snapshot_includes_limits(self):
        config = RoomliftConfig(queue=QueueConfig(max_concurrent=3, max_queue_size=4,
                                                  processing_timeout_s=12))
        state = AppState.from_config(config)
        await state.queue.enqueue("img-1")

        snapshot = compute_status_snapshot(state)

        assert snapshot == {
            "queue_length": 0,
            "active_count": 1,
            "processing_job_ids": ["img-1"],
            "max_concurrent": 3,
            "max_queue_size": 4,
            "processing_timeout_s": 12.0,
            "available_slots": 2,
        }
