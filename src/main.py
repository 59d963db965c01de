"""Entry point: config, queue setup, load drill."""

from __future__ import annotations

import argparse
import asyncio
import os
import random
import sys
import time
from dataclasses import dataclass, field

import log
from config import LogConfig, QueueConfig, RoomliftConfig, format_priority_boost
from scheduling.errors import QueueError
from scheduling.executor import rejection_payload, run_job
from scheduling.job import PriorityTier
from scheduling.status import compute_status_snapshot
from state import AppState


_CONFIG_CANDIDATES = [
    "roomlift.ini",
    "conf/roomlift.ini",
]

_DEFAULT_CONFIG_PATH = "conf/roomlift.ini"

# Plan names as stored on tenants; None = no subscription.
_DRILL_PLANS: list[str | None] = [None, "free", "starter", "professional", "enterprise"]


def find_config() -> str:
    """Find roomlift.ini relative to the working directory."""
    for c in _CONFIG_CANDIDATES:
        if os.path.isfile(c):
            return os.path.abspath(c)
    return ""


def generate_default_config(path: str = _DEFAULT_CONFIG_PATH) -> str:
    """Write a roomlift.ini holding the default settings.

    Returns the absolute path of the generated config file.
    """
    queue = QueueConfig()
    lines = [
        "[queue]",
        f"max_concurrent={queue.max_concurrent}",
        f"max_queue_size={queue.max_queue_size}",
        f"processing_timeout_s={queue.processing_timeout_s:g}",
        "# Rank offset in milliseconds; tiers not listed get 0.",
        f"priority_boost={format_priority_boost(queue.priority_boost)}",
        "",
        "[monitor]",
        "status_interval_s=5",
        "",
        "[log]",
        "level=INFO",
        "file=",
        "",
    ]

    config_path = os.path.abspath(path)
    os.makedirs(os.path.dirname(config_path), exist_ok=True)
    with open(config_path, "w", encoding="utf-8") as f:
        f.write("\n".join(lines))

    log.info(f"  Generated default config: {config_path}")
    return config_path


def init_logging(config: LogConfig) -> None:
    log.set_level(log.LogLevel.parse(config.level))
    if config.file:
        log.init_file(os.path.abspath(config.file))


@dataclass
class DrillStats:
    submitted: int = 0
    completed: int = 0
    failed: int = 0
    rejected: dict[str, int] = field(default_factory=dict)
    peak_active: int = 0
    elapsed_s: float = 0.0


async def run_drill(
    state: AppState,
    jobs: int,
    min_work_s: float = 0.05,
    max_work_s: float = 0.25,
    seed: int | None = None,
) -> DrillStats:
    """Push synthetic jobs with random plans through the queue and count outcomes."""
    rng = random.Random(seed)
    queue = state.queue
    stats = DrillStats(submitted=jobs)

    plan = [
        (f"drill-{i:04d}", f"drill-user-{i % 7}",
         PriorityTier.from_plan(rng.choice(_DRILL_PLANS)),
         rng.uniform(min_work_s, max_work_s))
        for i in range(jobs)
    ]

    async def one(job_id: str, owner_id: str, tier: PriorityTier, duration_s: float) -> None:
        async def work() -> None:
            stats.peak_active = max(stats.peak_active, queue.active_count)
            await asyncio.sleep(duration_s)

        try:
            await run_job(queue, job_id, work, owner_id=owner_id, tier=tier)
            stats.completed += 1
        except QueueError as ex:
            kind = type(ex).__name__
            stats.rejected[kind] = stats.rejected.get(kind, 0) + 1
            log.info(f"  Drill: {job_id} ({tier.value}) rejected: {rejection_payload(ex)}")
        except Exception:
            stats.failed += 1

    start = time.monotonic()
    if state.monitor is not None:
        state.monitor.start()
    try:
        await asyncio.gather(*(one(*entry) for entry in plan))
    finally:
        if state.monitor is not None:
            await state.monitor.stop()
    stats.elapsed_s = time.monotonic() - start
    return stats


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="roomlift-queue",
        description="Run a load drill against the image-processing admission queue.",
    )
    parser.add_argument("--config", default="", help="Path to roomlift.ini")
    parser.add_argument("--jobs", type=int, default=20, help="Number of synthetic jobs")
    parser.add_argument("--min-work-s", type=float, default=0.05)
    parser.add_argument("--max-work-s", type=float, default=0.25)
    parser.add_argument("--seed", type=int, default=None)
    args = parser.parse_args(argv)
    if args.jobs < 0:
        parser.error("--jobs must be >= 0")
    if args.min_work_s < 0 or args.max_work_s < args.min_work_s:
        parser.error("work durations must satisfy 0 <= --min-work-s <= --max-work-s")
    return args


def run(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    log.info("roomlift-queue starting")

    config_path = args.config or find_config()
    if not config_path:
        log.info("  No roomlift.ini found, generating default configuration...")
        config_path = generate_default_config()
    log.info(f"  Config: {config_path}")

    config = RoomliftConfig.load_from_file(config_path).apply_env()
    init_logging(config.log)

    state = AppState.from_config(config)
    q = config.queue
    log.info(f"  Queue: max_concurrent={q.max_concurrent}, max_queue_size={q.max_queue_size}, "
             f"timeout={q.processing_timeout_s:g}s, boost=[{format_priority_boost(q.priority_boost)}]")

    stats = asyncio.run(run_drill(state, args.jobs, args.min_work_s, args.max_work_s, args.seed))

    rejected = ", ".join(f"{k}={v}" for k, v in sorted(stats.rejected.items())) or "none"
    log.info(f"  Drill: {stats.completed}/{stats.submitted} completed, {stats.failed} failed, "
             f"rejected: {rejected}, peak active {stats.peak_active}, {stats.elapsed_s:.2f}s")
    log.info(f"  Final status: {compute_status_snapshot(state)}")
    log.close_file()
    return 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
