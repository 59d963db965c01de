"""Job ticket definitions and priority tiers."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum


class PriorityTier(Enum):
    FREE = "free"
    STARTER = "starter"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"

    @staticmethod
    def names() -> frozenset[str]:
        return frozenset(t.value for t in PriorityTier)

    @staticmethod
    def coerce(value: "PriorityTier | str | None") -> "PriorityTier":
        """Accept a tier or its name.  Unrecognized values get the lowest priority."""
        if isinstance(value, PriorityTier):
            return value
        if not value:
            return PriorityTier.FREE
        try:
            return PriorityTier(str(value).strip().lower())
        except ValueError:
            return PriorityTier.FREE

    @staticmethod
    def from_plan(plan_name: str | None) -> "PriorityTier":
        """Resolve a subscription plan name to a queue tier.

        Plans without a matching tier (or no plan at all) are treated as free.
        """
        return PriorityTier.coerce(plan_name)


class TicketState(Enum):
    WAITING = "waiting"
    ADMITTED = "admitted"
    REJECTED = "rejected"


@dataclass
class JobTicket:
    """A job waiting for (or holding) a processing slot."""
    job_id: str
    tier: PriorityTier
    rank: float          # enqueued_at - tier offset (ms); lower is served first
    enqueued_at: float   # queue clock (ms)
    seq: int             # insertion order, breaks rank ties
    owner_id: str | None = None
    state: TicketState = TicketState.WAITING

    # Wake handle for the parked enqueue() caller, and its timeout timer
    future: asyncio.Future[None] | None = field(default=None, repr=False)
    loop: asyncio.AbstractEventLoop | None = field(default=None, repr=False)
    timer: asyncio.TimerHandle | None = field(default=None, repr=False)

    @property
    def sort_key(self) -> tuple[float, int]:
        return (self.rank, self.seq)

    def waited_ms(self, now: float) -> float:
        return now - self.enqueued_at

    def __str__(self):
        owner = f" owner={self.owner_id}" if self.owner_id else ""
        return f"Ticket[{self.job_id}] {self.tier.value}{owner} rank={self.rank:.0f}"
