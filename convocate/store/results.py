"""
Convocate - Async Result Cache
Holds deferred scoring results until the client collects them, exactly once.
"""

import logging
import time
import uuid
from concurrent.futures import Future
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional

from .kv import KeyValueStore

logger = logging.getLogger(__name__)

KEY_PREFIX = "score:"
DEFAULT_TTL_SECONDS = 600


class TicketStatus(Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    FAILED = "failed"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class ScoringTicket:
    """One deferred score: pending until its future settles, then resolved or failed."""
    id: str
    status: TicketStatus = TicketStatus.PENDING
    result: Optional[Any] = None
    error: Optional[str] = None
    created_at: float = field(default_factory=time.time)


@dataclass
class CacheLookup:
    status: TicketStatus
    result: Optional[Any] = None
    error: Optional[str] = None


def new_ticket_id() -> str:
    return uuid.uuid4().hex


class ResultCache:
    """
    Maps ticket ids to the outcome of background work.

    A settled entry is removed by the read that returns it, so a result is
    delivered at most once. Pending entries older than the TTL are swept
    whenever a new ticket is registered.
    """

    def __init__(self, store: KeyValueStore, ttl_seconds: float = DEFAULT_TTL_SECONDS):
        self.store = store
        self.ttl_seconds = ttl_seconds

    def _key(self, ticket_id: str) -> str:
        return f"{KEY_PREFIX}{ticket_id}"

    def put(self, ticket_id: str, future: Future) -> ScoringTicket:
        """Register a pending ticket that settles when the future completes."""
        self.sweep()
        ticket = ScoringTicket(id=ticket_id)
        if not self.store.set_if_absent(self._key(ticket_id), ticket):
            raise ValueError(f"Ticket {ticket_id} already registered")
        future.add_done_callback(lambda f: self._settle(ticket_id, f))
        return ticket

    def _settle(self, ticket_id: str, future: Future) -> None:
        key = self._key(ticket_id)
        ticket = self.store.get(key)
        if ticket is None or ticket.status is not TicketStatus.PENDING:
            # Expired before it finished
            return

        error = future.exception()
        if error is not None:
            logger.warning("Deferred scoring %s failed: %s", ticket_id, error)
            self.store.set(key, replace(ticket, status=TicketStatus.FAILED, error=str(error)))
        else:
            self.store.set(key, replace(ticket, status=TicketStatus.RESOLVED, result=future.result()))

    def get(self, ticket_id: str) -> CacheLookup:
        """Look up a ticket. Settled tickets are consumed by this call."""
        key = self._key(ticket_id)
        ticket = self.store.get(key)
        if ticket is None:
            return CacheLookup(TicketStatus.NOT_FOUND)
        if ticket.status is TicketStatus.PENDING:
            return CacheLookup(TicketStatus.PENDING)

        taken = self.store.pop(key)
        if taken is None:
            # Another reader got there first
            return CacheLookup(TicketStatus.NOT_FOUND)
        return CacheLookup(taken.status, result=taken.result, error=taken.error)

    def sweep(self) -> int:
        """Drop tickets older than the TTL. Returns how many were removed."""
        cutoff = time.time() - self.ttl_seconds
        expired = [key for key, ticket in self.store.scan(KEY_PREFIX) if ticket.created_at < cutoff]
        removed = sum(1 for key in expired if self.store.delete(key))
        if removed:
            logger.info("Swept %d expired scoring tickets", removed)
        return removed

    def __len__(self) -> int:
        return sum(1 for _ in self.store.scan(KEY_PREFIX))
