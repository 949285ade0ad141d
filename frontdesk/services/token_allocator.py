"""
Day-scoped queue token allocation.

The store-side sequence is the only path that guarantees distinct, gap-free
tokens across receptionists. When it is unreachable the allocator retries
with backoff and then falls back to counting the visits already loaded for
the day. That fallback can hand out duplicates when two desks register at
once; tokens produced that way are marked offline so they can be reconciled.
"""

import logging
import sqlite3
import time
from dataclasses import dataclass

from frontdesk.common.errors import TokenAllocationFailed
from frontdesk.common.utils import format_token
from frontdesk.domain.visits import TokenSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenAllocation:
    token_number: str
    day: str
    source: str

    @property
    def offline(self) -> bool:
        return self.source == TokenSource.OFFLINE


class TokenAllocator:
    def __init__(self, store, snapshot_provider=None, retry_attempts: int = 3,
                 retry_backoff: float = 0.05, sleep=time.sleep):
        self.store = store
        self.snapshot_provider = snapshot_provider
        self.retry_attempts = max(1, int(retry_attempts))
        self.retry_backoff = retry_backoff
        self._sleep = sleep

    def next(self, day: str) -> str:
        return self.allocate(day).token_number

    def allocate(self, day: str) -> TokenAllocation:
        allocation, _ = self.issue(day)
        return allocation

    def issue(self, day: str, consume=None):
        """Allocate a token for ``day`` and pass it to ``consume`` in one transaction.

        Returns ``(allocation, consume(allocation))``. If ``consume`` fails the
        transaction rolls back, the sequence number is given back and the
        error propagates. A sequence that cannot be reached, including a
        database too busy to begin the transaction, is retried in a fresh
        transaction each time. The backoff sleep runs after the rollback, so
        no write lock is held while waiting.
        """
        delay = self.retry_backoff
        cause = None
        for attempt in range(1, self.retry_attempts + 1):
            reserved = False
            try:
                with self.store.transaction():
                    number = self.store.allocate_sequence(day)
                    reserved = True
                    allocation = TokenAllocation(format_token(number), day, TokenSource.SEQUENCE)
                    return allocation, consume(allocation) if consume else None
            except sqlite3.Error as exc:
                if reserved:
                    raise
                cause = exc
            if attempt < self.retry_attempts:
                logger.info("Token sequence for %s failed (attempt %d/%d): %s",
                            day, attempt, self.retry_attempts, cause)
                if delay:
                    self._sleep(delay)
                    delay *= 2

        allocation = self._allocate_offline(day, cause)
        if consume is None:
            return allocation, None
        with self.store.transaction():
            return allocation, consume(allocation)

    def _allocate_offline(self, day: str, cause: Exception) -> TokenAllocation:
        snapshot = self.snapshot_provider() if self.snapshot_provider else None
        if snapshot is None or not snapshot.loaded:
            logger.error("Token allocation for %s failed and no visits are loaded to count: %s", day, cause)
            raise TokenAllocationFailed(
                f"token service unavailable for {day} and no local queue to number from"
            ) from cause

        count = sum(1 for visit in snapshot.visits if visit.visit_date == day)
        token = format_token(count + 1)
        logger.warning("Token service unavailable (%s); using offline numbering %s for %s. "
                       "Duplicates are possible until the sequence is reachable again.",
                       cause, token, day)
        return TokenAllocation(token, day, TokenSource.OFFLINE)
