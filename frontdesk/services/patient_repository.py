"""
Patient repository: the single owner of the visit projection.

Readers get an immutable ``VisitSnapshot``. Every successful write is
followed by a full re-pull from the store, and the snapshot is swapped in one
step, so a reader holding the old snapshot keeps iterating a consistent set
and a failed pull leaves the last good snapshot in place.

Transitions validate against the most recently pulled status. There is no
version column, so two desks transitioning the same visit at once both pass
validation and the later write wins.
"""

import itertools
import logging
import sqlite3
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from flask import current_app

from frontdesk.adapters.sqlite.visits_repo import VisitStore
from frontdesk.common.errors import InvalidStatus, NotFound, SyncFailed
from frontdesk.common.utils import clinic_now, date_key
from frontdesk.common.validators import clean_demographics
from frontdesk.domain import workflow
from frontdesk.domain.visits import Visit, VisitStatus
from frontdesk.services.token_allocator import TokenAllocator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VisitSnapshot:
    version: int = 0
    visits: tuple = ()
    loaded_at: Optional[datetime] = None
    _by_id: dict = field(default=None, repr=False, compare=False)

    @property
    def loaded(self) -> bool:
        return self.version > 0

    def get(self, visit_id) -> Optional[Visit]:
        by_id = self._by_id
        if by_id is None:
            by_id = {v.id: v for v in self.visits}
            object.__setattr__(self, '_by_id', by_id)
        return by_id.get(visit_id)

    def for_day(self, day: str) -> list:
        return [v for v in self.visits if v.visit_date == day]


class PatientRepository:
    def __init__(self, store=None, allocator=None, clock=date_key,
                 retry_attempts: int = 3, retry_backoff: float = 0.05):
        self.store = store or VisitStore()
        self.allocator = allocator or TokenAllocator(
            self.store,
            snapshot_provider=lambda: self.snapshot,
            retry_attempts=retry_attempts,
            retry_backoff=retry_backoff,
        )
        self.clock = clock
        self._lock = threading.Lock()
        self._tickets = itertools.count(1)
        self._snapshot = VisitSnapshot()

    @property
    def snapshot(self) -> VisitSnapshot:
        return self._snapshot

    # ---- Sync ----
    def refresh(self) -> VisitSnapshot:
        """Re-pull every visit and swap the snapshot in one step."""
        with self._lock:
            ticket = next(self._tickets)
        try:
            visits = self.store.query()
        except sqlite3.Error as exc:
            logger.error("Refreshing visits failed, keeping snapshot v%d: %s", self._snapshot.version, exc)
            raise SyncFailed(f"could not load visits: {exc}") from exc

        fresh = VisitSnapshot(version=ticket, visits=tuple(visits), loaded_at=clinic_now())
        with self._lock:
            # An older pull finishing late must not replace a newer one
            if ticket > self._snapshot.version:
                self._snapshot = fresh
            return self._snapshot

    def ensure_loaded(self) -> VisitSnapshot:
        if not self._snapshot.loaded:
            return self.refresh()
        return self._snapshot

    # ---- Read projections ----
    def today(self) -> list:
        return self._snapshot.for_day(self.clock())

    def by_status(self, status: str) -> list:
        if status not in VisitStatus.ORDER:
            raise InvalidStatus(f"unknown status '{status}'")
        return [v for v in self.today() if v.status == status]

    def offline_tokens(self) -> list:
        """Today's visits numbered by the offline fallback."""
        return [v for v in self.today() if v.is_offline_token]

    def stats(self) -> dict:
        visits = self.today()
        counts = {status: 0 for status in VisitStatus.ORDER}
        for visit in visits:
            counts[visit.status] = counts.get(visit.status, 0) + 1
        counts['total'] = len(visits)
        return counts

    def get(self, visit_id) -> Visit:
        visit = self.ensure_loaded().get(visit_id)
        if visit is None:
            raise NotFound(visit_id)
        return visit

    # ---- Writes ----
    def register(self, demographics: dict, created_by: str = None) -> Visit:
        data = clean_demographics(demographics)
        self.ensure_loaded()
        day = self.clock()

        def save(allocation):
            record = dict(data)
            record.update(
                token_number=allocation.token_number,
                visit_date=day,
                status=VisitStatus.WAITING,
                token_source=allocation.source,
                created_by=created_by,
            )
            return self.store.insert(record)

        try:
            # Token and row commit together; a failed insert gives the number back
            allocation, inserted = self.allocator.issue(day, save)
        except sqlite3.Error as exc:
            logger.error("Registering %s failed: %s", data['name'], exc)
            raise SyncFailed(f"could not save registration: {exc}") from exc

        logger.info("Registered %s as %s on %s (%s)", inserted.name, inserted.token_number, day, allocation.source)
        return self.refresh().get(inserted.id) or inserted

    def apply_transition(self, visit_id, transition, *args) -> Visit:
        visit = self.get(visit_id)
        changes = transition(visit, *args)

        try:
            updated = self.store.update(visit.id, changes)
        except sqlite3.Error as exc:
            logger.error("Updating visit %s failed: %s", visit.id, exc)
            raise SyncFailed(f"could not update visit {visit.id}: {exc}") from exc
        if not updated:
            raise NotFound(visit_id)

        logger.info("Visit %s (%s) %s -> %s", visit.id, visit.token_number, visit.status, changes['status'])
        return self.refresh().get(visit.id)

    def start_consultation(self, visit_id) -> Visit:
        return self.apply_transition(visit_id, workflow.start_consultation)

    def save_completion(self, visit_id, prescription_text: str) -> Visit:
        return self.apply_transition(visit_id, workflow.save_completion, prescription_text)

    def generate_bill(self, visit_id, amount) -> Visit:
        return self.apply_transition(visit_id, workflow.generate_bill, amount)


def init_repository(app, repository: PatientRepository = None) -> PatientRepository:
    if repository is None:
        repository = PatientRepository(
            retry_attempts=app.config.get('TOKEN_RETRY_ATTEMPTS', 3),
            retry_backoff=app.config.get('TOKEN_RETRY_BACKOFF', 0.05),
        )
    app.extensions['frontdesk.repository'] = repository
    return repository


def get_repository() -> PatientRepository:
    return current_app.extensions['frontdesk.repository']
