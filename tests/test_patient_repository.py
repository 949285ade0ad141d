import sqlite3
import threading
from decimal import Decimal

import pytest

from frontdesk.common.errors import (
    EmptyPrescription, InvalidDemographics, InvalidStatus, InvalidTransition, NotFound, SyncFailed,
)
from frontdesk.domain.billing import total
from frontdesk.services.token_allocator import TokenAllocator

pytestmark = pytest.mark.usefixtures('ctx')


def _register(repo, name, **extra):
    data = {'name': name, 'age': 30, 'phone': '555-0199'}
    data.update(extra)
    return repo.register(data)


def test_refresh_loads_everything_newest_first(repo):
    assert not repo.snapshot.loaded
    a = _register(repo, 'A')
    b = _register(repo, 'B')

    snapshot = repo.refresh()

    assert snapshot.loaded
    assert [v.id for v in snapshot.visits] == [b.id, a.id]


def test_register_assigns_waiting_visit_with_first_token(repo, asha):
    visit = repo.register(asha, created_by='reception1')

    assert visit.token_number == 'T001'
    assert visit.status == 'waiting'
    assert visit.visit_date == '2026-10-18'
    assert visit.created_by == 'reception1'
    assert visit.created_at
    assert not visit.is_offline_token
    assert repo.today() == [visit]


def test_register_is_visible_only_after_refresh(repo, asha):
    before = repo.ensure_loaded()
    visit = repo.register(asha)
    assert repo.snapshot.version > before.version
    assert repo.snapshot.get(visit.id) == visit
    # The old snapshot is never patched in place
    assert before.visits == ()


def test_tokens_are_sequential_per_day(repo, clock):
    tokens = [_register(repo, f'P{i}').token_number for i in range(3)]
    assert tokens == ['T001', 'T002', 'T003']

    clock.day = '2026-10-19'
    assert _register(repo, 'Next day').token_number == 'T001'


def test_concurrent_registrations_are_gap_free(app, repo):
    repo.refresh()
    results, errors = [], []
    lock = threading.Lock()

    def desk(i):
        try:
            with app.app_context():
                visit = repo.register({'name': f'Patient {i}', 'age': 40, 'phone': '555-0123'})
            with lock:
                results.append(visit.token_number)
        except Exception as exc:  # surfaced by the assertion below
            with lock:
                errors.append(exc)

    threads = [threading.Thread(target=desk, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert sorted(results) == [f'T{n:03d}' for n in range(1, 9)]
    repo.refresh()
    assert sorted(v.token_number for v in repo.today()) == sorted(results)


def test_two_simultaneous_registrations_never_share_a_token(app, repo):
    repo.refresh()
    start = threading.Barrier(2)
    tokens = []

    def desk(name):
        start.wait()
        with app.app_context():
            tokens.append(repo.register({'name': name, 'age': 20, 'phone': '555-0111'}).token_number)

    threads = [threading.Thread(target=desk, args=(n,)) for n in ('Asha', 'Ravi')]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(tokens) == ['T001', 'T002']


def test_failed_insert_does_not_consume_a_token(repo, store, asha):
    repo.refresh()
    version = repo.snapshot.version
    store.insert_failures = 1

    with pytest.raises(SyncFailed):
        repo.register(asha)

    assert repo.snapshot.version == version
    assert repo.today() == []
    assert repo.register(asha).token_number == 'T001'


def test_offline_fallback_numbers_from_loaded_queue(repo, store):
    _register(repo, 'A')
    store.sequence_failures = 10

    visit = _register(repo, 'B')

    assert visit.token_number == 'T002'
    assert visit.is_offline_token
    assert visit.token_source == 'offline'
    assert repo.offline_tokens() == [visit]
    # retried before falling back
    assert store.sequence_calls == 1 + 2


def test_token_retry_leaves_other_desks_free_to_write(app, repo, store, asha):
    first = repo.register(asha)
    store.sequence_failures = 1
    other_writes = []

    def other_desk_writes(delay):
        other = sqlite3.connect(app.config['DATABASE_PATH'], timeout=0.2)
        try:
            other.execute("UPDATE visits SET address = ? WHERE id = ?", ('Ward 2', first.id))
            other.commit()
        finally:
            other.close()
        other_writes.append(delay)

    repo.allocator = TokenAllocator(store, snapshot_provider=lambda: repo.snapshot,
                                    retry_attempts=2, retry_backoff=0.01, sleep=other_desk_writes)

    visit = _register(repo, 'Ravi')

    assert other_writes == [0.01]
    assert visit.token_number == 'T002'
    assert not visit.is_offline_token
    assert repo.get(first.id).address == 'Ward 2'


def test_invalid_demographics_touch_nothing(repo, store):
    repo.refresh()
    version = repo.snapshot.version
    with pytest.raises(InvalidDemographics):
        repo.register({'name': '', 'age': 34, 'phone': '555-0100'})
    assert store.sequence_calls == 0
    assert repo.snapshot.version == version


def test_refresh_failure_keeps_last_good_snapshot(repo, store):
    _register(repo, 'A')
    good = repo.snapshot
    store.fail_queries = True

    with pytest.raises(SyncFailed):
        repo.refresh()

    assert repo.snapshot is good
    assert [v.name for v in repo.today()] == ['A']


def test_failed_update_leaves_status_unchanged(repo, store, asha):
    visit = repo.register(asha)
    store.fail_updates = True

    with pytest.raises(SyncFailed):
        repo.start_consultation(visit.id)

    assert repo.get(visit.id).status == 'waiting'


def test_today_excludes_other_days_across_midnight(repo, clock):
    _register(repo, 'Yesterday')
    assert len(repo.today()) == 1

    clock.day = '2026-10-19'
    assert repo.today() == []
    assert repo.by_status('waiting') == []

    _register(repo, 'Tomorrow')
    assert [v.name for v in repo.today()] == ['Tomorrow']
    assert all(v.visit_date == '2026-10-19' for v in repo.today())


def test_by_status_filters_today(repo):
    a = _register(repo, 'A')
    _register(repo, 'B')
    repo.start_consultation(a.id)

    assert [v.name for v in repo.by_status('in-consultation')] == ['A']
    assert [v.name for v in repo.by_status('waiting')] == ['B']
    with pytest.raises(InvalidStatus):
        repo.by_status('discharged')


def test_stats_counts_today(repo):
    a = _register(repo, 'A')
    _register(repo, 'B')
    repo.save_completion(a.id, 'Rest')

    assert repo.stats() == {
        'waiting': 1, 'in-consultation': 0, 'completed': 1, 'billed': 0, 'total': 2,
    }


def test_unknown_visit_is_not_found(repo):
    with pytest.raises(NotFound):
        repo.start_consultation(999)


def test_empty_prescription_leaves_visit_untouched(repo, asha):
    visit = repo.register(asha)
    version = repo.snapshot.version

    with pytest.raises(EmptyPrescription):
        repo.save_completion(visit.id, '   ')

    current = repo.get(visit.id)
    assert current.status == 'waiting'
    assert current.prescription is None
    assert repo.snapshot.version == version


@pytest.mark.parametrize('steps', [[], ['start'], ['start', 'complete', 'bill']])
def test_bill_requires_completed(repo, asha, steps):
    visit = repo.register(asha)
    if 'start' in steps:
        repo.start_consultation(visit.id)
    if 'complete' in steps:
        repo.save_completion(visit.id, 'Rest')
    if 'bill' in steps:
        repo.generate_bill(visit.id, 100)
    before = repo.get(visit.id).bill_amount

    with pytest.raises(InvalidTransition):
        repo.generate_bill(visit.id, 500)

    assert repo.get(visit.id).bill_amount == before


def test_end_to_end_visit(repo, asha):
    visit = repo.register(asha)
    assert (visit.token_number, visit.status) == ('T001', 'waiting')

    visit = repo.start_consultation(visit.id)
    assert visit.status == 'in-consultation'

    visit = repo.save_completion(visit.id, 'Paracetamol 500mg BD')
    assert visit.status == 'completed'
    assert visit.prescription == 'Paracetamol 500mg BD'

    visit = repo.generate_bill(visit.id, total(500, 250, 0))
    assert visit.status == 'billed'
    assert visit.bill_amount == Decimal('750')
    assert visit.prescription == 'Paracetamol 500mg BD'

    with pytest.raises(InvalidTransition):
        repo.generate_bill(visit.id, total(500, 250, 0))
    assert repo.get(visit.id).bill_amount == Decimal('750')
