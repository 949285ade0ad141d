import sqlite3

import pytest

from frontdesk.adapters.sqlite.visits_repo import VisitStore
from frontdesk.app import create_app
from frontdesk.config.settings import TestConfig
from frontdesk.services.auth_service import AuthService
from frontdesk.services.patient_repository import PatientRepository

TODAY = '2026-10-18'


class FakeClock:
    """Date key source the tests can move across midnight."""

    def __init__(self, day=TODAY):
        self.day = day

    def __call__(self):
        return self.day


class FlakyStore(VisitStore):
    """VisitStore whose primitives can be told to fail."""

    def __init__(self, sequence_failures=0, insert_failures=0):
        self.sequence_failures = sequence_failures
        self.insert_failures = insert_failures
        self.fail_queries = False
        self.fail_updates = False
        self.sequence_calls = 0

    def allocate_sequence(self, scope_key):
        self.sequence_calls += 1
        if self.sequence_failures:
            self.sequence_failures -= 1
            raise sqlite3.OperationalError('token service unreachable')
        return super().allocate_sequence(scope_key)

    def insert(self, record):
        if self.insert_failures:
            self.insert_failures -= 1
            raise sqlite3.OperationalError('disk I/O error')
        return super().insert(record)

    def query(self, filters=None, **kwargs):
        if self.fail_queries:
            raise sqlite3.OperationalError('unable to open database file')
        return super().query(filters, **kwargs)

    def update(self, visit_id, fields):
        if self.fail_updates:
            raise sqlite3.OperationalError('database is locked')
        return super().update(visit_id, fields)


def _config(tmp_path):
    return {
        'TESTING': True,
        'SECRET_KEY': TestConfig.SECRET_KEY,
        'DATABASE_PATH': str(tmp_path / 'frontdesk.db'),
        'STORE_TIMEOUT': TestConfig.STORE_TIMEOUT,
        'TOKEN_RETRY_ATTEMPTS': TestConfig.TOKEN_RETRY_ATTEMPTS,
        'TOKEN_RETRY_BACKOFF': TestConfig.TOKEN_RETRY_BACKOFF,
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return FlakyStore()


@pytest.fixture
def repo(store, clock):
    return PatientRepository(store=store, clock=clock, retry_attempts=2, retry_backoff=0)


@pytest.fixture
def app(tmp_path, repo):
    return create_app(_config(tmp_path), repository=repo)


@pytest.fixture
def ctx(app):
    with app.app_context() as context:
        yield context


@pytest.fixture
def make_client(app):
    """Return a test client signed in with a fresh account of the given role."""
    created = {}

    def _make(role):
        username = f'{role}{len(created) + 1}'
        with app.app_context():
            AuthService().register_user(username, 'secret-pass', role)
        client = app.test_client()
        resp = client.post('/auth/login', json={'username': username, 'password': 'secret-pass'})
        assert resp.status_code == 200, resp.get_json()
        created[username] = client
        return client

    return _make


@pytest.fixture
def asha():
    return {'name': 'Asha', 'age': 34, 'phone': '555-0100'}
