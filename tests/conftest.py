"""Pytest fixtures for the tracker services and API."""
import itertools
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from tracker.app.api import create_app
from tracker.app.lifecycle import PackageLifecycle
from tracker.app.pairing import SessionPairing
from tracker.app.scanning import ScanCoordinator
from tracker.app.settings import Settings
from tracker.app.store import MemoryStore, SqlStore
from tracker.app.utils import IdentifierGenerator


class SequenceIds(IdentifierGenerator):
    """Deterministic identifiers; each list is replayed in order, the last value repeats."""

    def __init__(self, package_ids=(), tracking_numbers=(), session_keys=()):
        self._package_ids = self._cycle(package_ids)
        self._tracking_numbers = self._cycle(tracking_numbers)
        self._session_keys = self._cycle(session_keys)

    @staticmethod
    def _cycle(values):
        values = list(values)
        if not values:
            return None
        return itertools.chain(values, itertools.repeat(values[-1]))

    def package_id(self):
        return next(self._package_ids) if self._package_ids else super().package_id()

    def tracking_number(self):
        return next(self._tracking_numbers) if self._tracking_numbers else super().tracking_number()

    def session_key(self):
        return next(self._session_keys) if self._session_keys else super().session_key()


class StepClock:
    """Clock returning the given instants in order, then repeating the last one."""

    def __init__(self, *offsets_seconds):
        base = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
        self._times = itertools.chain(
            (base + timedelta(seconds=s) for s in offsets_seconds),
            itertools.repeat(base + timedelta(seconds=offsets_seconds[-1])),
        )

    def __call__(self):
        return next(self._times)


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def sql_store(tmp_path):
    store = SqlStore.from_url(f"sqlite:///{tmp_path / 'tracker.db'}")
    yield store
    store.close()


@pytest.fixture(params=["memory", "sql"])
def store(request, tmp_path):
    if request.param == "memory":
        s = MemoryStore()
    else:
        s = SqlStore.from_url(f"sqlite:///{tmp_path / 'tracker.db'}")
    yield s
    s.close()


@pytest.fixture
def lifecycle(store):
    return PackageLifecycle(store)


@pytest.fixture
def pairing(store):
    return SessionPairing(store)


@pytest.fixture
def scanner(lifecycle, pairing):
    return ScanCoordinator(lifecycle, pairing)


@pytest.fixture
def package(lifecycle):
    return lifecycle.create("Alice", "Bob", "NYC")


@pytest.fixture
def connected_session(pairing):
    session = pairing.start("emp1", "Dock3")
    pairing.join(session.session_key, "scanner-1")
    return pairing.connect(session.session_key)


@pytest.fixture
def client():
    app = create_app(settings=Settings(store="memory", broadcast=False), store=MemoryStore())
    with TestClient(app) as c:
        yield c
