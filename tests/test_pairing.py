import re
from concurrent.futures import ThreadPoolExecutor

import pytest

from tracker.app.errors import NotFoundError, ValidationError
from tracker.app.pairing import SessionPairing
from tracker.app.schemas import SessionState
from tracker.app.store import SESSIONS

from conftest import SequenceIds


class TestStart:
    def test_start_creates_pending_session(self, pairing):
        session = pairing.start("emp1", "Dock3")
        assert re.fullmatch(r"[A-Z]\d{4}", session.session_key)
        assert session.state == SessionState.PENDING
        assert session.device_name is None
        assert pairing.get(session.session_key) == session
        assert not pairing.is_authorized(session.session_key)

    @pytest.mark.parametrize("employee,location", [("", "Dock3"), ("emp1", None), (" ", " ")])
    def test_start_requires_fields(self, pairing, store, employee, location):
        with pytest.raises(ValidationError):
            pairing.start(employee, location)
        assert store.list(SESSIONS) == []

    def test_key_collision_is_retried(self, store):
        pairing = SessionPairing(store, ids=SequenceIds(session_keys=["A0001", "A0001", "B0002"]))
        assert pairing.start("emp1", "Dock3").session_key == "A0001"
        assert pairing.start("emp2", "Dock4").session_key == "B0002"


class TestJoin:
    def test_join_queues_device(self, pairing):
        key = pairing.start("emp1", "Dock3").session_key
        session = pairing.join(key, "phone-1")
        assert session.state == SessionState.QUEUED
        assert session.device_name == "phone-1"
        assert not pairing.is_authorized(key)

    def test_rejoin_while_queued_reassigns_device(self, pairing):
        key = pairing.start("emp1", "Dock3").session_key
        pairing.join(key, "phone-1")
        session = pairing.join(key, "phone-2")
        assert session.state == SessionState.QUEUED
        assert pairing.get(key).device_name == "phone-2"

    def test_join_connected_session_changes_nothing(self, pairing):
        key = pairing.start("emp1", "Dock3").session_key
        pairing.join(key, "phone-1")
        pairing.connect(key)
        session = pairing.join(key, "phone-2")
        assert session.state == SessionState.CONNECTED
        assert session.device_name == "phone-1"
        assert pairing.get(key) == session

    def test_join_unknown_session(self, pairing):
        with pytest.raises(NotFoundError):
            pairing.join("Z9999", "phone-1")

    def test_join_requires_device_name(self, pairing):
        key = pairing.start("emp1", "Dock3").session_key
        with pytest.raises(ValidationError):
            pairing.join(key, "")
        assert pairing.get(key).state == SessionState.PENDING


class TestConnect:
    def test_connect_after_join(self, pairing):
        key = pairing.start("emp1", "Dock3").session_key
        pairing.join(key, "phone-1")
        session = pairing.connect(key)
        assert session.state == SessionState.CONNECTED
        assert session.connected_at is not None
        assert pairing.is_authorized(key)

    def test_connect_without_join(self, pairing):
        key = pairing.start("emp1", "Dock3").session_key
        session = pairing.connect(key, "phone-9")
        assert session.state == SessionState.CONNECTED
        assert session.device_name == "phone-9"
        assert pairing.is_authorized(key)

    def test_connect_is_idempotent(self, pairing, store):
        key = pairing.start("emp1", "Dock3").session_key
        first = pairing.connect(key)
        version = store.get(SESSIONS, key).version
        second = pairing.connect(key, "another-device")
        assert first == second
        assert store.get(SESSIONS, key).version == version

    def test_connect_unknown_session(self, pairing):
        with pytest.raises(NotFoundError):
            pairing.connect("Z9999")

    def test_concurrent_connects(self, pairing):
        key = pairing.start("emp1", "Dock3").session_key
        with ThreadPoolExecutor(max_workers=10) as pool:
            sessions = list(pool.map(lambda _: pairing.connect(key), range(10)))
        assert {s.state for s in sessions} == {SessionState.CONNECTED}
        assert len({s.connected_at for s in sessions}) == 1


class TestEnd:
    def test_end_removes_session(self, pairing):
        key = pairing.start("emp1", "Dock3").session_key
        pairing.connect(key)
        pairing.end(key)
        assert not pairing.is_authorized(key)
        with pytest.raises(NotFoundError):
            pairing.get(key)

    def test_end_is_idempotent(self, pairing):
        key = pairing.start("emp1", "Dock3").session_key
        pairing.end(key)
        pairing.end(key)
        pairing.end("Z9999")

    def test_join_after_end(self, pairing):
        key = pairing.start("emp1", "Dock3").session_key
        pairing.end(key)
        with pytest.raises(NotFoundError):
            pairing.join(key, "phone-1")


def test_is_authorized_for_blank_or_unknown_key(pairing):
    assert not pairing.is_authorized("")
    assert not pairing.is_authorized(None)
    assert not pairing.is_authorized("Z9999")
