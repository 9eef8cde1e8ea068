"""Scanning session pairing.

    start --> pending --join--> queued --connect--> connected --end--> (deleted)
              pending/queued --end--> (deleted)

``connect`` is allowed from any live state and is the only way a session
becomes authorized to submit scans.
"""
import logging
from typing import Callable, List, Optional

from .errors import NotFoundError, require_fields
from .logging_utils import get_logger, log_operation
from .schemas import ScanEntry, Session, SessionState, utcnow
from .store import SESSIONS, RecordStore
from .utils import IdentifierGenerator, retry_on_conflict

logger = get_logger(__name__)


class SessionPairing:
    def __init__(
        self,
        store: RecordStore,
        ids: Optional[IdentifierGenerator] = None,
        clock: Callable = utcnow,
        max_write_attempts: int = 3,
    ):
        self.store = store
        self.ids = ids or IdentifierGenerator()
        self.clock = clock
        self.max_write_attempts = max_write_attempts

    def start(self, employee: str, location: str) -> Session:
        require_fields(employee=employee, location=location)

        def attempt() -> Session:
            session = Session(session_key=self.ids.session_key(), employee=employee,
                              location=location, created_at=self.clock())
            self.store.insert(SESSIONS, session.session_key, session.to_json())
            return session

        session = retry_on_conflict(attempt, self.max_write_attempts, "start_session")
        log_operation(logger, "start_session", "success", session_key=session.session_key,
                      employee=employee, location=location)
        return session

    def _update(self, operation: str, session_key: str,
                change: Callable[[Session], bool]) -> Session:
        """Atomically apply ``change`` to a session; it returns False for no-ops."""

        def attempt() -> Session:
            with self.store.with_lock(SESSIONS, session_key):
                record = self.store.get(SESSIONS, session_key)
                if record is None:
                    raise NotFoundError("session", session_key)
                session = Session.model_validate(record.body)
                if change(session):
                    self.store.replace(SESSIONS, session_key, session.to_json(),
                                       expected_version=record.version)
                return session

        session = retry_on_conflict(attempt, self.max_write_attempts, operation)
        log_operation(logger, operation, "success", session_key=session_key,
                      state=session.state.value, device_name=session.device_name)
        return session

    def join(self, session_key: str, device_name: str) -> Session:
        require_fields(session_key=session_key, device_name=device_name)

        def change(session: Session) -> bool:
            if session.state not in (SessionState.PENDING, SessionState.QUEUED):
                # re-announce on a connected session, nothing to record
                return False
            session.device_name = device_name
            session.state = SessionState.QUEUED
            return True

        return self._update("join_session", session_key, change)

    def connect(self, session_key: str, device_name: Optional[str] = None) -> Session:
        require_fields(session_key=session_key)

        def change(session: Session) -> bool:
            if session.state == SessionState.CONNECTED:
                return False
            if device_name:
                session.device_name = device_name
            session.state = SessionState.CONNECTED
            session.connected_at = self.clock()
            return True

        return self._update("connect_session", session_key, change)

    def end(self, session_key: str) -> None:
        """End and remove a session. Unknown or already ended keys are a no-op."""
        require_fields(session_key=session_key)
        with self.store.with_lock(SESSIONS, session_key):
            removed = self.store.delete(SESSIONS, session_key)
        if removed:
            log_operation(logger, "end_session", "success", session_key=session_key,
                          state=SessionState.ENDED.value)
        else:
            log_operation(logger, "end_session", "no_active_session", level=logging.DEBUG,
                          session_key=session_key)

    def get(self, session_key: str) -> Session:
        record = self.store.get(SESSIONS, session_key)
        if record is None:
            raise NotFoundError("session", session_key)
        return Session.model_validate(record.body)

    def is_authorized(self, session_key: str) -> bool:
        if not session_key:
            return False
        record = self.store.get(SESSIONS, session_key)
        return record is not None and record.body.get("state") == SessionState.CONNECTED.value

    def history(self, session_key: str) -> List[ScanEntry]:
        return [ScanEntry.model_validate(e) for e in self.store.scans(session_key)]
