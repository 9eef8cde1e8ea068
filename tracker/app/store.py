"""Record stores for packages and sessions.

Engines talk to a ``RecordStore``: a key-addressed mapping per table with
versioned writes and per-key locks. Two backends ship here, an in-process
``MemoryStore`` and the SQLAlchemy-backed ``SqlStore`` used by the server.

Write protocol used by every read-modify-write in the engines:

    with store.with_lock(table, key):
        record = store.get(table, key)
        ...compute new body...
        store.replace(table, key, body, expected_version=record.version)

``with_lock`` serializes writers on one key inside this process; the
version check catches writers from other processes sharing the database.
"""
import copy
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, ContextManager, Dict, Iterator, List, Optional, Protocol

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from .db import init_db, make_engine, make_session_factory
from .errors import ConflictError
from .models import PackageRecord, ScanLog, SessionRecord

PACKAGES = "packages"
SESSIONS = "sessions"

# secondary unique fields per table
INDEXED_FIELDS = {PACKAGES: ("tracking_number",), SESSIONS: ()}


@dataclass(frozen=True)
class StoredRecord:
    key: str
    version: int
    body: Dict[str, Any]


class RecordStore(Protocol):
    def get(self, table: str, key: str) -> Optional[StoredRecord]:
        ...

    def find(self, table: str, field: str, value: str) -> Optional[StoredRecord]:
        ...

    def insert(self, table: str, key: str, body: Dict[str, Any],
               index: Optional[Dict[str, str]] = None,
               created_at: Optional[datetime] = None) -> StoredRecord:
        """Create a record at version 1. ConflictError if the key or an indexed value is taken.

        ``created_at`` orders ``list``; it defaults to the insert time.
        """
        ...

    def replace(self, table: str, key: str, body: Dict[str, Any], expected_version: int) -> StoredRecord:
        """Overwrite a record. ConflictError if it is gone or its version moved on."""
        ...

    def delete(self, table: str, key: str) -> bool:
        ...

    def list(self, table: str, limit: int = 200) -> List[StoredRecord]:
        """Newest first by created_at."""
        ...

    def with_lock(self, table: str, key: str) -> ContextManager[None]:
        ...

    def record_scan(self, entry: Dict[str, Any]) -> None:
        ...

    def scans(self, session_key: str) -> List[Dict[str, Any]]:
        ...

    def close(self) -> None:
        ...


class KeyedLocks:
    """One lock per key, dropped again once nobody holds or waits on it."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, list] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class MemoryStore:
    """Dict-backed store. Records are copied in and out, never shared."""

    def __init__(self):
        self._guard = threading.Lock()
        self._tables: Dict[str, Dict[str, StoredRecord]] = {PACKAGES: {}, SESSIONS: {}}
        self._indexes: Dict[str, Dict[str, Dict[str, str]]] = {
            table: {field: {} for field in fields} for table, fields in INDEXED_FIELDS.items()
        }
        self._index_values: Dict[str, Dict[str, Dict[str, str]]] = {PACKAGES: {}, SESSIONS: {}}
        self._created: Dict[str, Dict[str, datetime]] = {PACKAGES: {}, SESSIONS: {}}
        self._scans: List[Dict[str, Any]] = []
        self._locks = KeyedLocks()

    @staticmethod
    def _copy(record: Optional[StoredRecord]) -> Optional[StoredRecord]:
        if record is None:
            return None
        return StoredRecord(record.key, record.version, copy.deepcopy(record.body))

    def get(self, table, key):
        with self._guard:
            return self._copy(self._tables[table].get(key))

    def find(self, table, field, value):
        with self._guard:
            key = self._indexes[table][field].get(value)
            if key is None:
                return None
            return self._copy(self._tables[table].get(key))

    def insert(self, table, key, body, index=None, created_at=None):
        index = index or {}
        with self._guard:
            if key in self._tables[table]:
                raise ConflictError(f"{table}: key {key} already exists")
            for field, value in index.items():
                if value in self._indexes[table][field]:
                    raise ConflictError(f"{table}: {field} {value} already exists")
            record = StoredRecord(key, 1, copy.deepcopy(body))
            self._tables[table][key] = record
            for field, value in index.items():
                self._indexes[table][field][value] = key
            self._index_values[table][key] = dict(index)
            self._created[table][key] = created_at or datetime.now(timezone.utc)
            return self._copy(record)

    def replace(self, table, key, body, expected_version):
        with self._guard:
            current = self._tables[table].get(key)
            if current is None or current.version != expected_version:
                raise ConflictError(f"{table}: stale write on {key}")
            record = StoredRecord(key, current.version + 1, copy.deepcopy(body))
            self._tables[table][key] = record
            return self._copy(record)

    def delete(self, table, key):
        with self._guard:
            if self._tables[table].pop(key, None) is None:
                return False
            self._created[table].pop(key, None)
            for field, value in self._index_values[table].pop(key, {}).items():
                self._indexes[table][field].pop(value, None)
            return True

    def list(self, table, limit=200):
        with self._guard:
            created = self._created[table]
            # stable sort: equal timestamps keep newest insert first
            records = sorted(reversed(list(self._tables[table].values())),
                             key=lambda r: created[r.key], reverse=True)[:limit]
            return [self._copy(r) for r in records]

    def with_lock(self, table, key):
        return self._locks.hold(f"{table}/{key}")

    def record_scan(self, entry):
        with self._guard:
            self._scans.append(copy.deepcopy(entry))

    def scans(self, session_key):
        with self._guard:
            return [copy.deepcopy(e) for e in self._scans if e.get("sessionKey") == session_key]

    def close(self):
        pass


class SqlStore:
    """SQLAlchemy-backed store; one short transaction per call."""

    MODELS = {PACKAGES: PackageRecord, SESSIONS: SessionRecord}

    def __init__(self, engine: Engine):
        self.engine = engine
        self.SessionLocal = make_session_factory(engine)
        init_db(engine)
        self._locks = KeyedLocks()

    @classmethod
    def from_url(cls, url: str) -> "SqlStore":
        return cls(make_engine(url))

    @staticmethod
    def _to_record(row) -> Optional[StoredRecord]:
        if row is None:
            return None
        return StoredRecord(row.record_key, row.version, copy.deepcopy(row.body))

    def get(self, table, key):
        model = self.MODELS[table]
        db = self.SessionLocal()
        try:
            return self._to_record(db.get(model, key))
        finally:
            db.close()

    def find(self, table, field, value):
        model = self.MODELS[table]
        db = self.SessionLocal()
        try:
            row = db.query(model).filter(getattr(model, field) == value).first()
            return self._to_record(row)
        finally:
            db.close()

    def insert(self, table, key, body, index=None, created_at=None):
        model = self.MODELS[table]
        db = self.SessionLocal()
        try:
            row = model(record_key=key, version=1, body=body, **(index or {}))
            if created_at is not None:
                row.created_at = created_at
            db.add(row)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                # primary key or unique index hit, possibly from a concurrent insert
                raise ConflictError(f"{table}: key {key} or indexed value already exists")
            return StoredRecord(key, 1, copy.deepcopy(body))
        finally:
            db.close()

    def replace(self, table, key, body, expected_version):
        model = self.MODELS[table]
        db = self.SessionLocal()
        try:
            updated = (db.query(model)
                       .filter(model.record_key == key, model.version == expected_version)
                       .update({model.version: expected_version + 1, model.body: body},
                               synchronize_session=False))
            if updated != 1:
                db.rollback()
                raise ConflictError(f"{table}: stale write on {key}")
            db.commit()
            return StoredRecord(key, expected_version + 1, copy.deepcopy(body))
        finally:
            db.close()

    def delete(self, table, key):
        model = self.MODELS[table]
        db = self.SessionLocal()
        try:
            deleted = db.query(model).filter(model.record_key == key).delete(synchronize_session=False)
            db.commit()
            return deleted > 0
        finally:
            db.close()

    def list(self, table, limit=200):
        model = self.MODELS[table]
        db = self.SessionLocal()
        try:
            rows = db.query(model).order_by(model.created_at.desc(), model.record_key).limit(limit).all()
            return [self._to_record(r) for r in rows]
        finally:
            db.close()

    def with_lock(self, table, key):
        return self._locks.hold(f"{table}/{key}")

    def record_scan(self, entry):
        db = self.SessionLocal()
        try:
            db.add(ScanLog(session_key=entry["sessionKey"], package_id=entry["packageId"],
                           checkpoint_order=entry["checkpointOrder"], body=entry))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def scans(self, session_key):
        db = self.SessionLocal()
        try:
            rows = (db.query(ScanLog)
                    .filter(ScanLog.session_key == session_key)
                    .order_by(ScanLog.id)
                    .all())
            return [copy.deepcopy(r.body) for r in rows]
        finally:
            db.close()

    def close(self):
        self.engine.dispose()
