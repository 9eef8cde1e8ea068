# tracker/app/services.py
from dataclasses import dataclass
from typing import Optional

from .lifecycle import PackageLifecycle
from .logging_utils import get_logger
from .pairing import SessionPairing
from .scanning import ScanCoordinator
from .settings import Settings
from .status import policy_for
from .store import MemoryStore, RecordStore, SqlStore
from .utils import IdentifierGenerator

logger = get_logger(__name__)


@dataclass
class Services:
    store: RecordStore
    lifecycle: PackageLifecycle
    pairing: SessionPairing
    scanner: ScanCoordinator

    def close(self) -> None:
        self.store.close()


def make_store(settings: Settings) -> RecordStore:
    if settings.store == "memory":
        logger.info("using in-memory store, nothing survives a restart")
        return MemoryStore()
    logger.info("using database store at %s", settings.database_url)
    return SqlStore.from_url(settings.database_url)


def build_services(settings: Settings, store: Optional[RecordStore] = None,
                   ids: Optional[IdentifierGenerator] = None) -> Services:
    store = store if store is not None else make_store(settings)
    ids = ids or IdentifierGenerator()
    lifecycle = PackageLifecycle(store, ids=ids, policy=policy_for(settings.strict_terminal),
                                 max_write_attempts=settings.max_write_attempts)
    pairing = SessionPairing(store, ids=ids, max_write_attempts=settings.max_write_attempts)
    return Services(store=store, lifecycle=lifecycle, pairing=pairing,
                    scanner=ScanCoordinator(lifecycle, pairing))
