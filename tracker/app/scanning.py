# tracker/app/scanning.py
from typing import Optional

from .errors import AuthorizationError, require_fields
from .lifecycle import PackageLifecycle
from .logging_utils import get_logger, log_operation
from .pairing import SessionPairing
from .schemas import Package, ScanEntry
from .store import SESSIONS

logger = get_logger(__name__)


class ScanCoordinator:
    """The only write path gated by session state.

    Locks are taken session first, then package (inside append_checkpoint),
    so a session cannot be ended between the authorization check and the write.
    """

    def __init__(self, lifecycle: PackageLifecycle, pairing: SessionPairing):
        self.lifecycle = lifecycle
        self.pairing = pairing

    def scan(self, session_key: str, package_id: str, action: str, location: str,
             employee: str, notes: Optional[str] = None) -> Package:
        require_fields(session_key=session_key, package_id=package_id, action=action,
                       location=location, employee=employee)

        with self.pairing.store.with_lock(SESSIONS, session_key):
            if not self.pairing.is_authorized(session_key):
                log_operation(logger, "scan", "session_not_connected",
                              session_key=session_key, package_id=package_id)
                raise AuthorizationError(session_key)
            package = self.lifecycle.append_checkpoint(package_id, action, location, employee, notes)

        self._record_history(session_key, package, employee, location)
        return package

    def _record_history(self, session_key: str, package: Package, employee: str, location: str) -> None:
        # best effort: the checkpoint is already committed
        try:
            checkpoint = package.last_checkpoint
            session = self.pairing.get(session_key)
            entry = ScanEntry(
                session_key=session_key,
                package_id=package.package_id,
                checkpoint_order=checkpoint.order,
                action=checkpoint.internal_status,
                public_status=checkpoint.public_status,
                employee=employee,
                location=location,
                device_name=session.device_name,
                timestamp=checkpoint.timestamp,
            )
            self.pairing.store.record_scan(entry.to_json())
        except Exception:
            logger.warning("scan history not recorded for session %s package %s",
                           session_key, package.package_id, exc_info=True)
