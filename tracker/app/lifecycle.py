"""Package lifecycle: creation, checkpoint appends and lookups.

A package always carries at least one checkpoint. Checkpoint #1 is the
synthetic "Front Desk" entry written at creation; every scan appends the next
order number, and ``current_public_status`` mirrors the last checkpoint.
"""
import logging
from typing import Any, Callable, List, Optional

from .errors import NotFoundError, require_fields
from .logging_utils import get_logger, log_operation
from .schemas import Checkpoint, Package, utcnow
from .status import Action, ORDER_CREATED, CompletionPolicy, OpenWorkflowPolicy, public_status_for
from .store import PACKAGES, RecordStore
from .utils import IdentifierGenerator, retry_on_conflict

logger = get_logger(__name__)

FRONT_DESK = "Front Desk"


class PackageLifecycle:
    def __init__(
        self,
        store: RecordStore,
        ids: Optional[IdentifierGenerator] = None,
        policy: Optional[CompletionPolicy] = None,
        clock: Callable = utcnow,
        max_write_attempts: int = 3,
    ):
        self.store = store
        self.ids = ids or IdentifierGenerator()
        self.policy = policy or OpenWorkflowPolicy()
        self.clock = clock
        self.max_write_attempts = max_write_attempts

    # ---------------------------
    # Create
    # ---------------------------
    def create(self, customer_name: str, recipient_name: str, destination: str,
               details: Any = None) -> Package:
        require_fields(customer_name=customer_name, recipient_name=recipient_name,
                       destination=destination)

        def attempt() -> Package:
            now = self.clock()
            package = Package(
                package_id=self.ids.package_id(),
                tracking_number=self.ids.tracking_number(),
                customer_name=customer_name,
                recipient_name=recipient_name,
                destination=destination,
                details=details or {},
                current_internal_status=Action.CREATED.value,
                current_public_status=ORDER_CREATED,
                created_at=now,
                checkpoints=[Checkpoint(
                    order=1,
                    location_type="store",
                    location_name=FRONT_DESK,
                    timestamp=now,
                    internal_status=Action.CREATED.value,
                    public_status=ORDER_CREATED,
                )],
            )
            # ConflictError here means an id or tracking number collision; regenerate
            self.store.insert(PACKAGES, package.package_id, package.to_json(),
                              index={"tracking_number": package.tracking_number},
                              created_at=package.created_at)
            return package

        package = retry_on_conflict(attempt, self.max_write_attempts, "create_package")
        log_operation(logger, "create_package", "success",
                      package_id=package.package_id, tracking_number=package.tracking_number)
        return package

    # ---------------------------
    # Append checkpoint
    # ---------------------------
    def append_checkpoint(self, package_id: str, action: str, location: str, employee: str,
                          notes: Optional[str] = None) -> Package:
        require_fields(package_id=package_id, action=action, location=location, employee=employee)

        def attempt() -> Package:
            with self.store.with_lock(PACKAGES, package_id):
                record = self.store.get(PACKAGES, package_id)
                if record is None:
                    raise NotFoundError("package", package_id)
                package = Package.model_validate(record.body)
                self.policy.check(package, action)

                previous = package.last_checkpoint
                checkpoint = Checkpoint(
                    order=len(package.checkpoints) + 1,
                    location_type="warehouse",
                    location_name=location,
                    scanned_by=employee,
                    timestamp=max(self.clock(), previous.timestamp),
                    internal_status=action,
                    public_status=public_status_for(action),
                    notes=notes or "",
                )
                package.checkpoints.append(checkpoint)
                package.current_internal_status = action
                package.current_public_status = checkpoint.public_status
                self.store.replace(PACKAGES, package_id, package.to_json(),
                                   expected_version=record.version)
                return package

        package = retry_on_conflict(attempt, self.max_write_attempts, "append_checkpoint")
        log_operation(logger, "append_checkpoint", "success", package_id=package_id,
                      order=package.last_checkpoint.order, status=package.current_public_status)
        return package

    # ---------------------------
    # Reads
    # ---------------------------
    def get(self, package_id: str) -> Package:
        record = self.store.get(PACKAGES, package_id)
        if record is None:
            raise NotFoundError("package", package_id)
        return Package.model_validate(record.body)

    def get_by_tracking_number(self, tracking_number: str) -> Package:
        record = self.store.find(PACKAGES, "tracking_number", tracking_number)
        if record is None:
            raise NotFoundError("package", tracking_number)
        return Package.model_validate(record.body)

    def lookup(self, identifier: str) -> Package:
        """Find a package by package id or tracking number."""
        require_fields(identifier=identifier)
        try:
            return self.get(identifier)
        except NotFoundError:
            log_operation(logger, "lookup", "not_a_package_id", level=logging.DEBUG,
                          identifier=identifier)
        return self.get_by_tracking_number(identifier)

    def list_packages(self, limit: int = 200) -> List[Package]:
        packages = [Package.model_validate(r.body) for r in self.store.list(PACKAGES, limit)]
        packages.sort(key=lambda p: p.created_at, reverse=True)
        return packages
