"""Service layer exceptions for the package tracker.

Exception Hierarchy:
    ServiceError
    ├── ValidationError      missing/empty required fields (400)
    ├── NotFoundError        unknown package or session (404)
    ├── AuthorizationError   session not connected (400, distinct detail)
    ├── PackageClosedError   strict mode: package already delivered/returned (409)
    └── ConflictError        id collision or stale write, retried before surfacing (503)
"""
from typing import Iterable


class ServiceError(Exception):
    """Base exception for all service layer errors."""

    pass


class ValidationError(ServiceError):
    """Raised when required fields are missing or empty."""

    def __init__(self, fields: Iterable[str]):
        self.fields = list(fields)
        super().__init__(f"Missing required fields: {', '.join(self.fields)}")


class NotFoundError(ServiceError):
    """Raised when a referenced package or session does not exist."""

    def __init__(self, entity: str, key: str):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} not found: {key}")


class AuthorizationError(ServiceError):
    """Raised when a scan is submitted through a session that is not connected."""

    def __init__(self, session_key: str):
        self.session_key = session_key
        super().__init__("session not connected")


class PackageClosedError(ServiceError):
    """Raised by the strict completion policy for scans after a terminal status."""

    def __init__(self, package_id: str, status: str):
        self.package_id = package_id
        self.status = status
        super().__init__(f"package {package_id} is closed ({status})")


class ConflictError(ServiceError):
    """Raised on identifier collisions and stale (version mismatch) writes."""

    def __init__(self, message: str = "write conflict, try again"):
        super().__init__(message)


def require_fields(**fields) -> None:
    """Raise ValidationError naming every field that is None or blank."""
    missing = [
        name for name, value in fields.items()
        if value is None or (isinstance(value, str) and not value.strip())
    ]
    if missing:
        raise ValidationError(missing)
