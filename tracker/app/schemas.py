# tracker/app/schemas.py
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Snake_case attributes, camelCase on the wire and in the store."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class Checkpoint(CamelModel):
    order: int
    location_type: str = "warehouse"
    location_name: str
    scanned_by: Optional[str] = None
    timestamp: datetime
    internal_status: Optional[str] = None
    public_status: str
    notes: str = ""


class Package(CamelModel):
    package_id: str
    tracking_number: str
    customer_name: str
    recipient_name: str
    destination: str
    details: Any = Field(default_factory=dict)
    current_internal_status: Optional[str] = None
    current_public_status: str
    created_at: datetime
    checkpoints: List[Checkpoint]

    @property
    def last_checkpoint(self) -> Checkpoint:
        return self.checkpoints[-1]


class SessionState(str, Enum):
    PENDING = "pending"
    QUEUED = "queued"
    CONNECTED = "connected"
    ENDED = "ended"


class Session(CamelModel):
    session_key: str
    employee: str
    location: str
    state: SessionState = SessionState.PENDING
    device_name: Optional[str] = None
    created_at: datetime
    connected_at: Optional[datetime] = None


class ScanEntry(CamelModel):
    session_key: str
    package_id: str
    checkpoint_order: int
    action: str
    public_status: str
    employee: str
    location: str
    device_name: Optional[str] = None
    timestamp: datetime


# ---------------------------
# Request bodies. Every field is optional so missing fields reach the
# services and come back as 400 instead of FastAPI's 422.
# Numbers in string fields are read as their text.
# ---------------------------
class RequestModel(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True,
                              coerce_numbers_to_str=True)


class PackageCreateIn(RequestModel):
    customer_name: Optional[str] = None
    recipient_name: Optional[str] = None
    destination: Optional[str] = None
    details: Any = None


class ScanIn(RequestModel):
    session_key: Optional[str] = None
    barcode: Optional[str] = None
    action: Optional[str] = None
    location: Optional[str] = None
    employee: Optional[str] = None
    notes: Optional[str] = None


class SessionStartIn(RequestModel):
    employee: Optional[str] = None
    location: Optional[str] = None


class SessionJoinIn(RequestModel):
    session_key: Optional[str] = None
    device_name: Optional[str] = None


class SessionConnectIn(RequestModel):
    session_key: Optional[str] = None
    device_name: Optional[str] = None


class SessionEndIn(RequestModel):
    session_key: Optional[str] = None
