# tracker/app/models.py
from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from .db import Base


# Package document; tracking_number is lifted out for the unique index
class PackageRecord(Base):
    __tablename__ = "packages"
    record_key = Column("package_id", String, primary_key=True)
    tracking_number = Column(String, unique=True, index=True, nullable=False)
    version = Column(Integer, nullable=False, default=1)
    body = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


# Active scanning sessions; ended sessions are deleted
class SessionRecord(Base):
    __tablename__ = "sessions"
    record_key = Column("session_key", String, primary_key=True)
    version = Column(Integer, nullable=False, default=1)
    body = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


# Per-session scan history for live monitoring (best effort)
class ScanLog(Base):
    __tablename__ = "scan_logs"
    id = Column(Integer, primary_key=True)
    session_key = Column(String, index=True, nullable=False)
    package_id = Column(String, index=True, nullable=False)
    checkpoint_order = Column(Integer, nullable=False)
    body = Column(JSON, nullable=False)
    timestamp = Column(DateTime(timezone=True), server_default=func.now())
