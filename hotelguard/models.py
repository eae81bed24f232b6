# hotelguard/models.py
from typing import Any, Optional
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, JSON
from sqlmodel import SQLModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RecordRow(SQLModel, table=True):
    """Current state of one inspection finding, stored as submitted."""
    __tablename__ = "records"

    id: str = Field(primary_key=True)
    data: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    updated_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime(timezone=True)))


class HistoryRow(SQLModel, table=True):
    """Append-only provenance entry. Never updated, never deleted with its record."""
    __tablename__ = "history"

    # insertion order, breaks timestamp ties
    seq: Optional[int] = Field(default=None, primary_key=True)
    id: str = Field(unique=True, index=True)
    record_id: str = Field(index=True)
    timestamp: datetime = Field(sa_column=Column(DateTime(timezone=True), index=True, nullable=False))
    user_id: str
    action: str
    diff: Optional[dict] = Field(default=None, sa_column=Column(JSON, nullable=True))
    snapshot: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    snapshot_hash: str


class SignatureRow(SQLModel, table=True):
    __tablename__ = "signatures"

    id: str = Field(primary_key=True)
    record_id: str = Field(index=True)
    signature_base64: str
    timestamp: str
    pdf_hash: Optional[str] = None
    auditor_name: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime(timezone=True)))


class SettingRow(SQLModel, table=True):
    __tablename__ = "app_settings"

    key: str = Field(primary_key=True)
    value: Any = Field(default=None, sa_column=Column(JSON))
