"""Durable record store tables used by DatabaseOutput."""
from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class SyncedRecord(SQLModel, table=True):
    """One deduplicated record. data/tags are JSON-encoded."""

    __tablename__ = "synced_record"

    id: Optional[int] = Field(default=None, primary_key=True)
    type: str = Field(index=True)
    data_json: str = "{}"
    tags_json: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class RecordKey(SQLModel, table=True):
    """Dedup key ("gmail:123", "person:a@b.com") owned by one record."""

    __tablename__ = "record_key"

    key: str = Field(primary_key=True)
    record_id: int = Field(foreign_key="synced_record.id", index=True)


class ExternalRef(SQLModel, table=True):
    """Link from a record back to its source system."""

    __tablename__ = "external_ref"
    __table_args__ = (UniqueConstraint("system", "external_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    record_id: int = Field(foreign_key="synced_record.id", index=True)
    system: str
    external_id: str
    url: Optional[str] = None
