"""Sync state, stored mappings, run audit log, and run results."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel
from sqlmodel import Field, SQLModel


class SyncState(SQLModel, table=True):
    """Persisted progress for one mapping. Written only by SyncService."""

    __tablename__ = "sync_state"

    name: str = Field(primary_key=True)
    last_sync_at: Optional[str] = None  # ISO-8601 UTC, set on success only
    last_cursor: Optional[str] = None  # resume point, cleared on success
    sync_token: Optional[str] = None
    total_synced: int = 0
    last_run_records: int = 0
    status: str = "idle"  # "idle", "running", "completed", "error"
    last_error: Optional[str] = None


class StoredMapping(SQLModel, table=True):
    """A SyncMapping kept as its camelCase JSON document."""

    __tablename__ = "stored_mapping"

    name: str = Field(primary_key=True)
    config_json: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class SyncRun(SQLModel, table=True):
    """Records each pull attempt for audit and debugging."""

    __tablename__ = "sync_run"

    id: Optional[int] = Field(default=None, primary_key=True)
    mapping_name: str = Field(index=True)
    started_at: datetime = Field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None
    status: str = "running"  # "running", "completed", "error"
    full: bool = False
    new_count: int = 0
    updated_count: int = 0
    error_count: int = 0
    error_message: Optional[str] = None


class SyncResult(BaseModel):
    """Summary returned by SyncService.pull()."""

    name: str
    new: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    duration: str = "0.0s"
    status: str = "completed"  # "completed" or "error"
    error: Optional[str] = None
