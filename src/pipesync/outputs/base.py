"""
SyncOutput: the contract for any sync destination.

SyncService only ever talks to this interface, so a destination can be a
durable database, a line emitter, or a test fake.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

INSERTED = "inserted"
UPDATED = "updated"


@dataclass
class Record:
    """One mapped item on its way to a destination."""

    type: str
    data: Dict[str, Any]
    tags: Optional[List[str]] = None
    keys: List[str] = field(default_factory=list)


@dataclass
class UpsertResult:
    id: str
    action: str  # INSERTED or UPDATED


class SyncOutput(ABC):
    @abstractmethod
    async def upsert(self, record: Record) -> UpsertResult:
        """Insert or update a record. Dedup by record.keys is the store's job."""

    @abstractmethod
    async def find_by_ref(self, system: str, external_id: str) -> Optional[str]:
        """Return the id of the record linked to an external ref, or None."""

    @abstractmethod
    async def add_ref(
        self,
        record_id: str,
        system: str,
        external_id: str,
        url: Optional[str] = None,
    ) -> None:
        """Link a record to its source system."""
