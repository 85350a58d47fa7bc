"""
Durable keyed record store on top of SQLModel.

Dedup: an incoming record matches an existing one when ANY of its keys is
already registered. On a match the stored type/data/tags are overwritten in
place (same id; the lowest id when the keys span several records) and the
incoming keys not yet known are attached to it; otherwise a new record is
inserted with all of its keys.
"""
import json
from datetime import datetime
from typing import Optional

from sqlmodel import Session, select

from pipesync.models.record import ExternalRef, RecordKey, SyncedRecord
from pipesync.outputs.base import INSERTED, UPDATED, Record, SyncOutput, UpsertResult


class DatabaseOutput(SyncOutput):
    def __init__(self, engine):
        """
        Args:
            engine: SQLAlchemy engine (SQLModel create_engine result).
        """
        self.engine = engine

    async def upsert(self, record: Record) -> UpsertResult:
        data_json = json.dumps(record.data, default=str)
        tags_json = json.dumps(record.tags) if record.tags is not None else None

        with Session(self.engine) as s:
            known = []
            if record.keys:
                known = s.exec(
                    select(RecordKey)
                    .where(RecordKey.key.in_(record.keys))
                    .order_by(RecordKey.record_id)
                ).all()

            if known:
                db_record = s.get(SyncedRecord, known[0].record_id)
                db_record.type = record.type
                db_record.data_json = data_json
                db_record.tags_json = tags_json
                db_record.updated_at = datetime.utcnow()
                action = UPDATED
            else:
                db_record = SyncedRecord(
                    type=record.type, data_json=data_json, tags_json=tags_json
                )
                action = INSERTED
            s.add(db_record)
            s.flush()

            known_keys = {k.key for k in known}
            for key in record.keys:
                if key not in known_keys:
                    s.add(RecordKey(key=key, record_id=db_record.id))
                    known_keys.add(key)
            s.commit()
            return UpsertResult(id=str(db_record.id), action=action)

    async def find_by_ref(self, system: str, external_id: str) -> Optional[str]:
        with Session(self.engine) as s:
            ref = s.exec(
                select(ExternalRef).where(
                    ExternalRef.system == system,
                    ExternalRef.external_id == external_id,
                )
            ).first()
        return str(ref.record_id) if ref else None

    async def add_ref(
        self,
        record_id: str,
        system: str,
        external_id: str,
        url: Optional[str] = None,
    ) -> None:
        with Session(self.engine) as s:
            ref = s.exec(
                select(ExternalRef).where(
                    ExternalRef.system == system,
                    ExternalRef.external_id == external_id,
                )
            ).first()
            if ref:
                ref.record_id = int(record_id)
                ref.url = url
            else:
                ref = ExternalRef(
                    record_id=int(record_id),
                    system=system,
                    external_id=external_id,
                    url=url,
                )
            s.add(ref)
            s.commit()
