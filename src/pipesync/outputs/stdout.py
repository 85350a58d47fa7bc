"""
NDJSON output: one JSON object per synced record.

    python -m pipesync pull gmail-emails | jq '.data.subject'
    python -m pipesync pull gmail-emails > emails.jsonl

Dedup is an in-memory key map that lives only as long as the process, and
record ids are process-local sequence numbers.
"""
import itertools
import json
import sys
from typing import Dict, Optional, TextIO

from pipesync.outputs.base import INSERTED, UPDATED, Record, SyncOutput, UpsertResult

_counter = itertools.count(1)


class StdoutOutput(SyncOutput):
    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream
        self._seen: Dict[str, str] = {}

    @property
    def stream(self) -> TextIO:
        # resolved lazily so pytest's capsys sees the writes
        return self._stream or sys.stdout

    async def upsert(self, record: Record) -> UpsertResult:
        record_id = f"record-{next(_counter)}"

        action = INSERTED
        if any(key in self._seen for key in record.keys):
            action = UPDATED
        for key in record.keys:
            self._seen[key] = record_id

        line = json.dumps(
            {
                "id": record_id,
                "type": record.type,
                "data": record.data,
                "tags": record.tags,
                "keys": record.keys,
            },
            default=str,
        )
        self.stream.write(line + "\n")
        self.stream.flush()
        return UpsertResult(id=record_id, action=action)

    async def find_by_ref(self, system: str, external_id: str) -> Optional[str]:
        return self._seen.get(f"{system}:{external_id}")

    async def add_ref(
        self,
        record_id: str,
        system: str,
        external_id: str,
        url: Optional[str] = None,
    ) -> None:
        self._seen[f"{system}:{external_id}"] = record_id
