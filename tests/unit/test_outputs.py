"""Tests for the NDJSON and database outputs."""
import io
import json

import pytest
from sqlmodel import Session, select

from pipesync.models.record import ExternalRef, RecordKey, SyncedRecord
from pipesync.outputs.base import INSERTED, UPDATED, Record
from pipesync.outputs.database import DatabaseOutput
from pipesync.outputs.factory import create_output
from pipesync.outputs.stdout import StdoutOutput


def _record(*keys, **data) -> Record:
    return Record(type="contact", data=data or {"name": "Ada"}, tags=["crm"], keys=list(keys))


class TestStdoutOutput:
    @pytest.mark.asyncio
    async def test_writes_one_json_line_per_record(self):
        stream = io.StringIO()
        out = StdoutOutput(stream)
        await out.upsert(_record("attio:1", name="Ada"))
        await out.upsert(_record("attio:2", name="Grace"))

        lines = stream.getvalue().splitlines()
        assert len(lines) == 2
        first = json.loads(lines[0])
        assert first["type"] == "contact"
        assert first["data"] == {"name": "Ada"}
        assert first["tags"] == ["crm"]
        assert first["keys"] == ["attio:1"]
        assert first["id"].startswith("record-")

    @pytest.mark.asyncio
    async def test_repeated_key_reports_updated(self):
        out = StdoutOutput(io.StringIO())
        assert (await out.upsert(_record("attio:1"))).action == INSERTED
        assert (await out.upsert(_record("person:a@b.com", "attio:1"))).action == UPDATED

    @pytest.mark.asyncio
    async def test_ids_are_unique(self):
        out = StdoutOutput(io.StringIO())
        a = await out.upsert(_record("k1"))
        b = await out.upsert(_record("k2"))
        assert a.id != b.id

    @pytest.mark.asyncio
    async def test_refs_are_findable(self):
        out = StdoutOutput(io.StringIO())
        await out.add_ref("record-9", "gmail", "m1", url="https://x")
        assert await out.find_by_ref("gmail", "m1") == "record-9"
        assert await out.find_by_ref("gmail", "m2") is None

    @pytest.mark.asyncio
    async def test_defaults_to_sys_stdout(self, capsys):
        await StdoutOutput().upsert(_record("k"))
        assert '"type": "contact"' in capsys.readouterr().out


class TestDatabaseOutput:
    @pytest.mark.asyncio
    async def test_insert_creates_record_and_keys(self, engine):
        out = DatabaseOutput(engine)
        result = await out.upsert(_record("attio:1", "person:a@b.com", name="Ada"))
        assert result.action == INSERTED

        with Session(engine) as s:
            record = s.get(SyncedRecord, int(result.id))
            keys = s.exec(select(RecordKey)).all()
        assert json.loads(record.data_json) == {"name": "Ada"}
        assert json.loads(record.tags_json) == ["crm"]
        assert {k.key for k in keys} == {"attio:1", "person:a@b.com"}

    @pytest.mark.asyncio
    async def test_matching_key_updates_in_place(self, engine):
        out = DatabaseOutput(engine)
        first = await out.upsert(_record("attio:1", name="Ada"))
        second = await out.upsert(_record("attio:1", name="Ada L."))

        assert second.action == UPDATED
        assert second.id == first.id
        with Session(engine) as s:
            records = s.exec(select(SyncedRecord)).all()
        assert len(records) == 1
        assert json.loads(records[0].data_json) == {"name": "Ada L."}

    @pytest.mark.asyncio
    async def test_natural_key_dedups_across_systems(self, engine):
        out = DatabaseOutput(engine)
        first = await out.upsert(_record("attio:1", "person:a@b.com"))
        second = await out.upsert(_record("hubspot:77", "person:a@b.com"))

        assert second.action == UPDATED
        assert second.id == first.id
        with Session(engine) as s:
            owners = {k.key: k.record_id for k in s.exec(select(RecordKey)).all()}
        assert owners["hubspot:77"] == int(first.id)

    @pytest.mark.asyncio
    async def test_keys_spanning_two_records_update_the_oldest(self, engine):
        out = DatabaseOutput(engine)
        older = await out.upsert(_record("attio:1"))
        newer = await out.upsert(_record("hubspot:9"))

        result = await out.upsert(_record("hubspot:9", "attio:1", name="Merged"))

        assert result.action == UPDATED
        assert result.id == older.id
        with Session(engine) as s:
            merged = s.get(SyncedRecord, int(older.id))
            untouched = s.get(SyncedRecord, int(newer.id))
        assert json.loads(merged.data_json) == {"name": "Merged"}
        assert json.loads(untouched.data_json) == {"name": "Ada"}

    @pytest.mark.asyncio
    async def test_add_ref_and_find(self, engine):
        out = DatabaseOutput(engine)
        result = await out.upsert(_record("gmail:m1"))
        await out.add_ref(result.id, "gmail", "m1", url="https://mail/m1")
        await out.add_ref(result.id, "gmail", "m1", url="https://mail/m1?v=2")

        assert await out.find_by_ref("gmail", "m1") == result.id
        assert await out.find_by_ref("gmail", "nope") is None
        with Session(engine) as s:
            refs = s.exec(select(ExternalRef)).all()
        assert len(refs) == 1
        assert refs[0].url == "https://mail/m1?v=2"


class TestCreateOutput:
    def test_stdout_aliases(self):
        assert isinstance(create_output("stdout"), StdoutOutput)
        assert isinstance(create_output("json"), StdoutOutput)

    def test_db(self, engine):
        out = create_output("db", engine)
        assert isinstance(out, DatabaseOutput)
        assert out.engine is engine

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown output type"):
            create_output("mem")
