"""Shared test fixtures."""
from typing import Generator

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Import all models so SQLModel.metadata knows about them
from pipesync.models.record import ExternalRef, RecordKey, SyncedRecord  # noqa: F401
from pipesync.models.sync import StoredMapping, SyncRun, SyncState  # noqa: F401
from pipesync.models.mapping import SyncMapping


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    """Provides a DB session connected to in-memory SQLite."""
    with Session(engine) as session:
        yield session


def _build_mapping(**overrides) -> SyncMapping:
    """A cursor-paginated contacts mapping; pass camelCase keys to override."""
    config = {
        "name": "crm-contacts",
        "platform": "attio",
        "connectionKey": "live::attio::default::abc",
        "actionId": "conn_mod_def::list-records",
        "request": {"method": "GET", "path": "/v2/objects/people/records"},
        "pagination": {
            "type": "cursor",
            "requestParam": "pageToken",
            "responseField": "nextPageToken",
            "itemsField": "data",
        },
        "record": {
            "type": "contact",
            "mapping": {"name": "values.name", "email": "values.email"},
            "tags": ["crm"],
            "naturalKeys": ["person:{email}"],
        },
        "externalRef": {
            "system": "attio",
            "idField": "id",
            "urlTemplate": "https://app.attio.com/people/{id}",
        },
    }
    config.update(overrides)
    return SyncMapping.model_validate(config)


@pytest.fixture(name="make_mapping")
def make_mapping_fixture():
    """Factory fixture: make_mapping(pagination={...}, incremental={...})."""
    return _build_mapping


@pytest.fixture(name="mapping")
def mapping_fixture() -> SyncMapping:
    return _build_mapping()
