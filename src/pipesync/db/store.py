"""
Persistence for mapping configs and per-mapping sync state.

Both are keyed by mapping name. State reads never fail: a mapping that has
never run gets a fresh SyncState with defaults. Writes replace the whole row.
"""
import json
from datetime import datetime
from typing import List, Optional

from sqlmodel import Session, select

from pipesync.models.mapping import SyncMapping
from pipesync.models.sync import StoredMapping, SyncState


class MappingNotFoundError(RuntimeError):
    """Raised when a named mapping has not been added."""


# ─── State ────────────────────────────────────────────────────────────────────

def load_state(engine, name: str) -> SyncState:
    with Session(engine) as s:
        state = s.get(SyncState, name)
        if state is None:
            return SyncState(name=name)
        s.expunge(state)
        return state


def save_state(engine, state: SyncState) -> None:
    with Session(engine) as s:
        s.merge(state)
        s.commit()


# ─── Mappings ─────────────────────────────────────────────────────────────────

def save_mapping(engine, mapping: SyncMapping) -> None:
    config_json = json.dumps(mapping.to_json_dict(), indent=2)
    with Session(engine) as s:
        stored = s.get(StoredMapping, mapping.name)
        if stored:
            stored.config_json = config_json
            stored.updated_at = datetime.utcnow()
        else:
            stored = StoredMapping(name=mapping.name, config_json=config_json)
        s.add(stored)
        s.commit()


def load_mapping(engine, name: str) -> Optional[SyncMapping]:
    with Session(engine) as s:
        stored = s.get(StoredMapping, name)
        if stored is None:
            return None
        return SyncMapping.model_validate_json(stored.config_json)


def get_mapping(engine, name: str) -> SyncMapping:
    """Like load_mapping(), but raises MappingNotFoundError when absent."""
    mapping = load_mapping(engine, name)
    if mapping is None:
        raise MappingNotFoundError(f"Mapping not found: {name}")
    return mapping


def list_mappings(engine) -> List[str]:
    with Session(engine) as s:
        return list(s.exec(select(StoredMapping.name).order_by(StoredMapping.name)).all())


def remove_mapping(engine, name: str) -> bool:
    """Delete a mapping and its state. Returns False if it did not exist."""
    with Session(engine) as s:
        stored = s.get(StoredMapping, name)
        if stored is None:
            return False
        s.delete(stored)
        state = s.get(SyncState, name)
        if state is not None:
            s.delete(state)
        s.commit()
    return True
