"""Mapping, state, and pull-trigger routes."""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session, select

from pipesync.db.engine import get_engine, get_session
from pipesync.models.mapping import SyncMapping
from pipesync.models.sync import StoredMapping, SyncRun, SyncState

router = APIRouter()


class PullRequest(BaseModel):
    full: bool = False


class MappingSummary(BaseModel):
    name: str
    platform: str
    record_type: str
    status: str
    last_sync_at: Optional[str]
    total_synced: int


class MappingDetail(BaseModel):
    mapping: Dict[str, Any]
    state: Dict[str, Any]


async def _do_pull(name: str, full: bool) -> None:
    """Background task: pull one mapping into the database output."""
    from pipesync.outputs.database import DatabaseOutput
    from pipesync.sync.runner import pull_mappings

    engine = get_engine()
    await pull_mappings(engine, DatabaseOutput(engine), names=[name], full=full)


def _state_or_default(session: Session, name: str) -> SyncState:
    return session.get(SyncState, name) or SyncState(name=name)


def _mapping_or_404(session: Session, name: str) -> SyncMapping:
    stored = session.get(StoredMapping, name)
    if stored is None:
        raise HTTPException(status_code=404, detail=f"Mapping not found: {name}")
    return SyncMapping.model_validate_json(stored.config_json)


@router.get("", response_model=List[MappingSummary])
def list_mappings(session: Session = Depends(get_session)):
    """All stored mappings with their current sync state."""
    stored = session.exec(select(StoredMapping).order_by(StoredMapping.name)).all()
    summaries = []
    for row in stored:
        mapping = SyncMapping.model_validate_json(row.config_json)
        state = _state_or_default(session, row.name)
        summaries.append(
            MappingSummary(
                name=mapping.name,
                platform=mapping.platform,
                record_type=mapping.record.type,
                status=state.status,
                last_sync_at=state.last_sync_at,
                total_synced=state.total_synced,
            )
        )
    return summaries


@router.get("/{name}", response_model=MappingDetail)
def show_mapping(name: str, session: Session = Depends(get_session)):
    mapping = _mapping_or_404(session, name)
    return MappingDetail(
        mapping=mapping.to_json_dict(),
        state=_state_or_default(session, name).model_dump(),
    )


@router.get("/{name}/state", response_model=SyncState)
def mapping_state(name: str, session: Session = Depends(get_session)):
    _mapping_or_404(session, name)
    return _state_or_default(session, name)


@router.get("/{name}/runs", response_model=List[SyncRun])
def mapping_runs(name: str, limit: int = 20, session: Session = Depends(get_session)):
    """Most recent pull attempts, newest first."""
    _mapping_or_404(session, name)
    return session.exec(
        select(SyncRun)
        .where(SyncRun.mapping_name == name)
        .order_by(SyncRun.started_at.desc())
        .limit(limit)
    ).all()


@router.post("/{name}/pull")
async def trigger_pull(
    name: str,
    request: PullRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
):
    """
    Start a pull in the background and return immediately.
    Poll /mappings/{name}/state for progress.
    """
    _mapping_or_404(session, name)
    background_tasks.add_task(_do_pull, name, request.full)
    return {"message": "Pull started", "name": name, "full": request.full}
