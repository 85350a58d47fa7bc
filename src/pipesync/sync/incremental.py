"""Incremental filters: narrow a request to data changed since the last run."""
from typing import Any, Dict

from pipesync.models.mapping import IncrementalConfig, IncrementalType
from pipesync.models.sync import SyncState


def apply_incremental_filter(
    query_params: Dict[str, Any],
    config: IncrementalConfig,
    state: SyncState,
) -> Dict[str, Any]:
    """
    Return a copy of query_params with the incremental filter applied.

    Missing config fields or state leave the params untouched, which means
    a full pull this round rather than an error.
    """
    params = dict(query_params)
    if not config.param:
        return params

    if config.type == IncrementalType.QUERY_FILTER:
        if config.template and state.last_sync_at:
            last_sync_date = state.last_sync_at.split("T")[0]
            params[config.param] = (
                config.template.replace("{lastSyncDate}", last_sync_date)
                .replace("{lastSyncAt}", state.last_sync_at)
                .replace("{syncToken}", state.sync_token or "")
            )

    elif config.type == IncrementalType.SYNC_TOKEN:
        if state.sync_token:
            params[config.param] = state.sync_token

    elif config.type == IncrementalType.SORT_FILTER:
        if state.last_sync_at:
            params[config.param] = state.last_sync_at

    return params
