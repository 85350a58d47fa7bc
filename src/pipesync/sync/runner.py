"""Wires settings, client, output and store together for the CLI, API and scheduler."""
import logging
from typing import List, Optional

from pipesync.config import get_settings
from pipesync.db.store import list_mappings, load_mapping
from pipesync.models.sync import SyncResult
from pipesync.outputs.base import SyncOutput
from pipesync.pica.client import PicaClient
from pipesync.sync.sync_service import SyncService

logger = logging.getLogger(__name__)


async def pull_mappings(
    engine,
    output: SyncOutput,
    names: Optional[List[str]] = None,
    full: bool = False,
) -> List[SyncResult]:
    """
    Pull the named mappings (all stored mappings when names is None).

    Unknown names are logged and skipped.

    Raises:
        MissingSecretKeyError: if no Pica secret key is configured.
    """
    settings = get_settings()
    names = names if names is not None else list_mappings(engine)

    mappings = []
    for name in names:
        mapping = load_mapping(engine, name)
        if mapping is None:
            logger.error("Mapping not found: %s", name)
            continue
        mappings.append(mapping)

    if not mappings:
        return []

    async with PicaClient(
        settings.pica_secret_key,
        base_url=settings.pica_base_url,
        timeout=settings.request_timeout,
    ) as client:
        service = SyncService(
            client=client,
            output=output,
            engine=engine,
            max_empty_pages=settings.max_empty_pages,
        )
        return await service.pull_all(mappings, full=full)
