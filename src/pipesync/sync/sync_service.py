"""
SyncService: the pull loop for one mapping.

Flow for a single pull:
  1. Load SyncState, mark it "running", open a SyncRun audit row
  2. Per page: build params (static -> incremental -> cursor), fetch,
     extract items + next cursor
  3. Per item: external id -> optional detail fetch -> map fields ->
     dedup keys -> output.upsert -> output.add_ref
  4. Checkpoint state.last_cursor after every page
  5. On success: stamp last_sync_at, clear last_cursor, status "completed"

Item failures are counted and skipped. A failure outside the item loop (a
page fetch, say) ends the run with status "error" and leaves last_cursor at
its last checkpoint so the next pull resumes there. pull() never raises for
either kind; the outcome is in the returned SyncResult.
"""
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlmodel import Session

from pipesync.db.store import load_state, save_state
from pipesync.models.mapping import IncrementalType, PaginationType, SyncMapping
from pipesync.models.sync import SyncResult, SyncRun, SyncState
from pipesync.outputs.base import UPDATED, Record, SyncOutput
from pipesync.pica.client import PicaResponse
from pipesync.sync.incremental import apply_incremental_filter
from pipesync.sync.mapper import apply_mapping, build_keys, extract_id
from pipesync.sync.pagination import apply_cursor, extract_page
from pipesync.sync.resolver import build_external_url, resolve, stringify

logger = logging.getLogger(__name__)

DEFAULT_MAX_EMPTY_PAGES = 25


def utc_now_iso() -> str:
    """Current UTC time as e.g. 2025-01-15T07:30:00.000Z."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class _Counts:
    new: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0


class SyncService:
    """Pulls mappings through the passthrough API into a SyncOutput."""

    def __init__(
        self,
        client,
        output: SyncOutput,
        engine,
        max_empty_pages: Optional[int] = DEFAULT_MAX_EMPTY_PAGES,
    ):
        """
        Args:
            client: PicaClient instance (or AsyncMock in tests).
            output: Destination store.
            engine: SQLAlchemy engine holding SyncState and SyncRun rows.
            max_empty_pages: Stop a sync-token run after this many
                consecutive empty pages. None disables the bound.
        """
        self.client = client
        self.output = output
        self.engine = engine
        self.max_empty_pages = max_empty_pages

    async def pull_all(
        self, mappings: List[SyncMapping], full: bool = False
    ) -> List[SyncResult]:
        """Pull several mappings one after another."""
        return [await self.pull(mapping, full=full) for mapping in mappings]

    async def pull(self, mapping: SyncMapping, full: bool = False) -> SyncResult:
        """
        Run the sync loop for one mapping.

        Args:
            mapping: The integration to pull.
            full: Ignore incremental state and any saved cursor.

        Returns:
            SyncResult with counts and final status.
        """
        started = time.monotonic()
        counts = _Counts()

        try:
            state = load_state(self.engine, mapping.name)
            is_first_run = state.last_sync_at is None

            state.status = "running"
            state.last_error = None
            save_state(self.engine, state)
            run = self._create_sync_run(mapping.name, full)
        except Exception as exc:
            logger.exception("%s: could not start pull", mapping.name)
            return SyncResult(
                name=mapping.name,
                errors=1,
                duration=_duration(started),
                status="error",
                error=str(exc),
            )

        cursor: Optional[str] = None
        if not full and not is_first_run and state.last_cursor:
            cursor = state.last_cursor
            logger.info("%s: resuming from saved cursor", mapping.name)

        try:
            cursor, token = await self._page_loop(
                mapping, state, counts, cursor, full=full, is_first_run=is_first_run
            )

            if mapping.incremental and mapping.incremental.type == IncrementalType.SYNC_TOKEN:
                state.sync_token = token or cursor

            state.last_sync_at = utc_now_iso()
            state.last_cursor = None
            state.total_synced += counts.new
            state.last_run_records = counts.new
            state.status = "completed"
            state.last_error = None
            save_state(self.engine, state)

            result = SyncResult(
                name=mapping.name,
                new=counts.new,
                updated=counts.updated,
                skipped=counts.skipped,
                errors=counts.errors,
                duration=_duration(started),
                status="completed",
            )
            logger.info(
                "%s: %d new, %d updated, %d errors (%s)",
                mapping.name, result.new, result.updated, result.errors, result.duration,
            )

        except Exception as exc:
            logger.exception("%s: pull failed", mapping.name)
            state.status = "error"
            state.last_error = str(exc)
            state.last_run_records = counts.new
            try:
                save_state(self.engine, state)
            except Exception:
                logger.exception("%s: could not save error state", mapping.name)

            result = SyncResult(
                name=mapping.name,
                new=counts.new,
                updated=counts.updated,
                skipped=counts.skipped,
                errors=counts.errors + 1,
                duration=_duration(started),
                status="error",
                error=str(exc),
            )

        try:
            self._finish_sync_run(run, result)
        except Exception:
            logger.exception("%s: could not record sync run", mapping.name)
        return result

    # ─── Internal helpers ─────────────────────────────────────────────────────

    async def _page_loop(
        self,
        mapping: SyncMapping,
        state: SyncState,
        counts: _Counts,
        cursor: Optional[str],
        *,
        full: bool,
        is_first_run: bool,
    ) -> Tuple[Optional[str], Optional[str]]:
        """Fetch and process pages until done. Returns (cursor, sync token)."""
        pagination = mapping.pagination
        incremental = mapping.incremental
        token_field = incremental.token_field if incremental else None

        offset = 0
        empty_pages = 0
        token: Optional[str] = None
        done = False

        while not done:
            params = dict(mapping.request.query_params)
            if not full and not is_first_run and incremental and state.last_sync_at:
                params = apply_incremental_filter(params, incremental, state)
            params = apply_cursor(params, pagination, cursor, offset)
            body = self._move_paging_param_to_body(mapping, params)

            logger.debug("%s: fetching page (offset=%d)", mapping.name, offset)
            response = await self._fetch_page(mapping, cursor, params, body)

            page = extract_page(response.data, pagination, response.headers)
            logger.debug("%s: got %d items", mapping.name, len(page.items))

            if token_field:
                # only the latest response's token counts
                found = resolve(response.data, token_field)
                token = stringify(found) if found else None

            for item in page.items:
                await self._process_item(mapping, item, counts)

            cursor = page.next_cursor
            offset += len(page.items)
            done = page.done

            state.last_cursor = cursor
            save_state(self.engine, state)

            if pagination.type == PaginationType.SYNC_TOKEN and not done:
                empty_pages = 0 if page.items else empty_pages + 1
                if self.max_empty_pages is not None and empty_pages >= self.max_empty_pages:
                    logger.warning(
                        "%s: %d consecutive empty pages, stopping",
                        mapping.name, empty_pages,
                    )
                    done = True

        return cursor, token

    @staticmethod
    def _move_paging_param_to_body(
        mapping: SyncMapping, params: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """POST list endpoints take the paging param in the body, not the query."""
        body = dict(mapping.request.body) if mapping.request.body is not None else None
        param = mapping.pagination.request_param
        if mapping.request.method.upper() == "POST" and param and param in params:
            body = body if body is not None else {}
            body[param] = params.pop(param)
        return body

    async def _fetch_page(
        self,
        mapping: SyncMapping,
        cursor: Optional[str],
        params: Dict[str, Any],
        body: Optional[Dict[str, Any]],
    ) -> PicaResponse:
        if mapping.pagination.type == PaginationType.LINK_HEADER and cursor:
            return await self.client.request_url(
                cursor, mapping.connection_key, mapping.action_id
            )
        return await self.client.request(
            mapping.connection_key,
            mapping.action_id,
            method=mapping.request.method,
            path=mapping.request.path,
            query_params=params,
            body=body,
            headers=mapping.request.headers,
        )

    async def _process_item(
        self, mapping: SyncMapping, item: Dict[str, Any], counts: _Counts
    ) -> None:
        """Map and store one item. Failures are counted, never raised."""
        try:
            external_id = extract_id(item, mapping.external_ref.id_field)
            if not external_id:
                logger.warning(
                    "%s: item has no %s, skipping",
                    mapping.name, mapping.external_ref.id_field,
                )
                counts.errors += 1
                return

            item_data = await self._fetch_detail(mapping, item, external_id)
            data = apply_mapping(item_data, mapping.record.mapping)
            keys = build_keys(
                mapping.external_ref.system,
                external_id,
                mapping.record.natural_keys,
                data,
            )

            result = await self.output.upsert(
                Record(
                    type=mapping.record.type,
                    data=data,
                    tags=mapping.record.tags,
                    keys=keys,
                )
            )

            url = None
            if mapping.external_ref.url_template:
                url = build_external_url(mapping.external_ref.url_template, item)
            await self.output.add_ref(
                result.id, mapping.external_ref.system, external_id, url=url
            )

            if result.action == UPDATED:
                counts.updated += 1
            else:
                counts.new += 1

        except Exception as exc:
            logger.warning("%s: error processing item: %s", mapping.name, exc)
            counts.errors += 1

    async def _fetch_detail(
        self, mapping: SyncMapping, item: Dict[str, Any], external_id: str
    ) -> Dict[str, Any]:
        """Swap the list item for its detail record when one is configured.

        Best-effort: any failure falls back to the list item.
        """
        detail = mapping.detail
        if detail is None:
            return item
        try:
            detail_id = extract_id(item, detail.id_field)
            if not detail_id:
                return item
            response = await self.client.request(
                mapping.connection_key,
                detail.action_id,
                method="GET",
                path=detail.path.replace(f"{{{detail.path_var}}}", detail_id),
                query_params=detail.query_params,
            )
            if isinstance(response.data, dict):
                return response.data
        except Exception as exc:
            logger.warning(
                "%s: detail fetch failed for %s: %s", mapping.name, external_id, exc
            )
        return item

    def _create_sync_run(self, mapping_name: str, full: bool) -> SyncRun:
        run = SyncRun(mapping_name=mapping_name, full=full, status="running")
        with Session(self.engine) as s:
            s.add(run)
            s.commit()
            s.refresh(run)
        return run

    def _finish_sync_run(self, run: SyncRun, result: SyncResult) -> None:
        with Session(self.engine) as s:
            db_run = s.get(SyncRun, run.id)
            db_run.status = result.status
            db_run.finished_at = datetime.utcnow()
            db_run.new_count = result.new
            db_run.updated_count = result.updated
            db_run.error_count = result.errors
            db_run.error_message = result.error
            s.add(db_run)
            s.commit()


def _duration(started: float) -> str:
    return f"{time.monotonic() - started:.1f}s"
