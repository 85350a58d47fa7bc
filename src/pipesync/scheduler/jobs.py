"""
APScheduler jobs for watch mode.

`python -m pipesync watch --interval 30m` pulls every stored mapping once
immediately and then on a fixed interval, in the same process.
"""
import logging
import re
from datetime import datetime
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from pipesync.config import get_settings

logger = logging.getLogger(__name__)

_DURATION = re.compile(r"^(\d+)(s|m|h|d)$")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value: str) -> Optional[int]:
    """Parse "30s", "5m", "1h", "2d" into seconds. None if malformed."""
    match = _DURATION.match(value.strip())
    if not match:
        return None
    return int(match.group(1)) * _UNIT_SECONDS[match.group(2)]


def build_scheduler(engine, output, interval: Optional[str] = None) -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Args:
        engine: SQLAlchemy engine holding mappings and state.
        output: SyncOutput shared across runs.
        interval: Duration string; defaults to the WATCH_INTERVAL setting.

    Returns:
        Configured AsyncIOScheduler (not yet started).

    Raises:
        ValueError: if the interval cannot be parsed.
    """
    interval = interval or get_settings().watch_interval
    seconds = parse_duration(interval)
    if not seconds:
        raise ValueError(f"Invalid interval {interval!r}. Use e.g. 5m, 30m, 1h.")

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        _watch_sync,
        trigger="interval",
        seconds=seconds,
        id="watch_sync",
        replace_existing=True,
        next_run_time=datetime.now(),
        kwargs={"engine": engine, "output": output},
    )
    return scheduler


async def _watch_sync(engine, output) -> None:
    """
    Interval job: pull every stored mapping.

    Failures are logged; the next tick tries again.
    """
    from pipesync.sync.runner import pull_mappings

    try:
        results = await pull_mappings(engine, output)
    except Exception as exc:
        logger.error("Watch sync failed: %s", exc)
        return

    for result in results:
        if result.new or result.updated or result.errors:
            logger.info(
                "%s: %d new, %d updated, %d errors",
                result.name, result.new, result.updated, result.errors,
            )
