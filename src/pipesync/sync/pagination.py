"""
Pagination strategies.

Two pure functions per page:

  extract_page()  reads one response: the items, the handle for the next
                  page, and whether the run is done.
  apply_cursor()  writes that handle into the next request's query params.

Strategies:
  cursor       next token at response_field; done when absent
  offset       running item offset in request_param; done on a short page
  sync-token   like cursor, but done only when no items AND no token
  link-header  next URL from the Link header; fetched directly by the caller
  page-number  1-based page derived from the running offset; short page ends
  none         single request
"""
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from pipesync.models.mapping import PaginationConfig, PaginationType
from pipesync.sync.resolver import resolve, stringify

# Offset and page-number positions are tracked by the caller's running
# offset; this marker only keeps the loop going.
CONTINUE = "continue"

_LINK_NEXT = re.compile(r'<([^>]+)>;\s*rel="next"')


@dataclass
class PageResult:
    items: List[Dict[str, Any]] = field(default_factory=list)
    next_cursor: Optional[str] = None
    done: bool = True


def _token_at(response: Any, path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    value = resolve(response, path)
    return stringify(value) if value else None


def _header(headers: Optional[Mapping[str, str]], name: str) -> str:
    for key, value in (headers or {}).items():
        if key.lower() == name:
            return value
    return ""


def extract_page(
    response: Any,
    config: PaginationConfig,
    headers: Optional[Mapping[str, str]] = None,
) -> PageResult:
    """Pull items and the next-page handle out of one API response."""
    if not isinstance(response, (dict, list)):
        return PageResult()

    if config.items_field:
        raw = resolve(response, config.items_field)
        items = raw if isinstance(raw, list) else []
    elif isinstance(response, list):
        items = response
    else:
        items = []

    ptype = config.type
    next_cursor: Optional[str] = None

    if ptype == PaginationType.CURSOR:
        next_cursor = _token_at(response, config.response_field)
        done = next_cursor is None

    elif ptype in (PaginationType.OFFSET, PaginationType.PAGE_NUMBER):
        done = len(items) < config.effective_page_size
        if not done:
            next_cursor = CONTINUE

    elif ptype == PaginationType.SYNC_TOKEN:
        next_cursor = _token_at(response, config.response_field)
        # A token alone is not terminal; an empty page with no token is.
        done = not items and next_cursor is None

    elif ptype == PaginationType.LINK_HEADER:
        match = _LINK_NEXT.search(_header(headers, "link"))
        if match:
            next_cursor = match.group(1)
        done = next_cursor is None

    elif ptype == PaginationType.NONE:
        done = True

    else:
        raise ValueError(f"Unknown pagination type: {ptype!r}")

    return PageResult(items=items, next_cursor=next_cursor, done=done)


def apply_cursor(
    query_params: Dict[str, Any],
    config: PaginationConfig,
    cursor: Optional[str],
    current_offset: int,
) -> Dict[str, Any]:
    """Return a copy of query_params positioned for the next page."""
    params = dict(query_params)
    ptype = config.type
    param = config.request_param

    if ptype in (PaginationType.CURSOR, PaginationType.SYNC_TOKEN):
        if cursor and param:
            params[param] = cursor

    elif ptype == PaginationType.OFFSET:
        if param:
            params[param] = current_offset

    elif ptype == PaginationType.PAGE_NUMBER:
        if param:
            params[param] = current_offset // config.effective_page_size + 1

    elif ptype in (PaginationType.LINK_HEADER, PaginationType.NONE):
        # link-header cursors are full URLs fetched as-is
        pass

    else:
        raise ValueError(f"Unknown pagination type: {ptype!r}")

    return params
