"""
Mapping configuration models.

A SyncMapping is authored outside the engine (by hand or by a generator) as
camelCase JSON. These models parse it into plain data; nothing here is ever
executed or templated beyond literal `{field}` substitution downstream.

Example:

    {
      "name": "gmail-emails",
      "platform": "gmail",
      "connectionKey": "live::gmail::default::abc",
      "actionId": "conn_mod_def::...",
      "request": {"method": "GET", "path": "/users/me/messages"},
      "pagination": {
        "type": "cursor",
        "requestParam": "pageToken",
        "responseField": "nextPageToken",
        "itemsField": "messages"
      },
      "record": {"type": "email", "mapping": {"subject": "payload.subject"}},
      "externalRef": {"system": "gmail", "idField": "id"}
    }
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DEFAULT_PAGE_SIZE = 100


class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_json_dict(self) -> Dict[str, Any]:
        """Dump with camelCase keys, dropping unset optional blocks."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PaginationType(str, Enum):
    CURSOR = "cursor"
    OFFSET = "offset"
    SYNC_TOKEN = "sync-token"
    LINK_HEADER = "link-header"
    PAGE_NUMBER = "page-number"
    NONE = "none"


class IncrementalType(str, Enum):
    QUERY_FILTER = "query-filter"
    SYNC_TOKEN = "sync-token"
    SORT_FILTER = "sort-filter"


class RequestTemplate(_ConfigModel):
    method: str = "GET"
    path: str = ""
    query_params: Dict[str, Any] = Field(default_factory=dict)
    body: Optional[Dict[str, Any]] = None
    headers: Dict[str, str] = Field(default_factory=dict)


class PaginationConfig(_ConfigModel):
    type: PaginationType = PaginationType.NONE
    request_param: Optional[str] = None  # where the cursor/offset/page goes
    response_field: Optional[str] = None  # where the next cursor is found
    items_field: Optional[str] = None  # where the item array lives
    page_size: Optional[int] = None

    @property
    def effective_page_size(self) -> int:
        return self.page_size or DEFAULT_PAGE_SIZE


class DetailConfig(_ConfigModel):
    action_id: str
    path: str
    path_var: str
    id_field: str
    query_params: Optional[Dict[str, Any]] = None


class RecordConfig(_ConfigModel):
    type: str
    mapping: Dict[str, str] = Field(default_factory=dict)
    tags: Optional[List[str]] = None
    natural_keys: Optional[List[str]] = None  # e.g. "person:{email}"


class ExternalRefConfig(_ConfigModel):
    system: str
    id_field: str
    url_template: Optional[str] = None


class IncrementalConfig(_ConfigModel):
    type: IncrementalType
    param: Optional[str] = None
    template: Optional[str] = None  # {lastSyncDate}, {lastSyncAt}, {syncToken}
    token_field: Optional[str] = None


class SyncMapping(_ConfigModel):
    """One integration: where to pull from and how to shape each record."""

    name: str
    platform: str = ""
    connection_key: str = ""
    action_id: str = ""
    request: RequestTemplate = Field(default_factory=RequestTemplate)
    pagination: PaginationConfig = Field(default_factory=PaginationConfig)
    detail: Optional[DetailConfig] = None
    record: RecordConfig
    external_ref: ExternalRefConfig
    incremental: Optional[IncrementalConfig] = None
