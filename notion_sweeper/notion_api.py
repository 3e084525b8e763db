"""
Notion API wrapper for the sweeper.

Provides a clean interface to Notion's API with:
- Rate limiting compliance
- Data source resolution for database ids
- Typed page and comment records
- Error mapping to GatewayError
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

import httpx
from notion_client import Client
from notion_client.errors import APIResponseError, HTTPResponseError, RequestTimeoutError
from ratelimit import limits, sleep_and_retry

from .config import Config
from .errors import GatewayError
from .timestamps import format_timestamp, parse_timestamp

# Notion API rate limit: 3 requests per second
RATE_LIMIT_CALLS = 3
RATE_LIMIT_PERIOD = 1  # second

COMMENT_EXCERPT_LENGTH = 500


def plain_text(rich_text: Any) -> str:
    """Concatenate the plain_text of a rich text array."""
    if not isinstance(rich_text, list):
        return ""
    return "".join((rt or {}).get("plain_text") or "" for rt in rich_text)


def _timestamp(payload: dict, key: str, kind: str) -> Optional[datetime]:
    try:
        return parse_timestamp(payload.get(key))
    except (TypeError, ValueError):
        raise GatewayError(
            f"Malformed {kind} payload: bad {key} {payload.get(key)!r}", data=payload
        ) from None


@dataclass(frozen=True)
class NotionComment:
    """A comment on a page, trimmed to what the report needs."""

    id: str
    created_at: Optional[datetime]
    author_label: str
    text: str

    @classmethod
    def from_api_response(cls, comment: dict) -> "NotionComment":
        """Create NotionComment from API response."""
        if not isinstance(comment, dict) or not comment.get("id"):
            raise GatewayError("Malformed comment payload: missing id", data=comment)

        created_by = comment.get("created_by") or {}
        author = created_by.get("name") or created_by.get("id") or "Unknown"

        rich_text = comment.get("rich_text")
        if rich_text is None:
            rich_text = (comment.get("comment") or {}).get("rich_text")

        return cls(
            id=comment["id"],
            created_at=_timestamp(comment, "created_time", "comment"),
            author_label=author,
            text=plain_text(rich_text)[:COMMENT_EXCERPT_LENGTH],
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "createdTime": format_timestamp(self.created_at) if self.created_at else None,
            "createdBy": self.author_label,
            "text": self.text,
        }


@dataclass(frozen=True)
class NotionItem:
    """A database page with metadata and the comments seen since the watermark."""

    id: str
    title: str
    url: str
    created_at: Optional[datetime]
    last_edited_at: Optional[datetime]
    comments: tuple[NotionComment, ...] = ()

    @classmethod
    def from_api_response(cls, page: dict) -> "NotionItem":
        """Create NotionItem from a database query result."""
        if not isinstance(page, dict) or not page.get("id"):
            raise GatewayError("Malformed page payload: missing id", data=page)

        # The title property can have any name; find it by type
        title = ""
        for prop in (page.get("properties") or {}).values():
            if isinstance(prop, dict) and prop.get("type") == "title":
                title = plain_text(prop.get("title"))
                if title:
                    break

        return cls(
            id=page["id"],
            title=title or page["id"],
            url=page.get("url") or "",
            created_at=_timestamp(page, "created_time", "page"),
            last_edited_at=_timestamp(page, "last_edited_time", "page"),
        )


@dataclass
class QueryPage:
    """One page of database query results."""

    items: list[NotionItem]
    has_more: bool
    next_cursor: Optional[str] = None
    data_source_id: Optional[str] = None
    database_title: Optional[str] = None


@dataclass
class CommentPage:
    """One page of comment listing results."""

    comments: list[NotionComment] = field(default_factory=list)
    has_more: bool = False
    next_cursor: Optional[str] = None


@dataclass
class DataSource:
    id: str
    database_title: Optional[str]


class NotionAPI:
    """
    Wrapper around Notion API with rate limiting and utilities.

    Handles:
    - Authentication and API versioning
    - Rate limiting (3 req/sec)
    - Per-call timeouts
    - Mapping client errors and malformed payloads to GatewayError
    """

    def __init__(self, config: Config, client: Optional[Client] = None):
        """
        Initialize the Notion API client.

        Args:
            config: Configuration instance with Notion token.
            client: Optional preconfigured client, mainly for tests.
        """
        self.config = config
        self.client = client or Client(
            auth=config.notion_token,
            notion_version=config.notion_version,
            timeout_ms=config.timeout_ms,
        )
        self._data_sources: dict[str, DataSource] = {}
        self._request_count = 0
        self._lock = threading.Lock()

    @sleep_and_retry
    @limits(calls=RATE_LIMIT_CALLS, period=RATE_LIMIT_PERIOD)
    def _rate_limited_call(self, func, *args, **kwargs) -> Any:
        """Execute a rate-limited API call."""
        with self._lock:
            self._request_count += 1
        try:
            response = func(*args, **kwargs)
        except RequestTimeoutError as e:
            raise GatewayError(f"Notion API request timed out: {e}") from e
        except APIResponseError as e:
            raise GatewayError(
                f"Notion API {e.status}: {e}",
                status=e.status,
                data={"code": str(getattr(e, "code", "")), "message": str(e)},
            ) from e
        except HTTPResponseError as e:
            raise GatewayError(
                f"Notion API {e.status}: {e}", status=e.status, data=getattr(e, "body", None)
            ) from e
        except httpx.TransportError as e:
            raise GatewayError(f"Notion API unreachable: {e}") from e

        if not isinstance(response, dict):
            raise GatewayError("Malformed response: expected a JSON object", data=response)
        return response

    def data_source(self, database_id: str) -> DataSource:
        """
        Resolve a database id to its first data source.

        Results are cached for the lifetime of this wrapper.
        """
        formatted_id = format_notion_id(database_id)
        cached = self._data_sources.get(formatted_id)
        if cached:
            return cached

        database = self._rate_limited_call(
            self.client.databases.retrieve,
            database_id=formatted_id,
        )

        # 2025-09-03 returns `data_sources: [{id, name}]` instead of `data_source_id`
        data_source_id = database.get("data_source_id")
        if not data_source_id:
            sources = database.get("data_sources") or []
            if sources and isinstance(sources[0], dict):
                data_source_id = sources[0].get("id")
        if not data_source_id:
            raise GatewayError(
                f"Database {database_id} has no data source (integration or API version mismatch?)",
                data=database,
            )

        title = plain_text(database.get("title")) or None
        resolved = DataSource(id=data_source_id, database_title=title)
        self._data_sources[formatted_id] = resolved
        return resolved

    def query_collection(
        self,
        collection_id: str,
        page_size: int,
        cursor: Optional[str] = None,
        edited_since: Optional[datetime] = None,
        descending: bool = True,
    ) -> QueryPage:
        """
        Query one page of a database, sorted by last edit time.

        Args:
            collection_id: The Notion database id.
            page_size: Results per page (max 100).
            cursor: Cursor from the previous page, if any.
            edited_since: Only return pages edited on or after this time.
            descending: Sort newest edits first.

        Returns:
            QueryPage with parsed items and pagination state.
        """
        source = self.data_source(collection_id)

        body: dict[str, Any] = {
            "page_size": page_size,
            "sorts": [
                {
                    "timestamp": "last_edited_time",
                    "direction": "descending" if descending else "ascending",
                }
            ],
        }
        if cursor:
            body["start_cursor"] = cursor
        if edited_since is not None:
            body["filter"] = {
                "timestamp": "last_edited_time",
                "last_edited_time": {"on_or_after": format_timestamp(edited_since)},
            }

        response = self._rate_limited_call(
            self.client.request,
            path=f"data_sources/{source.id}/query",
            method="POST",
            body=body,
        )
        results = _results(response)

        return QueryPage(
            items=[NotionItem.from_api_response(page) for page in results],
            has_more=bool(response.get("has_more", False)),
            next_cursor=response.get("next_cursor"),
            data_source_id=source.id,
            database_title=source.database_title,
        )

    def list_comments(
        self,
        item_id: str,
        page_size: int = 100,
        cursor: Optional[str] = None,
    ) -> CommentPage:
        """List one page of comments on a page, regardless of age."""
        kwargs: dict[str, Any] = {"block_id": item_id, "page_size": page_size}
        if cursor:
            kwargs["start_cursor"] = cursor

        response = self._rate_limited_call(self.client.comments.list, **kwargs)

        return CommentPage(
            comments=[NotionComment.from_api_response(c) for c in _results(response)],
            has_more=bool(response.get("has_more", False)),
            next_cursor=response.get("next_cursor"),
        )

    def list_block_children(self, block_id: str) -> list[dict]:
        """Get all direct child blocks of a page, following pagination."""
        blocks = []
        has_more = True
        start_cursor = None

        formatted_id = format_notion_id(block_id)

        while has_more:
            kwargs: dict[str, Any] = {"block_id": formatted_id, "page_size": 100}
            if start_cursor:
                kwargs["start_cursor"] = start_cursor

            response = self._rate_limited_call(self.client.blocks.children.list, **kwargs)
            blocks.extend(_results(response))

            start_cursor = response.get("next_cursor")
            has_more = bool(response.get("has_more", False)) and bool(start_cursor)

        return blocks

    @property
    def request_count(self) -> int:
        """Number of API requests made."""
        return self._request_count


def _results(response: dict) -> list:
    results = response.get("results", [])
    if not isinstance(results, list):
        raise GatewayError("Malformed response: results is not a list", data=response)
    return results


def format_notion_id(notion_id: str) -> str:
    """
    Format an id for API calls.

    Notion accepts dashed UUIDs everywhere; bare 32-character ids
    are converted to the dashed form.
    """
    clean_id = notion_id.replace("-", "")

    if len(clean_id) == 32:
        return f"{clean_id[:8]}-{clean_id[8:12]}-{clean_id[12:16]}-{clean_id[16:20]}-{clean_id[20:]}"

    return notion_id
