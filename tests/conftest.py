"""Shared fixtures: an in-memory Notion gateway and item builders."""

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from notion_sweeper.config import Config, Surface
from notion_sweeper.errors import GatewayError
from notion_sweeper.notion_api import CommentPage, NotionComment, NotionItem, QueryPage

BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


def ts(minutes: float) -> datetime:
    """A timestamp `minutes` after BASE_TIME."""
    return BASE_TIME + timedelta(minutes=minutes)


def make_item(item_id: str, created: float = 0, edited: Optional[float] = None, title: str = "") -> NotionItem:
    edited = created if edited is None else edited
    return NotionItem(
        id=item_id,
        title=title or f"Item {item_id}",
        url=f"https://www.notion.so/{item_id}",
        created_at=ts(created),
        last_edited_at=ts(edited),
    )


def make_comment(comment_id: str, created: float, author: str = "Adam", text: str = "looks good") -> NotionComment:
    return NotionComment(id=comment_id, created_at=ts(created), author_label=author, text=text)


class FakeGateway:
    """
    In-memory stand-in for NotionAPI.

    Items are kept per collection id. Queries honor edited_since, sort by
    last edit time and paginate with integer offset cursors.
    """

    def __init__(self):
        self.collections: dict[str, list[NotionItem]] = {}
        self.comments: dict[str, list[NotionComment]] = {}
        self.fail_collections: set[str] = set()
        self.fail_comments: set[str] = set()
        self.query_calls: list[dict] = []
        self.comment_calls: list[str] = []

    def add_items(self, collection_id: str, *items: NotionItem) -> None:
        self.collections.setdefault(collection_id, []).extend(items)

    def add_comments(self, item_id: str, *comments: NotionComment) -> None:
        self.comments.setdefault(item_id, []).extend(comments)

    def query_collection(self, collection_id, page_size, cursor=None, edited_since=None, descending=True):
        self.query_calls.append(
            {"collection_id": collection_id, "cursor": cursor, "edited_since": edited_since}
        )
        if collection_id in self.fail_collections:
            raise GatewayError(f"Notion API 502: {collection_id} unavailable", status=502, data={"id": collection_id})

        items = [
            item for item in self.collections.get(collection_id, [])
            if edited_since is None or item.last_edited_at >= edited_since
        ]
        items.sort(key=lambda i: (i.last_edited_at, i.id), reverse=descending)

        start = int(cursor or 0)
        end = start + page_size
        has_more = end < len(items)
        return QueryPage(
            items=items[start:end],
            has_more=has_more,
            next_cursor=str(end) if has_more else None,
            data_source_id=f"ds-{collection_id}",
            database_title=f"{collection_id} title",
        )

    def list_comments(self, item_id, page_size=100, cursor=None):
        self.comment_calls.append(item_id)
        if item_id in self.fail_comments:
            raise GatewayError(f"Notion API 500: comments for {item_id}", status=500)

        comments = self.comments.get(item_id, [])
        start = int(cursor or 0)
        end = start + page_size
        has_more = end < len(comments)
        return CommentPage(
            comments=comments[start:end],
            has_more=has_more,
            next_cursor=str(end) if has_more else None,
        )


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def surfaces():
    return [
        Surface(key="Tasks", name="Tasks DB", collection_id="db-tasks"),
        Surface(key="EventsQueue", name="Events Queue DB", collection_id="db-events"),
        Surface(key="ImportsQueue", name="Imports Queue DB", collection_id="db-imports"),
    ]


@pytest.fixture
def config(tmp_path, surfaces):
    return Config(
        notion_token="secret_test",
        surfaces=surfaces,
        state_file=tmp_path / "state" / "state.json",
    )
