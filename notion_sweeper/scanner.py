"""
Surface scanning.

Pages through one database's recently edited items and attaches the
comments each item received since the watermark. Any gateway failure
aborts the scan; a surface is either returned complete or not at all.
"""

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Protocol

from rich.console import Console

from .config import Surface
from .notion_api import CommentPage, NotionComment, NotionItem, QueryPage

console = Console(stderr=True)

COMMENT_PAGE_SIZE = 100


class Gateway(Protocol):
    """The subset of NotionAPI the scanner depends on."""

    def query_collection(
        self,
        collection_id: str,
        page_size: int,
        cursor: Optional[str] = None,
        edited_since: Optional[datetime] = None,
        descending: bool = True,
    ) -> QueryPage: ...

    def list_comments(
        self,
        item_id: str,
        page_size: int = COMMENT_PAGE_SIZE,
        cursor: Optional[str] = None,
    ) -> CommentPage: ...


@dataclass
class SurfaceScan:
    """Result of scanning one surface."""

    surface: Surface
    items: list[NotionItem] = field(default_factory=list)
    query_requests: int = 0
    truncated: bool = False
    data_source_id: Optional[str] = None
    database_title: Optional[str] = None


class SurfaceScanner:
    """
    Scans a surface for items edited since a watermark.

    Stops when Notion reports no further pages, or silently after
    `max_pages` query requests; `SurfaceScan.truncated` records the latter.
    """

    def __init__(self, gateway: Gateway, page_size: int = 50, max_pages: int = 200, debug: bool = False):
        self.gateway = gateway
        self.page_size = page_size
        self.max_pages = max_pages
        self.debug = debug

    def scan(self, surface: Surface, since: Optional[datetime]) -> SurfaceScan:
        """
        Scan one surface.

        Args:
            surface: The surface to scan.
            since: Watermark; None scans every item.

        Returns:
            SurfaceScan with items in gateway order, deduplicated by id,
            each carrying its comments since the watermark.
        """
        result = SurfaceScan(surface=surface)
        seen: set[str] = set()
        items: list[NotionItem] = []
        cursor = None

        while True:
            page = self.gateway.query_collection(
                surface.collection_id,
                page_size=self.page_size,
                cursor=cursor,
                edited_since=since,
                descending=True,
            )
            result.query_requests += 1
            result.data_source_id = page.data_source_id or result.data_source_id
            result.database_title = page.database_title or result.database_title

            for item in page.items:
                if item.id in seen:
                    continue
                seen.add(item.id)
                items.append(item)

            if not page.has_more or not page.next_cursor:
                break
            if result.query_requests >= self.max_pages:
                result.truncated = True
                console.print(
                    f"[yellow]Warning: {surface.name} stopped after {self.max_pages} pages; "
                    f"results may be incomplete[/yellow]"
                )
                break
            cursor = page.next_cursor

        if self.debug:
            console.print(
                f"[dim]{surface.name}: {len(items)} items in {result.query_requests} page(s)[/dim]"
            )

        result.items = [
            dataclasses.replace(item, comments=tuple(self.comments_since(item.id, since)))
            for item in items
        ]
        return result

    def comments_since(self, item_id: str, since: Optional[datetime]) -> list[NotionComment]:
        """
        Get all comments on an item created at or after `since`.

        Notion returns comments regardless of age, so filtering is done
        here. Comments without a timestamp are kept.
        """
        comments = []
        cursor = None

        while True:
            page = self.gateway.list_comments(item_id, page_size=COMMENT_PAGE_SIZE, cursor=cursor)
            for comment in page.comments:
                if since is None or comment.created_at is None or comment.created_at >= since:
                    comments.append(comment)

            if not page.has_more or not page.next_cursor:
                break
            cursor = page.next_cursor

        return comments
