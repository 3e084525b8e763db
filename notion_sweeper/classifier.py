"""
Change classification for scanned items.

Rules are checked in order, first match wins:

1. comments since the watermark  -> COMMENTED
2. id already in the seen set    -> UNCHANGED
3. never edited since creation   -> NEW
4. anything else                 -> UPDATED

Comments outrank everything else, so an item that is both new and
commented is reported as COMMENTED.
"""

from collections.abc import Mapping, Sequence
from datetime import datetime
from enum import Enum
from typing import Optional

from .notion_api import NotionComment, NotionItem


class ChangeGroup(Enum):
    """Report bucket for an item."""
    NEW = "new"
    UPDATED = "updated"
    COMMENTED = "commented"
    UNCHANGED = "unchanged"


def classify(
    created_at: Optional[datetime],
    last_edited_at: Optional[datetime],
    comments_since: Sequence[NotionComment],
    was_previously_seen: bool,
) -> ChangeGroup:
    if comments_since:
        return ChangeGroup.COMMENTED
    if was_previously_seen:
        return ChangeGroup.UNCHANGED
    if created_at is not None and last_edited_at is not None and created_at == last_edited_at:
        return ChangeGroup.NEW
    return ChangeGroup.UPDATED


def classify_item(item: NotionItem, seen_ids: Mapping[str, str]) -> ChangeGroup:
    """Classify an item against one surface's seen ids."""
    return classify(
        item.created_at,
        item.last_edited_at,
        item.comments,
        item.id in seen_ids,
    )
