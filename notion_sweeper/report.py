"""
Sweep report.

Aggregates classified items per surface into four groups with totals.
The report keeps every item, UNCHANGED included, so it can be checked
independently of the checkpoint. Ordering depends only on surface keys
and item ids, never on the order scans finished in.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from rich.console import Console
from rich.table import Table

from .checkpoint import Checkpoint
from .classifier import ChangeGroup, classify_item
from .notion_api import NotionItem
from .scanner import SurfaceScan
from .timestamps import format_timestamp, utcnow


def _iso(value: Optional[datetime]) -> Optional[str]:
    return format_timestamp(value) if value else None


@dataclass(frozen=True)
class ClassifiedItem:
    """An item tagged with its report group."""

    item: NotionItem
    group: ChangeGroup

    @property
    def id(self) -> str:
        return self.item.id

    def to_dict(self) -> dict:
        return {
            "id": self.item.id,
            "title": self.item.title,
            "url": self.item.url,
            "createdTime": _iso(self.item.created_at),
            "lastEditedTime": _iso(self.item.last_edited_at),
            "group": self.group.value,
            "commentsSinceLastRun": [c.to_dict() for c in self.item.comments],
        }


@dataclass(frozen=True)
class SurfaceReport:
    """Grouped results for one surface."""

    key: str
    name: str
    collection_id: str
    groups: Mapping[ChangeGroup, tuple[ClassifiedItem, ...]]
    query_requests: int = 0
    truncated: bool = False
    data_source_id: Optional[str] = None
    database_title: Optional[str] = None

    @property
    def queried_pages(self) -> int:
        """Number of Notion pages returned by the query."""
        return sum(len(items) for items in self.groups.values())

    def count(self, group: ChangeGroup) -> int:
        return len(self.groups.get(group, ()))

    def items(self) -> Iterable[ClassifiedItem]:
        for group in ChangeGroup:
            yield from self.groups.get(group, ())

    def to_dict(self) -> dict:
        totals = {"queriedPages": self.queried_pages, "queryRequests": self.query_requests}
        totals.update({group.value: self.count(group) for group in ChangeGroup})
        return {
            "surfaceName": self.name,
            "databaseId": self.collection_id,
            "dataSourceId": self.data_source_id,
            "databaseTitle": self.database_title,
            "truncated": self.truncated,
            "totals": totals,
            "groups": {
                group.value: [item.to_dict() for item in self.groups.get(group, ())]
                for group in ChangeGroup
            },
        }


@dataclass(frozen=True)
class Report:
    """Output of one sweep."""

    ran_at: datetime
    previous_watermark: Optional[datetime]
    surfaces: tuple[SurfaceReport, ...]

    def total(self, group: ChangeGroup) -> int:
        return sum(surface.count(group) for surface in self.surfaces)

    @property
    def has_changes(self) -> bool:
        return any(
            self.total(group) for group in ChangeGroup if group is not ChangeGroup.UNCHANGED
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "ranAt": format_timestamp(self.ran_at),
            "previousWatermark": _iso(self.previous_watermark),
            "bySurface": {surface.key: surface.to_dict() for surface in self.surfaces},
        }


def build_report(
    scans: Iterable[SurfaceScan],
    previous: Checkpoint,
    now: Optional[datetime] = None,
) -> Report:
    """
    Classify scanned items and group them per surface.

    Args:
        scans: Completed surface scans, in any order.
        previous: Checkpoint the run started from.
        now: Run timestamp; defaults to the current time. Becomes the
            next watermark when the report is committed.

    Returns:
        The immutable Report.
    """
    ran_at = now or utcnow()
    # Checkpoints store millisecond precision
    ran_at = ran_at.replace(microsecond=ran_at.microsecond // 1000 * 1000)

    surfaces = []
    for scan in sorted(scans, key=lambda s: s.surface.key):
        seen_ids = previous.seen_for(scan.surface.key)
        buckets: dict[ChangeGroup, list[ClassifiedItem]] = {group: [] for group in ChangeGroup}

        for item in scan.items:
            group = classify_item(item, seen_ids)
            buckets[group].append(ClassifiedItem(item=item, group=group))

        surfaces.append(
            SurfaceReport(
                key=scan.surface.key,
                name=scan.surface.name,
                collection_id=scan.surface.collection_id,
                groups={
                    group: tuple(sorted(items, key=lambda c: c.id))
                    for group, items in buckets.items()
                },
                query_requests=scan.query_requests,
                truncated=scan.truncated,
                data_source_id=scan.data_source_id,
                database_title=scan.database_title,
            )
        )

    return Report(
        ran_at=ran_at,
        previous_watermark=previous.last_run_timestamp,
        surfaces=tuple(surfaces),
    )


def render_summary(report: Report, console: Console) -> None:
    """Print sweep summary."""
    console.print("\n" + "=" * 50)
    console.print("[bold]Sweep Summary[/bold]")
    console.print("=" * 50)

    table = Table(box=None)
    table.add_column("Surface", style="cyan")
    table.add_column("Queried", justify="right")
    table.add_column("New", style="green", justify="right")
    table.add_column("Updated", style="yellow", justify="right")
    table.add_column("Commented", style="magenta", justify="right")
    table.add_column("Unchanged", style="dim", justify="right")

    for surface in report.surfaces:
        name = surface.name + (" [red](truncated)[/red]" if surface.truncated else "")
        table.add_row(
            name,
            str(surface.queried_pages),
            str(surface.count(ChangeGroup.NEW)),
            str(surface.count(ChangeGroup.UPDATED)),
            str(surface.count(ChangeGroup.COMMENTED)),
            str(surface.count(ChangeGroup.UNCHANGED)),
        )

    if len(report.surfaces) > 1:
        table.add_row(
            "[bold]Total[/bold]",
            str(sum(surface.queried_pages for surface in report.surfaces)),
            *(str(report.total(group)) for group in ChangeGroup),
        )

    console.print(table)

    since = _iso(report.previous_watermark) or "(first run)"
    console.print(f"\n[dim]Changes since {since}[/dim]")
    if not report.has_changes:
        console.print("[dim]No new, updated or commented items[/dim]")
    console.print("")
