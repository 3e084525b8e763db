"""Tests for checkpoint derivation."""

from notion_sweeper.checkpoint import Checkpoint
from notion_sweeper.committer import cap_seen_ids, commit
from notion_sweeper.notion_api import NotionItem
from notion_sweeper.report import build_report
from notion_sweeper.scanner import SurfaceScan
from notion_sweeper.timestamps import format_timestamp

from conftest import make_item, ts


class TestCommit:
    def test_records_every_item_and_advances_watermark(self, surfaces):
        tasks = surfaces[0]
        scan = SurfaceScan(surface=tasks, items=[make_item("a", 0, 0), make_item("b", 0, 5), make_item("c", 1, 1)])
        report = build_report([scan], Checkpoint(), now=ts(60))

        checkpoint = commit(report, Checkpoint())

        assert checkpoint.last_run_timestamp == ts(60)
        assert checkpoint.seen_ids["Tasks"] == {
            "a": "2026-01-01T00:00:00.000Z",
            "b": "2026-01-01T00:05:00.000Z",
            "c": "2026-01-01T00:01:00.000Z",
        }

    def test_missing_edit_time_falls_back_to_run_time(self, surfaces):
        item = NotionItem(id="x", title="x", url="", created_at=ts(0), last_edited_at=None)
        report = build_report([SurfaceScan(surface=surfaces[0], items=[item])], Checkpoint(), now=ts(60))

        checkpoint = commit(report, Checkpoint())

        assert checkpoint.seen_ids["Tasks"]["x"] == format_timestamp(ts(60))

    def test_previous_checkpoint_is_not_mutated(self, surfaces):
        previous = Checkpoint(
            last_run_timestamp=ts(0),
            seen_ids={"Tasks": {"old": "2026-01-01T00:00:00.000Z"}, "Archive": {"z": "2025-01-01T00:00:00.000Z"}},
            extra={"referencePageId": "ref-1"},
        )
        report = build_report([SurfaceScan(surface=surfaces[0], items=[make_item("a", 10, 10)])], previous, now=ts(60))

        checkpoint = commit(report, previous)

        assert previous.seen_ids["Tasks"] == {"old": "2026-01-01T00:00:00.000Z"}
        assert set(checkpoint.seen_ids["Tasks"]) == {"old", "a"}
        assert checkpoint.seen_ids["Archive"] == {"z": "2025-01-01T00:00:00.000Z"}
        assert checkpoint.extra == {"referencePageId": "ref-1"}

    def test_retention_cap_keeps_most_recent(self, surfaces):
        previous_seen = {f"old-{i:04d}": format_timestamp(ts(i)) for i in range(2000)}
        items = [make_item(f"new-{i:04d}", 3000 + i, 3000 + i) for i in range(500)]
        previous = Checkpoint(last_run_timestamp=ts(2999), seen_ids={"Tasks": previous_seen})
        report = build_report([SurfaceScan(surface=surfaces[0], items=items)], previous, now=ts(4000))

        checkpoint = commit(report, previous, retention_cap=2000)

        kept = checkpoint.seen_ids["Tasks"]
        assert len(kept) == 2000
        assert all(f"new-{i:04d}" in kept for i in range(500))
        # the 500 oldest previous ids are dropped
        assert "old-0499" not in kept
        assert "old-0500" in kept


class TestCapSeenIds:
    def test_ties_keep_higher_ids(self):
        same = "2026-01-01T00:00:00.000Z"
        seen = {"a": same, "b": same, "c": same, "d": "2026-01-02T00:00:00.000Z"}

        assert list(cap_seen_ids(seen, 2)) == ["d", "c"]

    def test_mixed_timestamp_formats_sort_chronologically(self):
        seen = {"a": "2026-01-01T10:00:00+00:00", "b": "2026-01-01T09:00:00.000Z", "c": "2026-01-01T11:00:00.000Z"}

        assert list(cap_seen_ids(seen, 2)) == ["c", "a"]

    def test_unparsable_timestamps_are_dropped_first(self):
        seen = {"a": "not a date", "b": "2026-01-01T00:00:00.000Z"}

        assert list(cap_seen_ids(seen, 1)) == ["b"]
