"""
Checkpoint derivation.

Turns a successful report into the next checkpoint. Callers must only
commit a report whose every surface scan completed; a failed run leaves
the previous checkpoint in place so the next run retries the same window.
"""

from datetime import datetime, timezone

from .checkpoint import Checkpoint
from .report import Report
from .timestamps import format_timestamp, parse_timestamp

DEFAULT_RETENTION_CAP = 2000


def commit(report: Report, previous: Checkpoint, retention_cap: int = DEFAULT_RETENTION_CAP) -> Checkpoint:
    """
    Derive the next checkpoint from a report.

    Every reported item, in all four groups, is recorded as seen at its
    last edit time (or the run time if it has none). Each surface's seen
    ids are then capped at `retention_cap`, keeping the newest.

    Args:
        report: The completed report.
        previous: Checkpoint the run started from. Not modified.
        retention_cap: Maximum seen ids kept per surface.

    Returns:
        The new Checkpoint.
    """
    ran_at = format_timestamp(report.ran_at)
    seen_ids = {key: dict(ids) for key, ids in previous.seen_ids.items()}

    for surface in report.surfaces:
        current = seen_ids.setdefault(surface.key, {})
        for classified in surface.items():
            edited = classified.item.last_edited_at
            current[classified.id] = format_timestamp(edited) if edited else ran_at
        seen_ids[surface.key] = cap_seen_ids(current, retention_cap)

    return Checkpoint(
        last_run_timestamp=report.ran_at,
        seen_ids=seen_ids,
        extra=dict(previous.extra),
    )


def cap_seen_ids(seen: dict[str, str], retention_cap: int) -> dict[str, str]:
    """
    Keep the `retention_cap` most recently timestamped ids.

    Ordered newest first; equal timestamps are ordered by id, descending,
    so the same input always keeps the same ids.
    """
    ranked = sorted(seen.items(), key=lambda kv: (_sort_key(kv[1]), kv[0]), reverse=True)
    return dict(ranked[:retention_cap])


def _sort_key(value: str) -> datetime:
    try:
        parsed = parse_timestamp(value)
    except (TypeError, ValueError):
        parsed = None
    # Unparsable timestamps are treated as the oldest
    return parsed or datetime.min.replace(tzinfo=timezone.utc)
