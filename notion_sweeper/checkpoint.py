"""
Checkpoint persistence.

The checkpoint is a single JSON document:

    {
      "lastRunTimestamp": "2026-01-01T00:00:00.000Z" | null,
      "seenIds": {"<surface>": {"<item id>": "<iso timestamp>"}},
      ...any other fields, preserved as-is
    }

It is read once at start and written once, atomically, after a fully
successful run.
"""

import contextlib
import json
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from .errors import CheckpointIOError, ConfigError
from .timestamps import format_timestamp, parse_timestamp


@dataclass
class Checkpoint:
    """Watermark plus per-surface seen ids."""

    last_run_timestamp: Optional[datetime] = None
    seen_ids: dict[str, dict[str, str]] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_first_run(self) -> bool:
        return self.last_run_timestamp is None

    def seen_for(self, surface_key: str) -> dict[str, str]:
        """Seen ids for one surface (empty if never scanned)."""
        return self.seen_ids.get(surface_key, {})

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = dict(self.extra)
        data["lastRunTimestamp"] = (
            format_timestamp(self.last_run_timestamp) if self.last_run_timestamp else None
        )
        data["seenIds"] = {key: dict(ids) for key, ids in self.seen_ids.items()}
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "Checkpoint":
        """
        Create from dictionary.

        Raises:
            ConfigError: If the structure or timestamps are invalid.
        """
        if not isinstance(data, dict):
            raise ConfigError("Checkpoint must be a JSON object")

        try:
            last_run = parse_timestamp(data.get("lastRunTimestamp"))
        except (TypeError, ValueError):
            raise ConfigError(
                f"Checkpoint lastRunTimestamp is not ISO-8601: {data.get('lastRunTimestamp')!r}"
            ) from None

        raw_seen = data.get("seenIds") or {}
        if not isinstance(raw_seen, dict):
            raise ConfigError("Checkpoint seenIds must be an object")

        seen_ids = {}
        for surface_key, ids in raw_seen.items():
            if not isinstance(ids, dict):
                raise ConfigError(f"Checkpoint seenIds[{surface_key!r}] must be an object")
            seen_ids[surface_key] = {str(k): str(v) for k, v in ids.items()}

        extra = {k: v for k, v in data.items() if k not in ("lastRunTimestamp", "seenIds")}
        return cls(last_run_timestamp=last_run, seen_ids=seen_ids, extra=extra)


class CheckpointStore:
    """JSON file checkpoint store with atomic replace on save."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Checkpoint:
        """
        Load the checkpoint.

        Returns:
            The stored checkpoint, or an empty one if the file is absent.

        Raises:
            ConfigError: If the file exists but cannot be read or parsed.
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return Checkpoint()
        except OSError as e:
            raise ConfigError(f"Could not read checkpoint {self.path}: {e}") from e

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Checkpoint {self.path} is not valid JSON: {e}") from e

        return Checkpoint.from_dict(data)

    def save(self, checkpoint: Checkpoint) -> None:
        """
        Write the checkpoint via temp file + rename.

        Either the old or the new content is on disk at every point.

        Raises:
            CheckpointIOError: If the directory or file cannot be written.
        """
        text = json.dumps(checkpoint.to_dict(), indent=2) + "\n"
        tmp = self.path.with_name(f"{self.path.name}.tmp.{os.getpid()}")

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except OSError as e:
            with contextlib.suppress(OSError):
                tmp.unlink(missing_ok=True)
            raise CheckpointIOError(f"Could not write checkpoint {self.path}: {e}") from e


class MemoryCheckpointStore:
    """In-process store holding the serialized checkpoint, for embedding and tests."""

    def __init__(self, checkpoint: Optional[Checkpoint] = None):
        self.raw: Optional[str] = None
        if checkpoint is not None:
            self.save(checkpoint)

    def load(self) -> Checkpoint:
        if self.raw is None:
            return Checkpoint()
        return Checkpoint.from_dict(json.loads(self.raw))

    def save(self, checkpoint: Checkpoint) -> None:
        self.raw = json.dumps(checkpoint.to_dict(), indent=2) + "\n"
