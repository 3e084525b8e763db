"""
Configuration management for the Notion sweeper.

Loads settings from environment variables and provides
structured configuration for all sweep components.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from dotenv import find_dotenv, load_dotenv

from .errors import ConfigError


@dataclass(frozen=True)
class Surface:
    """A Notion database scanned on every run."""

    key: str
    name: str
    collection_id: str

    @property
    def label(self) -> str:
        """Text label used when resolving ids from a bootstrap page."""
        return re.sub(r"(?<!^)(?=[A-Z])", " ", self.key).split()[0].lower()


# Surfaces scanned by default: (key, display name, env var holding the database id)
DEFAULT_SURFACES = [
    ("Tasks", "Tasks DB", "NOTION_TASKS_DB_ID"),
    ("EventsQueue", "Events Queue DB", "NOTION_EVENTS_QUEUE_DB_ID"),
    ("ImportsQueue", "Imports Queue DB", "NOTION_IMPORTS_QUEUE_DB_ID"),
]

DEFAULT_STATE_FILE = Path(".notion-sweeper") / "state.json"


@dataclass
class Config:
    """
    Central configuration for the sweeper.

    Loads from environment variables and provides defaults.
    The Notion token is only ever read from the environment.
    """

    # Notion settings
    notion_token: str
    surfaces: list[Surface] = field(default_factory=list)
    bootstrap_page_id: Optional[str] = None
    notion_version: str = "2025-09-03"
    timeout_ms: int = 60_000

    # Checkpoint
    state_file: Path = DEFAULT_STATE_FILE
    retention_cap: int = 2000

    # Scan behavior
    page_size: int = 50
    max_pages: int = 200
    lookback_hours: Optional[float] = None
    max_workers: int = 1

    debug: bool = False
    dry_run: bool = False

    # Surfaces declared without an id; filled in from the bootstrap page
    unresolved: list[tuple[str, str]] = field(default_factory=list)

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "Config":
        """
        Load configuration from environment variables.

        Args:
            env_file: Optional path to .env file. If not provided,
                     looks for .env in current directory.

        Returns:
            Configured Config instance.

        Raises:
            ConfigError: If required environment variables are missing
                or a numeric setting cannot be parsed.
        """
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv(find_dotenv(usecwd=True))

        notion_token = os.getenv("NOTION_TOKEN") or os.getenv("NOTION_API_KEY")
        if not notion_token:
            raise ConfigError(
                "NOTION_TOKEN environment variable is required.\n"
                "Create a Notion integration at https://www.notion.so/my-integrations"
            )

        bootstrap_page_id = os.getenv("NOTION_BOOTSTRAP_PAGE_ID") or None

        surfaces = []
        unresolved = []
        for key, name, env_var in DEFAULT_SURFACES:
            collection_id = normalize_id(os.getenv(env_var))
            if collection_id:
                surfaces.append(Surface(key=key, name=name, collection_id=collection_id))
            else:
                unresolved.append((key, name))

        if unresolved and not bootstrap_page_id:
            missing = ", ".join(key for key, _ in unresolved)
            env_vars = ", ".join(env_var for _, _, env_var in DEFAULT_SURFACES)
            raise ConfigError(
                f"Missing database ids for: {missing}.\n"
                f"Set {env_vars}, or NOTION_BOOTSTRAP_PAGE_ID to resolve them from a page."
            )

        state_file_str = os.getenv("SWEEPER_STATE_FILE")
        state_file = Path(state_file_str) if state_file_str else DEFAULT_STATE_FILE

        lookback = os.getenv("SWEEPER_LOOKBACK_HOURS")

        return cls(
            notion_token=notion_token,
            surfaces=surfaces,
            bootstrap_page_id=bootstrap_page_id,
            timeout_ms=_int_env("SWEEPER_TIMEOUT_MS", 60_000),
            state_file=state_file,
            retention_cap=_int_env("SWEEPER_RETENTION_CAP", 2000),
            page_size=_int_env("SWEEPER_PAGE_SIZE", 50),
            max_pages=_int_env("SWEEPER_MAX_PAGES", 200),
            lookback_hours=_float(lookback, "SWEEPER_LOOKBACK_HOURS") if lookback else None,
            max_workers=_int_env("SWEEPER_MAX_WORKERS", 1),
            debug=os.getenv("DEBUG", "false").lower() == "true",
            dry_run=os.getenv("DRY_RUN", "false").lower() == "true",
            unresolved=unresolved,
        )

    def __post_init__(self):
        """Validate configuration after initialization."""
        if isinstance(self.state_file, str):
            self.state_file = Path(self.state_file)

        # Notion page sizes are capped at 100
        if not 1 <= self.page_size <= 100:
            raise ConfigError(f"page_size must be between 1 and 100, got {self.page_size}")
        if self.max_pages < 1:
            raise ConfigError(f"max_pages must be positive, got {self.max_pages}")
        if self.retention_cap < 1:
            raise ConfigError(f"retention_cap must be positive, got {self.retention_cap}")
        if self.max_workers < 1:
            raise ConfigError(f"max_workers must be positive, got {self.max_workers}")

        keys = [s.key for s in self.surfaces]
        if len(keys) != len(set(keys)):
            raise ConfigError(f"Duplicate surface keys: {keys}")


def normalize_id(value: Optional[str]) -> Optional[str]:
    """
    Reduce a Notion URL or id to the bare id.

    Examples:
        "https://www.notion.so/ws/Tasks-1a2b...?v=9" -> "1a2b..."
        "1a2b-3c4d-..." -> "1a2b-3c4d-..."
    """
    if not value:
        return None
    value = value.strip()

    parsed = urlparse(value)
    if parsed.scheme and parsed.netloc:
        segments = [s for s in parsed.path.split("/") if s]
        if not segments:
            return None
        value = segments[-1]

    # Page URLs end in "<Title>-<32 hex>"
    match = re.search(r"([0-9a-fA-F]{32}|[0-9a-fA-F]{8}(?:-[0-9a-fA-F]{4}){3}-[0-9a-fA-F]{12})$", value)
    return match.group(1) if match else value


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None


def _float(value: str, name: str) -> float:
    try:
        return float(value)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {value!r}") from None
