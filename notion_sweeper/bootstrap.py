"""
Surface id discovery from a bootstrap page.

A bootstrap page lists the databases to sweep as lines like:

    Tasks: 1a2b3c4d5e6f...
    Events = https://www.notion.so/workspace/1a2b3c4d...

Labels not found in the page text are looked up among the child
databases under the page, by title.
"""

import re
from collections import deque
from collections.abc import Mapping
from typing import Optional

from rich.console import Console

from .config import Config, Surface, normalize_id
from .errors import ConfigError
from .notion_api import NotionAPI, plain_text

console = Console(stderr=True)

TEXT_BLOCK_TYPES = (
    "paragraph",
    "heading_1",
    "heading_2",
    "heading_3",
    "bulleted_list_item",
    "numbered_list_item",
    "to_do",
    "quote",
    "callout",
)

DEFAULT_MAX_NODES = 2000


def page_text(blocks: list[dict]) -> str:
    """Join the text of all text blocks, plus any link targets."""
    lines = []
    for block in blocks:
        block_type = block.get("type")
        content = block.get(block_type) or {}
        rich_text = content.get("rich_text") if isinstance(content, dict) else None
        if not rich_text:
            continue

        if block_type in TEXT_BLOCK_TYPES:
            lines.append(plain_text(rich_text))

        # Database mentions often only carry their id in the link
        for rt in rich_text:
            href = (rt or {}).get("href")
            if href:
                lines.append(href)

    return "\n".join(line for line in lines if line)


def find_labeled_id(text: str, label: str) -> Optional[str]:
    """Find the id written after `label:` or `label=` (case-insensitive)."""
    pattern = re.compile(rf"{re.escape(label)}\s*[:=]\s*(\S*?[0-9a-fA-F-]{{32,}})", re.IGNORECASE)
    match = pattern.search(text)
    return normalize_id(match.group(1)) if match else None


def child_databases(api: NotionAPI, root_page_id: str, max_nodes: int = DEFAULT_MAX_NODES) -> list[dict]:
    """
    Breadth-first walk of child pages, collecting child databases.

    Returns:
        List of {"id", "title"} dicts in discovery order.
    """
    queue = deque([root_page_id])
    visited: set[str] = set()
    found: list[dict] = []
    # Expanding a page costs at least one request; cap the walk
    max_expansions = max(50, max_nodes // 2)

    while queue and len(found) < max_nodes and len(visited) < max_expansions:
        page_id = queue.popleft()
        if page_id in visited:
            continue
        visited.add(page_id)

        for block in api.list_block_children(page_id):
            if block.get("type") == "child_page":
                queue.append(block["id"])
            elif block.get("type") == "child_database":
                title = (block.get("child_database") or {}).get("title") or "Untitled"
                found.append({"id": block["id"], "title": title})

    return found


def resolve_surface_ids(
    api: NotionAPI,
    bootstrap_document_id: str,
    labels: Mapping[str, str],
    max_nodes: int = DEFAULT_MAX_NODES,
) -> dict[str, str]:
    """
    Resolve surface keys to database ids from a bootstrap page.

    Args:
        api: Notion API wrapper.
        bootstrap_document_id: Page listing "Label: <id>" lines.
        labels: Surface key -> label to look for (e.g. "Tasks" -> "tasks").
        max_nodes: Cap on databases collected by the fallback walk.

    Returns:
        Surface key -> database id, for every label that was found.
    """
    text = page_text(api.list_block_children(bootstrap_document_id))

    resolved = {}
    for key, label in labels.items():
        found = find_labeled_id(text, label)
        if found:
            resolved[key] = found

    missing = {key: label for key, label in labels.items() if key not in resolved}
    if missing:
        databases = child_databases(api, bootstrap_document_id, max_nodes=max_nodes)
        for key, label in missing.items():
            for database in databases:
                if label.lower() in database["title"].lower():
                    resolved[key] = database["id"]
                    break

    return resolved


def resolve_config_surfaces(config: Config, api: NotionAPI) -> list[Surface]:
    """
    Complete the configured surfaces using the bootstrap page.

    Raises:
        ConfigError: If any surface id is still missing afterwards.
    """
    if not config.unresolved:
        return list(config.surfaces)

    pending = [Surface(key=key, name=name, collection_id="") for key, name in config.unresolved]
    if not config.bootstrap_page_id:
        raise ConfigError(f"Missing database ids for: {', '.join(s.key for s in pending)}")

    console.print(f"[cyan]Resolving database ids from bootstrap page {config.bootstrap_page_id}[/cyan]")
    ids = resolve_surface_ids(api, config.bootstrap_page_id, {s.key: s.label for s in pending})

    missing = [s.key for s in pending if s.key not in ids]
    if missing:
        raise ConfigError(
            f"Missing database ids for: {', '.join(missing)}.\n"
            f"Add lines like '{pending[0].label.title()}: <DATABASE_ID_OR_URL>' "
            f"to the bootstrap page {config.bootstrap_page_id}."
        )

    resolved = [Surface(key=s.key, name=s.name, collection_id=ids[s.key]) for s in pending]
    return list(config.surfaces) + resolved
