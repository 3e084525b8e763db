"""Tests for surface id discovery from a bootstrap page."""

import pytest

from notion_sweeper.bootstrap import (
    child_databases,
    find_labeled_id,
    page_text,
    resolve_config_surfaces,
    resolve_surface_ids,
)
from notion_sweeper.config import Config, Surface, normalize_id
from notion_sweeper.errors import ConfigError

TASKS_ID = "11111111111111111111111111111111"
EVENTS_ID = "22222222-2222-2222-2222-222222222222"
IMPORTS_ID = "33333333333333333333333333333333"


def text_block(block_type, text, href=None):
    return {"type": block_type, block_type: {"rich_text": [{"plain_text": text, "href": href}]}}


class FakeBlocksAPI:
    """Serves block children from a dict of page id -> blocks."""

    def __init__(self, children):
        self.children = children
        self.requested = []

    def list_block_children(self, block_id):
        self.requested.append(block_id)
        return self.children.get(block_id, [])


class TestPageText:
    def test_collects_text_and_links(self):
        blocks = [
            text_block("heading_2", "Databases"),
            text_block("bulleted_list_item", "Tasks", href=f"https://www.notion.so/ws/Tasks-{TASKS_ID}"),
            text_block("code", "ignored: code"),
            {"type": "divider", "divider": {}},
        ]

        text = page_text(blocks)

        assert text.splitlines() == ["Databases", "Tasks", f"https://www.notion.so/ws/Tasks-{TASKS_ID}"]


class TestFindLabeledId:
    def test_colon_and_equals(self):
        text = f"Tasks: {TASKS_ID}\nEvents = {EVENTS_ID}"

        assert find_labeled_id(text, "tasks") == TASKS_ID
        assert find_labeled_id(text, "events") == EVENTS_ID
        assert find_labeled_id(text, "imports") is None

    def test_url_value(self):
        text = f"Imports: https://www.notion.so/ws/Imports-Queue-{IMPORTS_ID}?v=abc"

        assert find_labeled_id(text, "imports") == IMPORTS_ID

    def test_placeholder_is_not_an_id(self):
        assert find_labeled_id("Tasks: <TASKS_DATABASE_ID_OR_URL>", "tasks") is None


class TestNormalizeId:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (TASKS_ID, TASKS_ID),
            (f"  {EVENTS_ID} ", EVENTS_ID),
            (f"https://www.notion.so/{TASKS_ID}?v=1", TASKS_ID),
            (f"https://www.notion.so/ws/My-Tasks-{TASKS_ID}", TASKS_ID),
            ("https://www.notion.so/", None),
            ("", None),
            (None, None),
        ],
    )
    def test_normalize(self, value, expected):
        assert normalize_id(value) == expected


class TestResolveSurfaceIds:
    def test_labels_from_page_text(self):
        api = FakeBlocksAPI({"boot": [text_block("paragraph", f"Tasks: {TASKS_ID}"), text_block("paragraph", f"Events: {EVENTS_ID}")]})

        ids = resolve_surface_ids(api, "boot", {"Tasks": "tasks", "EventsQueue": "events"})

        assert ids == {"Tasks": TASKS_ID, "EventsQueue": EVENTS_ID}
        assert api.requested == ["boot"]

    def test_missing_labels_fall_back_to_child_database_titles(self):
        api = FakeBlocksAPI(
            {
                "boot": [
                    text_block("paragraph", f"Tasks: {TASKS_ID}"),
                    {"type": "child_page", "id": "sub", "child_page": {"title": "Queues"}},
                ],
                "sub": [{"type": "child_database", "id": "db-imports", "child_database": {"title": "Imports Queue"}}],
            }
        )

        ids = resolve_surface_ids(api, "boot", {"Tasks": "tasks", "ImportsQueue": "imports", "EventsQueue": "events"})

        assert ids == {"Tasks": TASKS_ID, "ImportsQueue": "db-imports"}

    def test_child_database_walk_visits_each_page_once(self):
        api = FakeBlocksAPI(
            {
                "root": [
                    {"type": "child_page", "id": "a", "child_page": {"title": "A"}},
                    {"type": "child_page", "id": "a", "child_page": {"title": "A"}},
                ],
                "a": [{"type": "child_database", "id": "db", "child_database": {"title": "Events"}}],
            }
        )

        assert child_databases(api, "root") == [{"id": "db", "title": "Events"}]
        assert api.requested == ["root", "a"]


class TestResolveConfigSurfaces:
    def test_nothing_to_resolve(self):
        surfaces = [Surface(key="Tasks", name="Tasks DB", collection_id=TASKS_ID)]
        config = Config(notion_token="t", surfaces=surfaces)

        assert resolve_config_surfaces(config, FakeBlocksAPI({})) == surfaces

    def test_fills_unresolved_surfaces(self):
        config = Config(
            notion_token="t",
            surfaces=[Surface(key="Tasks", name="Tasks DB", collection_id=TASKS_ID)],
            bootstrap_page_id="boot",
            unresolved=[("EventsQueue", "Events Queue DB")],
        )
        api = FakeBlocksAPI({"boot": [text_block("bulleted_list_item", f"Events: {EVENTS_ID}")]})

        surfaces = resolve_config_surfaces(config, api)

        assert surfaces[-1] == Surface(key="EventsQueue", name="Events Queue DB", collection_id=EVENTS_ID)

    def test_unresolvable_surface_is_config_error(self):
        config = Config(notion_token="t", bootstrap_page_id="boot", unresolved=[("ImportsQueue", "Imports Queue DB")])

        with pytest.raises(ConfigError, match="ImportsQueue"):
            resolve_config_surfaces(config, FakeBlocksAPI({"boot": []}))
