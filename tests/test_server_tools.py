"""Tests for server tool registration and tool handlers."""
import asyncio
import json
from importlib.metadata import version

import pytest
import pytest_asyncio

from bookmark_insights.config import Config
from bookmark_insights.engine import BookmarkInsightsEngine
from bookmark_insights.server import (
    TOOL_HANDLERS,
    create_server,
    find_duplicates_tool,
    get_similar_bookmarks_tool,
    health_check_tool,
    import_chrome_bookmarks_tool,
    search_bookmarks_tool,
)

from tests.conftest import NOW


def payload(result):
    assert len(result) == 1
    return json.loads(result[0].text)


@pytest_asyncio.fixture
async def engine(store):
    return BookmarkInsightsEngine(store, Config(), clock=lambda: NOW)


class TestServerTools:
    def test_installed_mcp_has_decorator_api(self):
        assert int(version("mcp").split(".")[0]) == 1

    def test_server_creates(self):
        server = create_server()
        assert server.name == "bookmark-insights"

    def test_all_tools_registered(self):
        from mcp.types import ListToolsRequest

        server = create_server()

        async def check():
            result = await server.request_handlers[ListToolsRequest](None)
            return result.root.tools

        tools = asyncio.run(check())
        tool_names = [t.name for t in tools]

        expected = [
            "health_check",
            "search_bookmarks",
            "find_duplicates",
            "find_similar_bookmarks",
            "find_similar_fuzzy",
            "get_similar_bookmarks",
            "find_related_bookmarks",
            "rebuild_index",
            "import_chrome_bookmarks",
        ]

        assert len(tools) == 9
        for name in expected:
            assert name in tool_names, f"Missing tool: {name}"
        assert set(tool_names) == set(TOOL_HANDLERS)


@pytest.mark.asyncio
class TestToolHandlers:
    async def test_health_check(self, engine):
        data = payload(await health_check_tool(engine, {}))
        assert data["status"] == "ok"
        assert data["index"]["initialized"] is False

    async def test_import_then_search(self, engine, sample_bookmarks_path):
        data = payload(await import_chrome_bookmarks_tool(engine, {"path": str(sample_bookmarks_path)}))
        assert data["imported"] == 5
        assert data["indexed"] == 5

        data = payload(await search_bookmarks_tool(engine, {"query": "jira"}))
        assert data["total"] == 1
        assert data["status"] == "ok"

    async def test_search_with_filters(self, engine, sample_bookmarks_path):
        await import_chrome_bookmarks_tool(engine, {"path": str(sample_bookmarks_path)})
        data = payload(await search_bookmarks_tool(engine, {"filters": "folder:work"}))
        assert data["total"] == 2
        assert data["has_more"] is False

    async def test_import_missing_file(self, engine, tmp_path):
        result = await import_chrome_bookmarks_tool(engine, {"path": str(tmp_path / "missing")})
        assert result[0].text.startswith("Error:")

    async def test_import_malformed_file(self, engine, tmp_path):
        broken = tmp_path / "Bookmarks"
        broken.write_text("{not json")
        result = await import_chrome_bookmarks_tool(engine, {"path": str(broken)})
        assert "Malformed" in result[0].text

    async def test_bookmark_id_required(self, engine):
        result = await get_similar_bookmarks_tool(engine, {})
        assert result[0].text == "Error: 'bookmark_id' parameter is required"

    async def test_find_duplicates(self, engine):
        data = payload(await find_duplicates_tool(engine, {}))
        assert data["total"] == 0
