"""MCP server exposing bookmark search and similarity tools."""
import json
import logging
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from bookmark_insights.bookmarks_reader import get_chrome_bookmarks_path, read_chrome_bookmarks
from bookmark_insights.config import get_config
from bookmark_insights.engine import BookmarkInsightsEngine
from bookmark_insights.models import FuzzyScanOptions, SearchOptions
from bookmark_insights.query_parser import parse_filter_query
from bookmark_insights.store import SQLiteBookmarkStore, get_store


logger = logging.getLogger(__name__)

SERVER_NAME = "bookmark-insights"

# Global state
_engine: Optional[BookmarkInsightsEngine] = None


async def get_engine() -> BookmarkInsightsEngine:
    """Get or create the global engine over the global store."""
    global _engine

    if _engine is None:
        store = await get_store(get_config().db_path)
        _engine = BookmarkInsightsEngine(store)

    return _engine


def _json(data: Any) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(data, indent=2))]


def _error(message: str) -> list[TextContent]:
    return [TextContent(type="text", text=f"Error: {message}")]


async def health_check_tool(engine: BookmarkInsightsEngine, arguments: Dict[str, Any]) -> list[TextContent]:
    return _json({"status": "ok", "index": engine.get_index_stats()})


async def search_bookmarks_tool(engine: BookmarkInsightsEngine, arguments: Dict[str, Any]) -> list[TextContent]:
    """Tool handler for search_bookmarks.

    The optional `filters` argument uses the sidebar syntax (domain:, folder:,
    topic:, type:, tag:, is:dead, is:stale); any free text left over is
    appended to the query.
    """
    query = arguments.get("query", "")
    active_filters = None
    if arguments.get("filters"):
        leftover, active_filters = parse_filter_query(arguments["filters"])
        query = f"{query} {leftover}".strip()

    options = SearchOptions(
        limit=int(arguments.get("limit", engine.config.search.default_limit)),
        offset=int(arguments.get("offset", 0)),
        sort_by=arguments.get("sort_by"),
        compute_stats=bool(arguments.get("compute_stats", False)),
        boost=dict(engine.config.search.boost),
    )

    response = await engine.search_bookmarks(query, active_filters, options)
    return _json(response.to_dict())


async def find_duplicates_tool(engine: BookmarkInsightsEngine, arguments: Dict[str, Any]) -> list[TextContent]:
    report = await engine.find_duplicates_enhanced()
    return _json(report.to_dict())


async def find_similar_bookmarks_tool(engine: BookmarkInsightsEngine, arguments: Dict[str, Any]) -> list[TextContent]:
    pairs = await engine.find_similar_bookmarks_enhanced(
        threshold=arguments.get("threshold"),
        max_pairs=arguments.get("max_pairs"),
    )
    return _json([p.to_dict() for p in pairs])


async def find_similar_fuzzy_tool(engine: BookmarkInsightsEngine, arguments: Dict[str, Any]) -> list[TextContent]:
    cfg = engine.config.similarity
    options = FuzzyScanOptions(
        min_similarity=float(arguments.get("min_similarity", 0.5)),
        max_pairs=int(arguments.get("max_pairs", cfg.max_pairs)),
        include_cross_domain=bool(arguments.get("include_cross_domain", True)),
        sample_size=cfg.fuzzy_sample_size,
        seed=cfg.sample_seed,
    )
    matches = await engine.find_similar_bookmarks_enhanced_fuzzy(options)
    return _json([m.to_dict() for m in matches])


async def get_similar_bookmarks_tool(engine: BookmarkInsightsEngine, arguments: Dict[str, Any]) -> list[TextContent]:
    bookmark_id = arguments.get("bookmark_id")
    if not bookmark_id:
        return _error("'bookmark_id' parameter is required")
    records = await engine.get_similar_bookmarks_with_cache(bookmark_id, limit=arguments.get("limit"))
    return _json([r.to_dict() for r in records])


async def find_related_bookmarks_tool(engine: BookmarkInsightsEngine, arguments: Dict[str, Any]) -> list[TextContent]:
    bookmark_id = arguments.get("bookmark_id")
    if not bookmark_id:
        return _error("'bookmark_id' parameter is required")
    related = await engine.find_related_bookmarks(bookmark_id, limit=int(arguments.get("limit", 10)))
    return _json([r.to_dict() for r in related])


async def rebuild_index_tool(engine: BookmarkInsightsEngine, arguments: Dict[str, Any]) -> list[TextContent]:
    count = await engine.rebuild_index()
    return _json({"indexed": count})


async def import_chrome_bookmarks_tool(engine: BookmarkInsightsEngine, arguments: Dict[str, Any]) -> list[TextContent]:
    """Tool handler for import_chrome_bookmarks.

    Reads a Chrome Bookmarks file into the store and rebuilds the index.
    """
    if not isinstance(engine.store, SQLiteBookmarkStore):
        return _error("Import requires the SQLite bookmark store")

    if arguments.get("path"):
        path = Path(arguments["path"]).expanduser()
    else:
        path = get_chrome_bookmarks_path(arguments.get("profile") or get_config().chrome_profile)

    try:
        bookmarks = read_chrome_bookmarks(path)
    except FileNotFoundError as e:
        logger.warning("Could not find bookmarks file: %s", e)
        return _error(str(e))
    except json.JSONDecodeError as e:
        logger.error("Malformed bookmarks file %s: %s", path, e)
        return _error(f"Malformed bookmarks file: {e}")

    imported = await engine.store.bulk_upsert_bookmarks(bookmarks)
    indexed = await engine.rebuild_index()
    return _json({"imported": imported, "indexed": indexed, "path": str(path)})


ToolHandler = Callable[[BookmarkInsightsEngine, Dict[str, Any]], Awaitable[list[TextContent]]]

TOOL_HANDLERS: Dict[str, ToolHandler] = {
    "health_check": health_check_tool,
    "search_bookmarks": search_bookmarks_tool,
    "find_duplicates": find_duplicates_tool,
    "find_similar_bookmarks": find_similar_bookmarks_tool,
    "find_similar_fuzzy": find_similar_fuzzy_tool,
    "get_similar_bookmarks": get_similar_bookmarks_tool,
    "find_related_bookmarks": find_related_bookmarks_tool,
    "rebuild_index": rebuild_index_tool,
    "import_chrome_bookmarks": import_chrome_bookmarks_tool,
}


_BOOKMARK_ID_SCHEMA = {
    "type": "object",
    "properties": {
        "bookmark_id": {"type": "string", "description": "Bookmark id"},
        "limit": {"type": "integer", "description": "Maximum results to return"},
    },
    "required": ["bookmark_id"],
}


def _tools() -> list[Tool]:
    return [
        Tool(
            name="health_check",
            description="Report server status and search index statistics.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="search_bookmarks",
            description=(
                "Search bookmarks. The query supports key:value filters (category:, domain:, platform:, "
                "author:, repo:, type:, folder:, dead:yes, stale:yes ...), /regex/flags, \"exact phrases\", "
                "+required and -excluded terms."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Search query"},
                    "filters": {
                        "type": "string",
                        "description": "Structured filters, e.g. 'domain:github.com topic:dev is:stale'",
                    },
                    "limit": {"type": "integer", "description": "Page size (default 50)"},
                    "offset": {"type": "integer", "description": "Results to skip"},
                    "sort_by": {
                        "type": "string",
                        "enum": ["relevance", "date_desc", "date_asc", "title_asc", "title_desc", "domain_asc"],
                    },
                    "compute_stats": {"type": "boolean", "description": "Include facet counts"},
                },
            },
        ),
        Tool(
            name="find_duplicates",
            description="Find exact-URL duplicates and URLs that are the same after normalization.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="find_similar_bookmarks",
            description="Find pairs of bookmarks with similar content (TF-IDF cosine similarity).",
            inputSchema={
                "type": "object",
                "properties": {
                    "threshold": {"type": "number", "description": "Minimum similarity (default 0.3)"},
                    "max_pairs": {"type": "integer", "description": "Maximum pairs (default 100)"},
                },
            },
        ),
        Tool(
            name="find_similar_fuzzy",
            description="Find likely duplicates by fuzzy title, URL path and word overlap.",
            inputSchema={
                "type": "object",
                "properties": {
                    "min_similarity": {"type": "number", "description": "Minimum score (default 0.5)"},
                    "max_pairs": {"type": "integer", "description": "Maximum pairs (default 100)"},
                    "include_cross_domain": {"type": "boolean", "description": "Also compare across domains"},
                },
            },
        ),
        Tool(
            name="get_similar_bookmarks",
            description="Get the stored most-similar bookmarks for one bookmark, recomputing when stale.",
            inputSchema=_BOOKMARK_ID_SCHEMA,
        ),
        Tool(
            name="find_related_bookmarks",
            description="Rank bookmarks by content similarity to one bookmark.",
            inputSchema=_BOOKMARK_ID_SCHEMA,
        ),
        Tool(
            name="rebuild_index",
            description="Rebuild the search index from the bookmark store.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="import_chrome_bookmarks",
            description="Import bookmarks from a Chrome profile's Bookmarks file and rebuild the index.",
            inputSchema={
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "Path to a Bookmarks file"},
                    "profile": {"type": "string", "description": "Chrome profile name (default from config)"},
                },
            },
        ),
    ]


def create_server(engine: Optional[BookmarkInsightsEngine] = None) -> Server:
    """Create and configure the MCP server.

    Args:
        engine: Engine to serve. Defaults to the global engine, created on first call

    Returns:
        Configured Server instance
    """
    server = Server(SERVER_NAME)

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        """List available tools."""
        return _tools()

    @server.call_tool()
    async def call_tool(name: str, arguments: Any) -> list[TextContent]:
        """Handle tool calls."""
        handler = TOOL_HANDLERS.get(name)
        if handler is None:
            raise ValueError(f"Unknown tool: {name}")

        try:
            return await handler(engine or await get_engine(), arguments or {})
        except ValueError as e:
            return _error(str(e))

    return server


def configure_logging(level: str = "INFO") -> None:
    """Send log records to stderr; stdout carries the MCP protocol."""
    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.INFO),
        format="[%(name)s] %(message)s",
    )


async def main():
    """Main entry point for the MCP server."""
    config = get_config()
    configure_logging(config.log_level)

    engine = await get_engine()
    server = create_server(engine)

    try:
        async with stdio_server() as (read_stream, write_stream):
            initialization_options = server.create_initialization_options()
            await server.run(read_stream, write_stream, initialization_options)
    finally:
        if isinstance(engine.store, SQLiteBookmarkStore):
            await engine.store.close()
