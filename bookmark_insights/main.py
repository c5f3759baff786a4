"""Main entry point for the bookmark insights MCP server."""
import asyncio

from bookmark_insights.server import main


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
