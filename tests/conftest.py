"""Shared fixtures for tests."""
import json
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from bookmark_insights.models import Bookmark
from bookmark_insights.store import SQLiteBookmarkStore


NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def days_ago(days: float) -> datetime:
    return NOW - timedelta(days=days)


SAMPLE_BOOKMARKS = {
    "checksum": "test",
    "roots": {
        "bookmark_bar": {
            "children": [
                {
                    "id": "1",
                    "name": "Python Docs",
                    "type": "url",
                    "url": "https://docs.python.org",
                    "date_added": "13300000000000000",
                    "date_last_used": "0"
                },
                {
                    "id": "2",
                    "name": "Work",
                    "type": "folder",
                    "children": [
                        {
                            "id": "3",
                            "name": "Jira Board",
                            "type": "url",
                            "url": "https://jira.example.com/board",
                            "date_added": "13300000000000000",
                            "date_last_used": "13310000000000000"
                        },
                        {
                            "id": "4",
                            "name": "Confluence",
                            "type": "url",
                            "url": "https://confluence.example.com"
                        }
                    ]
                },
                {
                    "id": "5",
                    "name": "Tutorials",
                    "type": "folder",
                    "children": [
                        {
                            "id": "6",
                            "name": "SQLite Guide",
                            "type": "url",
                            "url": "https://sqlite.org/guide"
                        }
                    ]
                }
            ],
            "id": "0",
            "name": "Bookmarks Bar",
            "type": "folder"
        },
        "other": {
            "children": [
                {
                    "id": "7",
                    "name": "Stack Overflow",
                    "type": "url",
                    "url": "https://stackoverflow.com"
                }
            ],
            "id": "100",
            "name": "Other Bookmarks",
            "type": "folder"
        },
        "synced": {
            "children": [],
            "id": "200",
            "name": "Mobile Bookmarks",
            "type": "folder"
        }
    },
    "version": 1
}


@pytest.fixture
def sample_bookmarks_path(tmp_path):
    """Create a temporary bookmarks file with sample data."""
    bookmarks_file = tmp_path / "Bookmarks"
    bookmarks_file.write_text(json.dumps(SAMPLE_BOOKMARKS, indent=3))
    return bookmarks_file


@pytest.fixture
def corpus():
    """A small enriched corpus covering the filterable fields."""
    return [
        Bookmark(
            id="rust-book",
            url="https://doc.rust-lang.org/book/",
            title="Rust Book",
            description="The Rust programming language book",
            domain="doc.rust-lang.org",
            category="programming",
            folder_path="Bookmarks Bar/Dev/Rust",
            keywords=("rust", "book"),
            topics=("dev/rust",),
            content_type="documentation",
            date_added=days_ago(3),
            access_count=4,
            is_alive=True,
        ),
        Bookmark(
            id="rust-tutorial",
            url="https://tutorials.example.com/rust",
            title="Rust Tutorial",
            description="Learn rust step by step",
            domain="tutorials.example.com",
            category="programming",
            folder_path="Bookmarks Bar/Dev/Rust",
            keywords=("rust", "tutorial"),
            topics=("dev/rust",),
            content_type="article",
            date_added=days_ago(40),
            is_alive=True,
        ),
        Bookmark(
            id="cat-video",
            url="https://www.youtube.com/watch?v=abc",
            title="Funny Cat Compilation",
            domain="youtube.com",
            category="video",
            folder_path="Other Bookmarks/Fun",
            content_type="video",
            platform="youtube",
            creator="CatChannel",
            date_added=days_ago(100),
            is_alive=False,
            platform_data={"extra": {"thumbnail": "https://img.example.com/cat.jpg", "playlistId": "PL123"}},
        ),
        Bookmark(
            id="dead-article",
            url="https://blog.example.com/old-post",
            title="Old Blog Post",
            domain="blog.example.com",
            category="reading",
            folder_path="Other Bookmarks/Reading",
            content_type="article",
            date_added=days_ago(400),
            is_alive=False,
        ),
        Bookmark(
            id="live-video",
            url="https://vimeo.com/12345",
            title="Conference Talk",
            description="A talk about databases",
            domain="vimeo.com",
            category="video",
            folder_path="Other Bookmarks/Talks",
            content_type="video",
            platform="vimeo",
            date_added=days_ago(10),
            access_count=1,
            is_alive=True,
        ),
        Bookmark(
            id="repo",
            url="https://github.com/tokio-rs/tokio",
            title="tokio",
            description="A runtime for writing reliable asynchronous applications with Rust",
            domain="github.com",
            category="programming",
            folder_path="Bookmarks Bar/Dev",
            keywords=("async", "rust"),
            topics=("dev",),
            content_type="repository",
            platform="github",
            creator="tokio-rs",
            date_added=days_ago(20),
            platform_data={"extra": {"owner": "tokio-rs", "repo": "tokio"}},
        ),
    ]


@pytest.fixture
def scenario_bookmarks():
    return [
        Bookmark(id="1", title="Learn Rust Programming", domain="rust-lang.org", date_added=days_ago(1)),
        Bookmark(id="2", title="Rust Programming Guide", domain="rust-lang.org", date_added=days_ago(2)),
        Bookmark(id="3", title="Python Basics", domain="python.org", date_added=days_ago(3)),
    ]


@pytest.fixture
def db_path(tmp_path):
    """Return path for a temporary bookmarks database."""
    return tmp_path / "test_bookmarks.db"


@pytest_asyncio.fixture
async def store(db_path):
    """Create and initialize a test bookmark store."""
    s = SQLiteBookmarkStore(db_path)
    await s.initialize()
    yield s
    await s.close()
