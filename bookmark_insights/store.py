"""Bookmark Store: the protocol the engine reads through, plus a SQLite adapter."""
import json
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol

import aiosqlite

from bookmark_insights.models import Bookmark, SimilarityRecord, to_datetime


# Default database location
DEFAULT_DB_PATH = Path.home() / ".bookmark-insights" / "bookmarks.db"


class BookmarkStore(Protocol):
    """What the engine needs from a bookmark store."""

    async def get_all_bookmarks(self) -> List[Bookmark]:
        ...

    async def get_bookmark(self, bookmark_id: str) -> Optional[Bookmark]:
        ...

    async def get_bookmarks_by_domain(self, domain: str, limit: Optional[int] = None) -> List[Bookmark]:
        ...

    async def get_bookmarks_by_category(self, category: str, limit: Optional[int] = None) -> List[Bookmark]:
        ...

    async def get_cache(self, key: str) -> Any:
        ...

    async def set_cache(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ...

    async def clear_cache(self, pattern: Optional[str] = None) -> int:
        ...

    async def store_similarities(self, bookmark_id: str, records: List[SimilarityRecord]) -> None:
        ...

    async def get_stored_similarities(self, bookmark_id: str) -> List[SimilarityRecord]:
        ...


class SQLiteBookmarkStore:
    """Async SQLite store for bookmarks, cached blobs and similarity records."""

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize the store.

        Args:
            db_path: Path to SQLite database. Defaults to ~/.bookmark-insights/bookmarks.db
        """
        self.db_path = db_path or DEFAULT_DB_PATH
        self._connection: Optional[aiosqlite.Connection] = None

    async def initialize(self) -> None:
        """Initialize the database, creating tables if needed."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._connection = await aiosqlite.connect(self.db_path)
        self._connection.row_factory = aiosqlite.Row

        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS bookmarks (
                id TEXT PRIMARY KEY,
                url TEXT,
                domain TEXT,
                category TEXT,
                date_added TIMESTAMP,
                data TEXT NOT NULL
            )
        """)
        await self._connection.execute(
            "CREATE INDEX IF NOT EXISTS idx_bookmarks_domain ON bookmarks(domain)"
        )
        await self._connection.execute(
            "CREATE INDEX IF NOT EXISTS idx_bookmarks_category ON bookmarks(category)"
        )

        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS cache (
                key TEXT PRIMARY KEY,
                value TEXT,
                timestamp REAL NOT NULL,
                ttl REAL
            )
        """)

        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS similarities (
                bookmark_id TEXT NOT NULL,
                related_bookmark_id TEXT NOT NULL,
                score REAL NOT NULL,
                same_domain INTEGER NOT NULL,
                same_category INTEGER NOT NULL,
                computed_at TIMESTAMP NOT NULL,
                PRIMARY KEY (bookmark_id, related_bookmark_id)
            )
        """)

        await self._connection.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    def _conn(self) -> aiosqlite.Connection:
        if not self._connection:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self._connection

    # Bookmarks

    async def upsert_bookmark(self, bookmark: Bookmark) -> None:
        """Insert or replace a bookmark."""
        await self.bulk_upsert_bookmarks([bookmark])

    async def bulk_upsert_bookmarks(self, bookmarks: Iterable[Bookmark]) -> int:
        """Insert or replace many bookmarks in one transaction.

        Returns:
            Number of bookmarks written
        """
        conn = self._conn()
        rows = [
            (
                b.id,
                b.url,
                b.domain.lower(),
                b.category.lower(),
                b.date_added.isoformat(),
                json.dumps(b.to_dict()),
            )
            for b in bookmarks
        ]
        await conn.executemany("""
            INSERT INTO bookmarks (id, url, domain, category, date_added, data)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                url = excluded.url,
                domain = excluded.domain,
                category = excluded.category,
                date_added = excluded.date_added,
                data = excluded.data
        """, rows)
        await conn.commit()
        return len(rows)

    async def delete_bookmark(self, bookmark_id: str) -> bool:
        """Delete a bookmark and its similarity records.

        Returns:
            True if deleted, False if not found
        """
        conn = self._conn()
        cursor = await conn.execute("DELETE FROM bookmarks WHERE id = ?", (bookmark_id,))
        await conn.execute(
            "DELETE FROM similarities WHERE bookmark_id = ? OR related_bookmark_id = ?",
            (bookmark_id, bookmark_id),
        )
        await conn.commit()
        return cursor.rowcount > 0

    async def get_bookmark(self, bookmark_id: str) -> Optional[Bookmark]:
        cursor = await self._conn().execute("SELECT data FROM bookmarks WHERE id = ?", (bookmark_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_bookmark(row)

    async def get_all_bookmarks(self) -> List[Bookmark]:
        """Get every bookmark, newest first."""
        cursor = await self._conn().execute(
            "SELECT data FROM bookmarks ORDER BY date_added DESC, id"
        )
        rows = await cursor.fetchall()
        return [self._row_to_bookmark(row) for row in rows]

    async def get_bookmarks_by_domain(self, domain: str, limit: Optional[int] = None) -> List[Bookmark]:
        return await self._select_where("domain", domain.lower(), limit)

    async def get_bookmarks_by_category(self, category: str, limit: Optional[int] = None) -> List[Bookmark]:
        return await self._select_where("category", category.lower(), limit)

    async def _select_where(self, column: str, value: str, limit: Optional[int]) -> List[Bookmark]:
        cursor = await self._conn().execute(
            f"SELECT data FROM bookmarks WHERE {column} = ? ORDER BY date_added DESC, id LIMIT ?",
            (value, -1 if limit is None else limit),
        )
        rows = await cursor.fetchall()
        return [self._row_to_bookmark(row) for row in rows]

    # Cache

    async def set_cache(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store a JSON-serializable value under a key.

        Args:
            key: Cache key
            value: Value to store; None clears the entry's value
            ttl: Seconds until the entry expires; None keeps it forever
        """
        conn = self._conn()
        await conn.execute("""
            INSERT INTO cache (key, value, timestamp, ttl) VALUES (?, ?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                timestamp = excluded.timestamp,
                ttl = excluded.ttl
        """, (key, json.dumps(value), time.time(), ttl))
        await conn.commit()

    async def get_cache(self, key: str) -> Any:
        """Get a cached value, or None if missing or expired.

        Expired entries are deleted on read.
        """
        conn = self._conn()
        cursor = await conn.execute("SELECT value, timestamp, ttl FROM cache WHERE key = ?", (key,))
        row = await cursor.fetchone()
        if row is None:
            return None

        if row["ttl"] is not None and time.time() - row["timestamp"] > row["ttl"]:
            await conn.execute("DELETE FROM cache WHERE key = ?", (key,))
            await conn.commit()
            return None

        return json.loads(row["value"]) if row["value"] is not None else None

    async def clear_cache(self, pattern: Optional[str] = None) -> int:
        """Delete cache entries whose key contains `pattern`, or all entries.

        Returns:
            Number of entries deleted
        """
        conn = self._conn()
        if pattern:
            escaped = pattern.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            cursor = await conn.execute(
                "DELETE FROM cache WHERE key LIKE ? ESCAPE '\\'", (f"%{escaped}%",)
            )
        else:
            cursor = await conn.execute("DELETE FROM cache")
        await conn.commit()
        return cursor.rowcount

    # Similarity records

    async def store_similarities(self, bookmark_id: str, records: List[SimilarityRecord]) -> None:
        """Replace the stored similarity records for one bookmark."""
        conn = self._conn()
        await conn.execute("DELETE FROM similarities WHERE bookmark_id = ?", (bookmark_id,))
        await conn.executemany("""
            INSERT OR REPLACE INTO similarities
                (bookmark_id, related_bookmark_id, score, same_domain, same_category, computed_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """, [
            (
                bookmark_id,
                r.related_bookmark_id,
                r.score,
                int(r.same_domain),
                int(r.same_category),
                r.computed_at.isoformat(),
            )
            for r in records
        ])
        await conn.commit()

    async def get_stored_similarities(self, bookmark_id: str) -> List[SimilarityRecord]:
        """Get stored similarity records for a bookmark, best first."""
        cursor = await self._conn().execute(
            "SELECT * FROM similarities WHERE bookmark_id = ? ORDER BY score DESC",
            (bookmark_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    async def clear_similarities(self) -> None:
        conn = self._conn()
        await conn.execute("DELETE FROM similarities")
        await conn.commit()

    def _row_to_bookmark(self, row: aiosqlite.Row) -> Bookmark:
        return Bookmark.from_dict(json.loads(row["data"]))

    def _row_to_record(self, row: aiosqlite.Row) -> SimilarityRecord:
        return SimilarityRecord(
            bookmark_id=row["bookmark_id"],
            related_bookmark_id=row["related_bookmark_id"],
            score=row["score"],
            same_domain=bool(row["same_domain"]),
            same_category=bool(row["same_category"]),
            computed_at=to_datetime(row["computed_at"]) or datetime.now(timezone.utc),
        )


# Global store instance
_store: Optional[SQLiteBookmarkStore] = None


async def get_store(db_path: Optional[Path] = None) -> SQLiteBookmarkStore:
    """Get or create the global store instance.

    Returns:
        Initialized SQLiteBookmarkStore
    """
    global _store

    if _store is None:
        _store = SQLiteBookmarkStore(db_path)
        await _store.initialize()

    return _store
