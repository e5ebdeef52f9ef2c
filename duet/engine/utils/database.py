"""SQLite store for scraped feed posts.

Posts are upserted by URL and served least-shown first, so a long-running
conversation cycles through the whole backlog before repeating an item.
Uses Python's built-in sqlite3 library.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from duet.engine.types import ContextItem
from duet.engine.utils.helpers import get_project_root


class PostStore:
    """Helper class for SQLite operations on feed posts."""

    def __init__(self, db_path: Path | str):
        """Initialize the store with a path to the SQLite database file.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self) -> None:
        """Initialize database schema if tables don't exist."""
        conn = sqlite3.connect(self.db_path)
        try:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS posts (
                    url TEXT PRIMARY KEY,
                    author TEXT,
                    title TEXT NOT NULL,
                    body TEXT,
                    votes INTEGER DEFAULT 0,
                    comments INTEGER DEFAULT 0,
                    community TEXT DEFAULT 'general',
                    timestamp TEXT,
                    shown_count INTEGER DEFAULT 0,
                    last_shown_at TEXT,
                    created_at TEXT NOT NULL
                )
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_posts_shown
                ON posts (shown_count ASC, last_shown_at ASC)
            """)

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _build_item(row: sqlite3.Row) -> ContextItem:
        """Convert a database row to a ContextItem."""
        return ContextItem(
            url=row["url"],
            author=row["author"] or "anonymous",
            title=row["title"],
            body=row["body"] or "",
            votes=int(row["votes"] or 0),
            comments=int(row["comments"] or 0),
            community=row["community"] or "general",
            timestamp=row["timestamp"] or "recently",
        )

    @staticmethod
    def _validate_required_text(value: Any, field_name: str) -> str:
        """Validate required text fields before DB writes.

        Raises:
            ValueError: If value is missing or not a non-empty string.
        """
        if not isinstance(value, str):
            raise ValueError(f"{field_name} must be a string")
        cleaned = value.strip()
        if not cleaned:
            raise ValueError(f"{field_name} must be a non-empty string")
        return cleaned

    def save_posts(self, items: Iterable[ContextItem]) -> int:
        """Insert new posts and refresh counters of known ones.

        Shown counters are preserved for posts that already exist.

        Returns:
            int: Number of posts written.
        """
        created_at = datetime.now(timezone.utc).isoformat()
        rows = []
        for item in items:
            url = self._validate_required_text(item.url, "url")
            title = self._validate_required_text(item.title, "title")
            rows.append(
                (
                    url,
                    item.author,
                    title,
                    item.body,
                    item.votes,
                    item.comments,
                    item.community,
                    item.timestamp,
                    created_at,
                )
            )
        if not rows:
            return 0

        conn = sqlite3.connect(self.db_path)
        try:
            cursor = conn.cursor()
            cursor.executemany(
                """
                INSERT INTO posts (url, author, title, body, votes, comments, community, timestamp, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(url) DO UPDATE SET
                    votes = excluded.votes,
                    comments = excluded.comments,
                    title = excluded.title,
                    body = excluded.body
                """,
                rows,
            )
            conn.commit()
        finally:
            conn.close()
        return len(rows)

    def next_post(self) -> ContextItem | None:
        """Return the least-shown post and mark it as shown.

        Ties are broken by the oldest ``last_shown_at`` (never-shown posts first).

        Returns:
            ContextItem or None: The selected post, or None when the store is empty.
        """
        shown_at = datetime.now(timezone.utc).isoformat()
        conn = sqlite3.connect(self.db_path)
        try:
            conn.row_factory = sqlite3.Row
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT * FROM posts
                ORDER BY shown_count ASC, last_shown_at IS NOT NULL, last_shown_at ASC, created_at ASC
                LIMIT 1
                """
            )
            row = cursor.fetchone()
            if row is None:
                return None
            cursor.execute(
                "UPDATE posts SET shown_count = shown_count + 1, last_shown_at = ? WHERE url = ?",
                (shown_at, row["url"]),
            )
            conn.commit()
        finally:
            conn.close()

        return self._build_item(row)

    def count(self) -> int:
        """Return the number of stored posts."""
        conn = sqlite3.connect(self.db_path)
        try:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM posts")
            (total,) = cursor.fetchone()
        finally:
            conn.close()
        return int(total)


def get_database_path() -> Path:
    """Return absolute path to `data/duet.db`."""
    return get_project_root() / "data" / "duet.db"
