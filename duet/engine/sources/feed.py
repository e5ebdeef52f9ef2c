"""Context source that serves Moltbook posts scraped over its REST API.

Posts are fetched per community (rotating through a configured list), persisted
in the local PostStore and served least-shown first.
"""

from __future__ import annotations

import sqlite3
import time
from typing import Any, Callable

import httpx

from duet.engine.errors import ContextSourceFailure
from duet.engine.sources.base import ContextSource
from duet.engine.types import ContextItem
from duet.engine.utils.database import PostStore
from duet.engine.utils.logging import get_logger


logger = get_logger("duet")

DEFAULT_COMMUNITIES = (
    "general",
    "todayilearned",
    "introductions",
    "ponderings",
    "dialectics",
    "showandtell",
)


def _int_field(raw: dict[str, Any], *keys: str) -> int:
    for key in keys:
        value = raw.get(key)
        if value is None:
            continue
        try:
            return int(value)
        except (TypeError, ValueError):
            continue
    return 0


def parse_post(raw: dict[str, Any], community: str, site_url: str) -> ContextItem | None:
    """Map one raw API post onto a ContextItem.

    The feed API has shipped several field spellings; the first one present wins.
    Returns None for entries without an id or url.
    """
    author = raw.get("author")
    if isinstance(author, dict):
        author = author.get("name")
    author = author or raw.get("username") or "anonymous"

    post_id = raw.get("id")
    url = raw.get("url") or (f"{site_url.rstrip('/')}/post/{post_id}" if post_id is not None else None)
    if not url:
        return None

    return ContextItem(
        url=str(url),
        author=str(author),
        title=str(raw.get("title") or "Untitled"),
        body=str(raw.get("content") or raw.get("body") or ""),
        votes=_int_field(raw, "upvotes", "votes", "score"),
        comments=_int_field(raw, "comment_count", "comments"),
        community=community,
        timestamp=str(raw.get("created_at") or raw.get("timestamp") or "recently"),
    )


class FeedContextSource(ContextSource):
    """Moltbook-backed context source with a local least-shown rotation."""

    def __init__(
        self,
        store: PostStore,
        api_base: str = "https://www.moltbook.com/api/v1",
        site_url: str = "https://www.moltbook.com",
        communities: tuple[str, ...] | list[str] = DEFAULT_COMMUNITIES,
        fetch_interval_seconds: float = 30 * 60,
        page_limit: int = 25,
        timeout: float = 15.0,
        client: httpx.Client | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if not communities:
            raise ValueError("At least one community must be configured")
        self.store = store
        self.api_base = api_base.rstrip("/")
        self.site_url = site_url
        self.communities = list(communities)
        self.fetch_interval_seconds = fetch_interval_seconds
        self.page_limit = page_limit
        self.clock = clock
        self._client = client or httpx.Client(timeout=timeout)
        self._community_index = 0
        self._last_fetch: float | None = None
        self.current_item: ContextItem | None = None

    def close(self) -> None:
        self._client.close()

    def _next_community(self) -> str:
        community = self.communities[self._community_index]
        self._community_index = (self._community_index + 1) % len(self.communities)
        return community

    def _fetch_due(self) -> bool:
        if self._last_fetch is None:
            return True
        return self.clock() - self._last_fetch > self.fetch_interval_seconds

    def fetch_posts(self, community: str = "general") -> list[ContextItem]:
        """Fetch the hot feed of one community and persist it.

        Raises:
            ContextSourceFailure: On transport errors, non-2xx responses or bad JSON.
        """
        url = f"{self.api_base}/submolts/{community}/feed"
        logger.debug(f"Fetching feed: {url}")
        try:
            resp = self._client.get(url, params={"sort": "hot", "limit": self.page_limit})
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ContextSourceFailure(f"Feed fetch failed for {community}: {exc}") from exc

        if isinstance(data, dict):
            raw_posts = data.get("posts") or data.get("data") or []
        elif isinstance(data, list):
            raw_posts = data
        else:
            raw_posts = []

        items = []
        for raw in raw_posts:
            if not isinstance(raw, dict):
                continue
            item = parse_post(raw, community, self.site_url)
            if item is not None:
                items.append(item)

        self._last_fetch = self.clock()
        logger.info(f"Parsed {len(items)} posts from {community}")

        if items:
            try:
                saved = self.store.save_posts(items)
            except (sqlite3.Error, ValueError) as exc:
                raise ContextSourceFailure(f"Could not store posts: {exc}") from exc
            logger.debug(f"Saved {saved} posts to store")
        return items

    def _next_from_store(self) -> ContextItem | None:
        try:
            item = self.store.next_post()
        except sqlite3.Error as exc:
            raise ContextSourceFailure(f"Post store unavailable: {exc}") from exc
        if item is not None:
            self.current_item = item
        return self.current_item

    def fetch_current(self, category: str | None = None) -> ContextItem | None:
        if self._fetch_due():
            community = category or self._next_community()
            try:
                self.fetch_posts(community)
            except ContextSourceFailure as exc:
                # Stored posts are still usable when the API is down.
                logger.warning(str(exc))
                self._last_fetch = self.clock()
        return self._next_from_store()

    def advance(self) -> ContextItem | None:
        return self._next_from_store()

    def scrape_all(self, pause_seconds: float = 1.0) -> int:
        """Fetch every configured community, pausing between requests.

        Returns:
            int: Total number of posts parsed across communities.
        """
        total = 0
        for index, community in enumerate(self.communities):
            try:
                total += len(self.fetch_posts(community))
            except ContextSourceFailure as exc:
                logger.warning(str(exc))
            if pause_seconds > 0 and index < len(self.communities) - 1:
                time.sleep(pause_seconds)
        return total

    def context_line(self) -> str:
        """Return a one-line description of the current item, empty when none."""
        item = self.current_item
        if item is None:
            return ""
        return f'[MOLTBOOK SCREEN shows a post from u/{item.author}: "{item.title}" with {item.votes} upvotes]'

    def stats(self) -> dict[str, Any]:
        return {"totalPosts": self.store.count(), "communities": list(self.communities)}
