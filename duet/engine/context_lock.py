"""Snapshot/lock/advance protocol for the shared on-screen context item."""

from __future__ import annotations

import time
from typing import Callable

from duet.engine.errors import ContextSourceFailure, NoLockedContext
from duet.engine.sources.base import ContextSource
from duet.engine.types import ContextItem
from duet.engine.utils.logging import get_logger


logger = get_logger("duet")


def _title_preview(item: ContextItem | None) -> str:
    if item is None:
        return "<none>"
    return item.title[:50]


class ContextLock:
    """Holds exactly one stable context item per lock period.

    Every read during a lock period returns the same frozen ContextItem. The item
    only changes through bootstrap_lock() or advance(), and the scheduler only
    calls advance() between backend calls, never while one is in flight.
    """

    def __init__(
        self,
        source: ContextSource,
        timeout_seconds: float = 120.0,
        clock: Callable[[], float] = time.monotonic,
        category: str | None = None,
    ):
        """Initialize the lock.

        Args:
            source: Collaborator that supplies context items.
            timeout_seconds: Lock period after which the scheduler advances the item.
            clock: Monotonic time source in seconds; injectable for tests.
            category: Optional category passed to the source on bootstrap.
        """
        if timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be greater than zero, got {timeout_seconds}")
        self.source = source
        self.timeout_seconds = timeout_seconds
        self.clock = clock
        self.category = category
        self.reset()

    def reset(self) -> None:
        """Drop any locked item and return to the initial, unlocked state."""
        self.locked_item: ContextItem | None = None
        self.previous_item: ContextItem | None = None
        self.is_locked = False
        self.locked_at: float | None = None
        self.just_changed = False

    def _lock(self, item: ContextItem) -> None:
        self.locked_item = item
        self.is_locked = True
        logger.debug(f"Context locked: {_title_preview(item)}")

    def _fetch(self, operation: Callable[[], ContextItem | None], label: str) -> ContextItem | None:
        try:
            return operation()
        except ContextSourceFailure as exc:
            logger.warning(f"Context source failed during {label}: {exc}")
            return None

    def bootstrap_lock(self) -> ContextItem | None:
        """Fetch the initial item from the source and lock it.

        Returns:
            ContextItem | None: The locked item, or None when the source had nothing.
        """
        self.locked_at = self.clock()
        item = self._fetch(lambda: self.source.fetch_current(self.category), "bootstrap")
        if item is not None:
            self._lock(item)
            logger.info(f"Initial context locked: {_title_preview(item)}")
        else:
            logger.warning("Context source returned no initial item")
        return item

    def current_locked(self) -> ContextItem:
        """Return the locked item.

        Raises:
            NoLockedContext: If nothing has been locked yet.
        """
        if not self.is_locked or self.locked_item is None:
            raise NoLockedContext("No context item has been locked yet")
        return self.locked_item

    def is_timed_out(self, now: float | None = None) -> bool:
        """Return True once the current lock period has lasted ``timeout_seconds``."""
        if self.locked_at is None:
            return False
        current = self.clock() if now is None else now
        return current - self.locked_at >= self.timeout_seconds

    def consume_just_changed(self) -> bool:
        """Return the one-shot change flag and clear it."""
        changed = self.just_changed
        self.just_changed = False
        return changed

    def advance(self) -> ContextItem | None:
        """Replace the locked item with the source's next item.

        The outgoing item is kept as ``previous_item``. The lock period restarts even
        when the source has nothing new, in which case the previous item stays locked.

        Returns:
            ContextItem | None: The newly locked item, or None when the source had nothing.
        """
        self.previous_item = self.locked_item
        self.is_locked = False

        item = self._fetch(self.source.advance, "advance")
        self.locked_at = self.clock()

        if item is None:
            if self.previous_item is not None:
                self._lock(self.previous_item)
            logger.warning("Context source returned no item on advance; keeping previous item")
            return None

        self._lock(item)
        self.just_changed = True
        logger.info(f"Context advanced to: {_title_preview(item)}")
        return item
