"""Context source backed by a fixed list of items."""

from __future__ import annotations

from typing import Iterable

from duet.engine.sources.base import ContextSource
from duet.engine.types import ContextItem


class StaticContextSource(ContextSource):
    """Cycles through a fixed list of items; used offline and in tests."""

    def __init__(self, items: Iterable[ContextItem]):
        self.items = list(items)
        self._index = 0

    def fetch_current(self, category: str | None = None) -> ContextItem | None:
        if not self.items:
            return None
        if category:
            for offset in range(len(self.items)):
                candidate = self.items[(self._index + offset) % len(self.items)]
                if candidate.community == category:
                    self._index = (self._index + offset) % len(self.items)
                    return candidate
        return self.items[self._index]

    def advance(self) -> ContextItem | None:
        if not self.items:
            return None
        self._index = (self._index + 1) % len(self.items)
        return self.items[self._index]
