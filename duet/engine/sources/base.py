from __future__ import annotations

from abc import ABC, abstractmethod

from duet.engine.types import ContextItem


class ContextSource(ABC):
    """Abstract supplier of the on-screen context item.

    Implementations may raise ContextSourceFailure; callers degrade to "no item".
    """

    @abstractmethod
    def fetch_current(self, category: str | None = None) -> ContextItem | None:
        """Return the item that should be on screen now."""
        raise NotImplementedError

    @abstractmethod
    def advance(self) -> ContextItem | None:
        """Move to the next item and return it; may return the same item again."""
        raise NotImplementedError
