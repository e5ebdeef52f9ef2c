"""Bounded rolling transcript used to build generation prompts."""

from __future__ import annotations

from duet.engine.types import HistoryEntry
from duet.engine.utils.logging import get_logger


logger = get_logger("duet")

EMPTY_HISTORY_TEXT = "(conversation just started)"


class HistoryLedger:
    """Append-only transcript with a hard cap and one-step eviction.

    When the number of entries exceeds ``max_entries`` the ledger drops the oldest
    entries in a single slice, keeping only the newest ``retain_entries``.
    """

    def __init__(self, max_entries: int = 40, retain_entries: int = 20):
        if retain_entries < 1:
            raise ValueError(f"retain_entries must be at least 1, got {retain_entries}")
        if max_entries < retain_entries:
            raise ValueError(
                f"max_entries ({max_entries}) must be >= retain_entries ({retain_entries})"
            )
        self.max_entries = max_entries
        self.retain_entries = retain_entries
        self._entries: list[HistoryEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, entry: HistoryEntry) -> None:
        """Append an entry and evict the oldest ones if the cap is exceeded."""
        self._entries.append(entry)
        if len(self._entries) > self.max_entries:
            evicted = len(self._entries) - self.retain_entries
            self._entries = self._entries[-self.retain_entries :]
            logger.debug(f"History trimmed: evicted {evicted} oldest entries")

    def entries(self) -> list[HistoryEntry]:
        """Return a copy of the retained entries, oldest first."""
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def window_for_prompt(self, max_entries: int = 20) -> str:
        """Return the newest entries as a newline-joined ``label: text`` transcript."""
        if not self._entries or max_entries <= 0:
            return EMPTY_HISTORY_TEXT
        recent = self._entries[-max_entries:]
        return "\n".join(f"{entry.speaker_label}: {entry.text}" for entry in recent)
