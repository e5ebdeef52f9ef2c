from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from duet.engine.personas import Persona

CONTINUE_MESSAGE = "Continue the conversation."


class GenerationBackend(ABC):
    """Abstract base class for text generation services.

    Subclasses must implement generate(), which returns the raw utterance text
    and raises GenerationFailure on any transport or parse error. Callers clean
    the text and substitute fallbacks; backends never do either.
    """

    @abstractmethod
    def generate(self, persona: Persona, history_text: str, context_text: str) -> str:
        """Generate one raw utterance for ``persona``."""
        raise NotImplementedError

    def close(self) -> None:
        """Release network resources; no-op by default."""

    @staticmethod
    def build_messages(persona: Persona, history_text: str, context_text: str) -> list[dict[str, Any]]:
        """Return the chat message list shared by all chat-style backends."""
        return [
            {"role": "system", "content": persona.render(history_text, context_text)},
            {"role": "user", "content": CONTINUE_MESSAGE},
        ]
