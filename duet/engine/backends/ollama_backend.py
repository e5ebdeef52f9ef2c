"""Generation backend that talks to a local Ollama server."""

from __future__ import annotations

import ollama

from duet.engine.backends.base import GenerationBackend
from duet.engine.errors import GenerationFailure
from duet.engine.personas import Persona
from duet.engine.utils.logging import get_logger


logger = get_logger("duet")


class OllamaBackend(GenerationBackend):
    """Calls ``chat`` on an Ollama client without streaming and returns the message content.

    The client carries ``timeout`` so a stalled server surfaces as a GenerationFailure
    instead of holding the scheduler in GENERATING.
    """

    def __init__(
        self,
        model: str,
        think: bool = False,
        temperature: float = 0.9,
        max_tokens: int = 200,
        timeout: float = 30.0,
        client: ollama.Client | None = None,
    ):
        self.model = model
        self.think = think
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._client = client or ollama.Client(timeout=timeout)

    def generate(self, persona: Persona, history_text: str, context_text: str) -> str:
        messages = self.build_messages(persona, history_text, context_text)
        logger.debug(f"Calling Ollama model {self.model} for {persona.name}")

        try:
            response = self._client.chat(
                model=self.model,
                messages=messages,
                stream=False,
                think=self.think,
                options={"temperature": self.temperature, "num_predict": self.max_tokens},
            )
        except Exception as exc:
            raise GenerationFailure(f"Ollama chat failed: {exc}") from exc

        message = response.get("message", {}) or {}
        content = message.get("content", "")
        if not isinstance(content, str):
            raise GenerationFailure("Ollama returned a message without text content")
        return content
