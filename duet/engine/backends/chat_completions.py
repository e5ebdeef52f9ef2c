"""Generation backend for OpenAI-compatible chat-completions endpoints."""

from __future__ import annotations

from typing import Any, Dict

import httpx

from duet.engine.backends.base import GenerationBackend
from duet.engine.errors import GenerationFailure
from duet.engine.personas import Persona
from duet.engine.utils.logging import get_logger


logger = get_logger("duet")


class ChatCompletionsBackend(GenerationBackend):
    """Posts to a chat-completions style endpoint and returns the first choice's text."""

    def __init__(
        self,
        endpoint: str,
        model: str,
        api_key: str | None = None,
        temperature: float = 0.9,
        max_tokens: int = 200,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ):
        self.endpoint = endpoint
        self.model = model
        self.api_key = api_key
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def generate(self, persona: Persona, history_text: str, context_text: str) -> str:
        if not self.api_key:
            raise GenerationFailure("No API key configured for chat-completions backend")

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": self.build_messages(persona, history_text, context_text),
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "stream": False,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        logger.debug(f"Calling {self.endpoint} with model {self.model} for {persona.name}")

        try:
            resp = self._client.post(self.endpoint, json=payload, headers=headers)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as exc:
            raise GenerationFailure(
                f"Chat-completions returned {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise GenerationFailure(f"Chat-completions request failed: {exc}") from exc

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise GenerationFailure("Chat-completions response had no message content") from exc
        if not isinstance(content, str):
            raise GenerationFailure("Chat-completions message content was not text")
        return content
