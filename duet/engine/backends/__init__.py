from duet.engine.backends.base import GenerationBackend
from duet.engine.backends.chat_completions import ChatCompletionsBackend
from duet.engine.backends.ollama_backend import OllamaBackend
from duet.engine.config import LLMSettings


def create_backend(settings: LLMSettings) -> GenerationBackend:
    """Build the backend selected by ``settings.provider``.

    Raises:
        ValueError: For an unknown provider name.
    """
    if settings.provider == "ollama":
        return OllamaBackend(
            model=settings.model,
            think=settings.think,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
            timeout=settings.timeout,
        )
    if settings.provider == "chat_completions":
        return ChatCompletionsBackend(
            endpoint=settings.endpoint,
            model=settings.model,
            api_key=settings.api_key,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
            timeout=settings.timeout,
        )
    raise ValueError(f"Unknown generation provider: {settings.provider}")


__all__ = [
    "GenerationBackend",
    "ChatCompletionsBackend",
    "OllamaBackend",
    "create_backend",
]
