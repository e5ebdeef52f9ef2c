"""Typed configuration loader with env > local.toml > default.toml precedence."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from duet.engine.types import ContextItem, Speaker
from duet.engine.utils.helpers import get_config_dir
from duet.engine.utils.logging import get_logger

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore


logger = get_logger("duet")

PROVIDERS = ("ollama", "chat_completions")
CONTEXT_SOURCES = ("feed", "static")


@dataclass(frozen=True)
class LLMSettings:
    """Settings for the generation backend.

    Attributes:
        provider: 'ollama' or 'chat_completions' (any OpenAI-compatible endpoint).
        model: Model name passed to the backend.
        think: Enable extended thinking for Ollama models that support it.
        temperature: Sampling temperature.
        max_tokens: Upper bound on generated tokens per turn.
        timeout: Request timeout in seconds for calls to either backend.
        endpoint: Chat-completions URL (ignored by the Ollama provider).
        api_key: Bearer token for chat-completions; None disables remote calls.
    """
    provider: str
    model: str
    think: bool
    temperature: float
    max_tokens: int
    timeout: float
    endpoint: str
    api_key: str | None


@dataclass(frozen=True)
class ConversationSettings:
    """Settings for turn scheduling and the context lock.

    Attributes:
        initial_speaker: Identity that speaks first after start.
        history_max_entries: Ledger cap that triggers eviction.
        history_retain_entries: Entries kept after an eviction.
        prompt_window: Number of newest history entries included in a prompt.
        context_timeout_seconds: Lock period before the on-screen item is advanced.
        auto_start: Start a conversation when polled while inactive.
        debug: Enable DEBUG-level logging.
    """
    initial_speaker: Speaker
    history_max_entries: int
    history_retain_entries: int
    prompt_window: int
    context_timeout_seconds: float
    auto_start: bool
    debug: bool


@dataclass(frozen=True)
class FeedSettings:
    """Settings for the context source.

    Attributes:
        source: 'feed' (Moltbook API + local store) or 'static' (items from config).
        api_base: Feed REST API root.
        site_url: Public site root used to build post URLs.
        communities: Communities rotated through when fetching.
        fetch_interval_seconds: Minimum time between automatic feed fetches.
        database_path: SQLite file for scraped posts; None uses data/duet.db.
        static_items: Items served by the static source.
    """
    source: str
    api_base: str
    site_url: str
    communities: tuple[str, ...]
    fetch_interval_seconds: float
    database_path: Path | None
    static_items: tuple[ContextItem, ...]


@dataclass(frozen=True)
class ServerSettings:
    """HTTP server bind settings."""
    host: str
    port: int


@dataclass(frozen=True)
class Settings:
    """Top-level immutable settings."""
    llm: LLMSettings
    conversation: ConversationSettings
    feed: FeedSettings
    server: ServerSettings


def _parse_bool(value: str) -> bool:
    """Parse common boolean strings."""
    if isinstance(value, bool):
        return value
    if value.lower() in ("true", "1", "yes"):
        return True
    if value.lower() in ("false", "0", "no"):
        return False
    raise ValueError(f"Cannot parse '{value}' as boolean")


def _load_toml(path: Path) -> dict:
    """Load TOML file, returning empty dict when missing."""
    if not path.exists():
        return {}

    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except Exception as exc:
        raise RuntimeError(f"Failed to load TOML file {path}: {exc}") from exc


def _get_config_dir() -> Path:
    """Return absolute path to project `config/` directory."""
    config_dir = get_config_dir()

    if not config_dir.exists():
        raise RuntimeError(
            f"Config directory not found. Expected: {config_dir}\n"
            "Please run Duet from the project root or ensure config/default.toml exists."
        )

    return config_dir


def _merged_sections(default_data: dict, local_data: dict) -> dict:
    merged: dict[str, dict] = {}
    for section in ("llm", "conversation", "feed", "server"):
        merged[section] = {
            **default_data.get(section, {}),
            **local_data.get(section, {}),
        }
    return merged


def _env_or(config: dict, env_key: str, config_key: str, default=None):
    return os.getenv(env_key, config.get(config_key, default))


def _int_value(raw_value, field_name: str) -> int:
    try:
        return int(raw_value)
    except (ValueError, TypeError) as exc:
        raise ValueError(f"{field_name} must be an integer. Got: {raw_value}") from exc


def _float_value(raw_value, field_name: str) -> float:
    try:
        return float(raw_value)
    except (ValueError, TypeError) as exc:
        raise ValueError(f"{field_name} must be a number. Got: {raw_value}") from exc


def _bool_value(raw_value, env_key: str) -> bool:
    try:
        return _parse_bool(raw_value) if isinstance(raw_value, str) else bool(raw_value)
    except ValueError as exc:
        raise ValueError(f"Invalid {env_key} value: {raw_value}") from exc


def _list_value(raw_value) -> tuple[str, ...]:
    if isinstance(raw_value, str):
        parts = raw_value.split(",")
    else:
        parts = list(raw_value or [])
    return tuple(str(part).strip() for part in parts if str(part).strip())


def _static_items(raw_items: Any) -> tuple[ContextItem, ...]:
    items = []
    for index, raw in enumerate(raw_items or []):
        if not isinstance(raw, dict) or not raw.get("url"):
            raise ValueError(f"feed.static_items[{index}] must be a table with a url")
        items.append(
            ContextItem(
                url=str(raw["url"]),
                author=str(raw.get("author", "anonymous")),
                title=str(raw.get("title", "Untitled")),
                body=str(raw.get("body", "")),
                votes=_int_value(raw.get("votes", 0), f"feed.static_items[{index}].votes"),
                comments=_int_value(raw.get("comments", 0), f"feed.static_items[{index}].comments"),
                community=str(raw.get("community", "general")),
                timestamp=str(raw.get("timestamp", "recently")),
            )
        )
    return tuple(items)


def _load_llm(llm_config: dict) -> LLMSettings:
    provider = str(_env_or(llm_config, "DUET_PROVIDER", "provider", "ollama")).strip().lower()
    if provider not in PROVIDERS:
        raise ValueError(f"Unknown llm provider '{provider}'. Expected one of: {', '.join(PROVIDERS)}")

    model = _env_or(llm_config, "DUET_MODEL", "model")
    if not model:
        raise ValueError("LLM model not configured. Set DUET_MODEL or config llm.model")

    max_tokens = _int_value(_env_or(llm_config, "DUET_MAX_TOKENS", "max_tokens", 200), "max_tokens")
    if max_tokens <= 0:
        raise ValueError(f"max_tokens must be greater than zero, got {max_tokens}. Set DUET_MAX_TOKENS or config llm.max_tokens.")

    timeout = _float_value(_env_or(llm_config, "DUET_LLM_TIMEOUT", "timeout", 30.0), "timeout")
    if timeout <= 0:
        raise ValueError(f"timeout must be greater than zero, got {timeout}. Set DUET_LLM_TIMEOUT or config llm.timeout.")

    api_key = _env_or(llm_config, "DUET_API_KEY", "api_key") or os.getenv("XAI_API_KEY") or None

    return LLMSettings(
        provider=provider,
        model=str(model),
        think=_bool_value(_env_or(llm_config, "DUET_THINK", "think", False), "DUET_THINK"),
        temperature=_float_value(_env_or(llm_config, "DUET_TEMPERATURE", "temperature", 0.9), "temperature"),
        max_tokens=max_tokens,
        timeout=timeout,
        endpoint=str(_env_or(llm_config, "DUET_LLM_ENDPOINT", "endpoint", "https://api.x.ai/v1/chat/completions")),
        api_key=api_key,
    )


def _load_conversation(conversation_config: dict) -> ConversationSettings:
    speaker_raw = str(_env_or(conversation_config, "DUET_INITIAL_SPEAKER", "initial_speaker", "A")).strip().upper()
    try:
        initial_speaker = Speaker(speaker_raw)
    except ValueError as exc:
        raise ValueError(f"initial_speaker must be 'A' or 'B', got {speaker_raw}") from exc

    history_max = _int_value(
        _env_or(conversation_config, "DUET_HISTORY_MAX_ENTRIES", "history_max_entries", 40),
        "history_max_entries",
    )
    history_retain = _int_value(
        _env_or(conversation_config, "DUET_HISTORY_RETAIN_ENTRIES", "history_retain_entries", 20),
        "history_retain_entries",
    )
    prompt_window = _int_value(
        _env_or(conversation_config, "DUET_PROMPT_WINDOW", "prompt_window", 20),
        "prompt_window",
    )
    timeout = _float_value(
        _env_or(conversation_config, "DUET_CONTEXT_TIMEOUT_SECONDS", "context_timeout_seconds", 120),
        "context_timeout_seconds",
    )

    if history_retain < 1:
        raise ValueError(f"history_retain_entries must be at least 1, got {history_retain}. Set DUET_HISTORY_RETAIN_ENTRIES or config conversation.history_retain_entries.")
    if history_max < history_retain:
        raise ValueError(f"history_max_entries must be >= history_retain_entries, got {history_max} < {history_retain}.")
    if prompt_window < 1:
        raise ValueError(f"prompt_window must be at least 1, got {prompt_window}. Set DUET_PROMPT_WINDOW or config conversation.prompt_window.")
    if timeout <= 0:
        raise ValueError(f"context_timeout_seconds must be greater than zero, got {timeout}. Set DUET_CONTEXT_TIMEOUT_SECONDS or config conversation.context_timeout_seconds.")

    return ConversationSettings(
        initial_speaker=initial_speaker,
        history_max_entries=history_max,
        history_retain_entries=history_retain,
        prompt_window=prompt_window,
        context_timeout_seconds=timeout,
        auto_start=_bool_value(_env_or(conversation_config, "DUET_AUTO_START", "auto_start", True), "DUET_AUTO_START"),
        debug=_bool_value(_env_or(conversation_config, "DUET_DEBUG", "debug", False), "DUET_DEBUG"),
    )


def _load_feed(feed_config: dict) -> FeedSettings:
    source = str(_env_or(feed_config, "DUET_CONTEXT_SOURCE", "source", "feed")).strip().lower()
    if source not in CONTEXT_SOURCES:
        raise ValueError(f"Unknown context source '{source}'. Expected one of: {', '.join(CONTEXT_SOURCES)}")

    communities = _list_value(_env_or(feed_config, "DUET_FEED_COMMUNITIES", "communities", ["general"]))
    if not communities:
        raise ValueError("feed.communities must list at least one community")

    fetch_interval = _float_value(
        _env_or(feed_config, "DUET_FEED_FETCH_INTERVAL_SECONDS", "fetch_interval_seconds", 1800),
        "fetch_interval_seconds",
    )
    if fetch_interval < 0:
        raise ValueError(f"fetch_interval_seconds must not be negative, got {fetch_interval}.")

    database_raw = _env_or(feed_config, "DUET_DATABASE_PATH", "database_path")
    static_items = _static_items(feed_config.get("static_items"))
    if source == "static" and not static_items:
        raise ValueError("feed.source is 'static' but feed.static_items is empty")

    return FeedSettings(
        source=source,
        api_base=str(_env_or(feed_config, "DUET_FEED_API_BASE", "api_base", "https://www.moltbook.com/api/v1")),
        site_url=str(_env_or(feed_config, "DUET_FEED_SITE_URL", "site_url", "https://www.moltbook.com")),
        communities=communities,
        fetch_interval_seconds=fetch_interval,
        database_path=Path(database_raw) if database_raw else None,
        static_items=static_items,
    )


def _load_server(server_config: dict) -> ServerSettings:
    port = _int_value(_env_or(server_config, "DUET_PORT", "port", 3001), "port")
    if not 0 < port < 65536:
        raise ValueError(f"port must be between 1 and 65535, got {port}. Set DUET_PORT or config server.port.")
    return ServerSettings(
        host=str(_env_or(server_config, "DUET_HOST", "host", "127.0.0.1")),
        port=port,
    )


def load_settings() -> Settings:
    """Load and validate settings from TOML + env overrides."""
    config_dir = _get_config_dir()

    default_path = config_dir / "default.toml"
    if not default_path.exists():
        raise RuntimeError(f"default.toml not found at {default_path}")

    default_data = _load_toml(default_path)
    local_path = config_dir / "local.toml"
    local_data = _load_toml(local_path)

    merged = _merged_sections(default_data, local_data)

    settings = Settings(
        llm=_load_llm(merged["llm"]),
        conversation=_load_conversation(merged["conversation"]),
        feed=_load_feed(merged["feed"]),
        server=_load_server(merged["server"]),
    )
    logger.info(
        f"Configuration loaded: provider={settings.llm.provider}, model={settings.llm.model}, "
        f"source={settings.feed.source}, debug={settings.conversation.debug}"
    )

    return settings
