"""Presentation-facing protocol adapter and engine wiring."""

from __future__ import annotations

from typing import Any

from duet.engine.backends import GenerationBackend, create_backend
from duet.engine.config import Settings
from duet.engine.context_lock import ContextLock
from duet.engine.history import HistoryLedger
from duet.engine.personas import load_personas
from duet.engine.scheduler import TurnScheduler
from duet.engine.sources import ContextSource, FeedContextSource, StaticContextSource
from duet.engine.utils.database import PostStore, get_database_path
from duet.engine.utils.helpers import get_personas_dir
from duet.engine.utils.logging import get_logger


logger = get_logger("duet")

WAITING: dict[str, bool] = {"waiting": True}


class PollGateway:
    """Translates scheduler results into presentation-layer payloads.

    ``next()`` returns either a Turn wire dict or ``{"waiting": True}``; a turn that
    is not ready yet is never reported as an error.
    """

    def __init__(self, scheduler: TurnScheduler):
        self.scheduler = scheduler

    async def start(self) -> dict[str, str]:
        return await self.scheduler.start()

    async def next(self) -> dict[str, Any]:
        turn = await self.scheduler.poll()
        if turn is None:
            return dict(WAITING)
        return turn.to_wire()

    def stop(self) -> dict[str, str]:
        return self.scheduler.stop()

    def acknowledge(self, turn_number: int | None = None) -> dict[str, Any]:
        acknowledged = self.scheduler.acknowledge(turn_number)
        return {"status": "acknowledged", "lastAcknowledged": acknowledged}

    def status(self) -> dict[str, Any]:
        status = self.scheduler.status()
        return {
            "isActive": status["is_active"],
            "turnCount": status["turn_count"],
            "phase": status["phase"],
            "currentSpeaker": status["current_speaker"],
            "lastAcknowledged": status["last_acknowledged"],
        }


class ConversationEngine:
    """Owns one scheduler and its collaborators, built from Settings."""

    def __init__(self, backend: GenerationBackend, source: ContextSource, scheduler: TurnScheduler):
        self.backend = backend
        self.source = source
        self.scheduler = scheduler
        self.gateway = PollGateway(scheduler)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        backend: GenerationBackend | None = None,
        source: ContextSource | None = None,
    ) -> "ConversationEngine":
        """Wire backend, context source, history, lock and scheduler from settings.

        ``backend`` and ``source`` override the configured collaborators.
        """
        backend = backend or create_backend(settings.llm)
        source = source or build_source(settings)
        conversation = settings.conversation

        history = HistoryLedger(
            max_entries=conversation.history_max_entries,
            retain_entries=conversation.history_retain_entries,
        )
        lock = ContextLock(source, timeout_seconds=conversation.context_timeout_seconds)
        scheduler = TurnScheduler(
            backend=backend,
            context_lock=lock,
            history=history,
            personas=load_personas(get_personas_dir()),
            initial_speaker=conversation.initial_speaker,
            prompt_window=conversation.prompt_window,
            auto_start=conversation.auto_start,
        )
        logger.debug(f"Engine wired with {type(backend).__name__} and {type(source).__name__}")
        return cls(backend=backend, source=source, scheduler=scheduler)

    async def close(self) -> None:
        """Let in-flight generation finish, then release network clients."""
        self.scheduler.stop()
        await self.scheduler.drain()
        self.backend.close()
        if isinstance(self.source, FeedContextSource):
            self.source.close()


def build_source(settings: Settings) -> ContextSource:
    """Build the context source selected by ``settings.feed.source``."""
    feed = settings.feed
    if feed.source == "static":
        return StaticContextSource(feed.static_items)

    store = PostStore(feed.database_path or get_database_path())
    return FeedContextSource(
        store=store,
        api_base=feed.api_base,
        site_url=feed.site_url,
        communities=feed.communities,
        fetch_interval_seconds=feed.fetch_interval_seconds,
    )
