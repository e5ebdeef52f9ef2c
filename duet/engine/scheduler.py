"""Turn scheduler for the two-speaker conversation loop.

The scheduler owns the alternating-speaker state machine and generates one turn
ahead of the consumer (lookahead depth 1). It runs on an asyncio event loop:
poll() never waits on the backend except in the IDLE_NO_PENDING recovery path,
and blocking backend and context-source calls are pushed to worker threads with
asyncio.to_thread so the loop keeps serving polls.

Phases (derived from SchedulerState):
    IDLE_NO_PENDING -> GENERATING       start(), or poll() with nothing buffered
    GENERATING      -> PENDING_READY    generation finished
    PENDING_READY   -> GENERATING       poll() delivered the buffered turn

Example usage:
    scheduler = TurnScheduler(backend=backend, context_lock=lock, history=HistoryLedger())
    await scheduler.start()
    turn = await scheduler.poll()  # None while the first turn is still generating
"""

from __future__ import annotations

import asyncio
import random
from typing import Any

from duet.engine.backends.base import GenerationBackend
from duet.engine.context_lock import ContextLock
from duet.engine.errors import GenerationFailure, NoLockedContext
from duet.engine.history import HistoryLedger
from duet.engine.personas import DEFAULT_PERSONAS, Persona, render_context
from duet.engine.types import ContextItem, HistoryEntry, SchedulerPhase, SchedulerState, Speaker, Turn
from duet.engine.utils.logging import get_logger
from duet.engine.utils.text import clean_response


logger = get_logger("duet")


class TurnScheduler:
    """Alternating-speaker scheduler with single-flight lookahead generation.

    At most one generation runs at a time. ``state.is_generating`` is the mutual
    exclusion flag: it is set synchronously before the generation task is created,
    and any request to generate while it is set is dropped, not queued.
    """

    def __init__(
        self,
        backend: GenerationBackend,
        context_lock: ContextLock,
        history: HistoryLedger,
        personas: dict[Speaker, Persona] | None = None,
        initial_speaker: Speaker = Speaker.A,
        prompt_window: int = 20,
        auto_start: bool = True,
        rng: random.Random | None = None,
    ):
        """Initialize the scheduler.

        Args:
            backend: Generation backend; called from a worker thread.
            context_lock: Lock guarding the on-screen context item.
            history: Rolling transcript used to build prompts.
            personas: Persona per speaker; defaults to the built-in pair.
            initial_speaker: Identity that speaks first after start().
            prompt_window: Number of newest history entries sent with each prompt.
            auto_start: Start a conversation when polled while inactive.
            rng: Random source for fallback line selection.
        """
        self.backend = backend
        self.context_lock = context_lock
        self.history = history
        self.personas = personas or dict(DEFAULT_PERSONAS)
        self.initial_speaker = initial_speaker
        self.prompt_window = prompt_window
        self.auto_start = auto_start
        self.rng = rng or random.Random()
        self.state = SchedulerState(current_speaker=initial_speaker)
        self._task: asyncio.Task | None = None

    @property
    def phase(self) -> SchedulerPhase:
        return self.state.phase

    @property
    def speaker_labels(self) -> list[str]:
        return [persona.name for persona in self.personas.values()]

    async def start(self) -> dict[str, str]:
        """Reset everything and begin generating the first turn.

        An in-flight generation from a previous session is allowed to finish first
        and its result is discarded.
        """
        await self.drain()

        self.state = SchedulerState(current_speaker=self.initial_speaker, is_active=True)
        self.history.clear()
        self.context_lock.reset()
        logger.info("Conversation started")

        self._schedule_generation(bootstrap=True)
        return {"status": "started"}

    def stop(self) -> dict[str, str]:
        """Mark the conversation inactive; an in-flight generation still completes."""
        self.state.is_active = False
        logger.info("Conversation stopped")
        return {"status": "stopped"}

    async def poll(self) -> Turn | None:
        """Return the next turn if one is ready, otherwise None.

        PENDING_READY: hand over the buffered turn and start the lookahead generation.
        GENERATING: return None without side effects.
        IDLE_NO_PENDING: run one generation inline and return its turn.
        """
        if not self.state.is_active:
            if not self.auto_start:
                return None
            logger.debug("Poll on inactive conversation; starting")
            await self.start()

        phase = self.state.phase
        if phase is SchedulerPhase.GENERATING:
            return None

        if phase is SchedulerPhase.IDLE_NO_PENDING:
            logger.debug("Poll found nothing buffered; generating inline")
            if self._schedule_generation():
                await self._task
            if self.state.pending_turn is None:
                return None

        return self._deliver_pending()

    def acknowledge(self, turn_number: int | None = None) -> int:
        """Record that the consumer finished presenting a turn.

        Only advances the acknowledgement watermark; stale, repeated or future turn
        numbers are ignored.

        Returns:
            int: The highest acknowledged turn number.
        """
        target = self.state.last_delivered if turn_number is None else turn_number
        if self.state.last_acknowledged < target <= self.state.last_delivered:
            self.state.last_acknowledged = target
            logger.debug(f"Turn {target} acknowledged")
        return self.state.last_acknowledged

    def status(self) -> dict[str, Any]:
        return {
            "is_active": self.state.is_active,
            "turn_count": self.state.turn_count,
            "phase": self.state.phase.value,
            "current_speaker": self.state.current_speaker.value,
            "last_acknowledged": self.state.last_acknowledged,
        }

    async def drain(self) -> None:
        """Wait until no generation is in flight."""
        while self._task is not None and not self._task.done():
            await self._task

    def _deliver_pending(self) -> Turn:
        turn = self.state.pending_turn
        self.state.pending_turn = None
        self.state.last_delivered = turn.turn_number
        logger.debug(f"Delivering turn {turn.turn_number}")
        if self.state.is_active:
            self._schedule_generation()
        return turn

    def _schedule_generation(self, bootstrap: bool = False) -> bool:
        """Start a generation task unless one is already running.

        Returns:
            bool: True if a task was created, False if the request was a no-op.
        """
        if self.state.is_generating:
            logger.debug("Generation already in flight; request ignored")
            return False
        self.state.is_generating = True
        self._task = asyncio.create_task(self._run_generation(self.state, bootstrap))
        return True

    async def _run_generation(self, state: SchedulerState, bootstrap: bool) -> None:
        try:
            if bootstrap:
                await asyncio.to_thread(self.context_lock.bootstrap_lock)
            await self._generate(state)
        except Exception:
            logger.exception("Turn generation failed unexpectedly")
        finally:
            state.is_generating = False

    async def _locked_context(self) -> ContextItem | None:
        try:
            return self.context_lock.current_locked()
        except NoLockedContext:
            logger.warning("No locked context; bootstrapping before generating")

        item = await asyncio.to_thread(self.context_lock.bootstrap_lock)
        if item is None:
            logger.warning("Context unavailable; generating with placeholder context")
        return item

    async def _call_backend(self, persona: Persona, history_text: str, context_text: str) -> str:
        try:
            return await asyncio.to_thread(self.backend.generate, persona, history_text, context_text)
        except GenerationFailure as exc:
            logger.warning(f"Generation failed for {persona.name}; using fallback line: {exc}")
        except Exception:
            logger.exception(f"Backend raised unexpectedly for {persona.name}; using fallback line")
        return persona.fallback(self.rng)

    async def _generate(self, state: SchedulerState) -> None:
        is_first_turn = state.turn_count == 0

        locked_item = await self._locked_context()
        timed_out = not is_first_turn and self.context_lock.is_timed_out()

        just_changed = self.context_lock.consume_just_changed()
        context_text = render_context(locked_item, just_changed)
        history_text = self.history.window_for_prompt(self.prompt_window)

        persona = self.personas[state.current_speaker]
        logger.debug(
            f"Turn {state.turn_count + 1}: {persona.name} on "
            f"{locked_item.title[:50] if locked_item else '<no context>'}"
            f"{' (just changed)' if just_changed else ''}"
        )
        raw_text = await self._call_backend(persona, history_text, context_text)
        text = clean_response(raw_text, self.speaker_labels)

        new_context: ContextItem | None = None
        if is_first_turn:
            new_context = locked_item
        elif timed_out:
            logger.info("Context lock timed out; advancing")
            new_context = await asyncio.to_thread(self.context_lock.advance)

        if text:
            self.history.append(HistoryEntry(speaker_label=persona.name, text=text))

        state.turn_count += 1
        state.pending_turn = Turn(
            speaker=state.current_speaker,
            speaker_label=persona.name,
            text=text,
            turn_number=state.turn_count,
            new_context=new_context,
        )
        state.current_speaker = state.current_speaker.other
        logger.info(
            f"Turn {state.turn_count} ready ({persona.name}, "
            f"{'new context' if new_context else 'same context'})"
        )
