import asyncio
import threading
import unittest

from duet.engine.backends.base import GenerationBackend
from duet.engine.context_lock import ContextLock
from duet.engine.errors import ContextSourceFailure, GenerationFailure
from duet.engine.history import HistoryLedger
from duet.engine.personas import AGENT_1, AGENT_2, CONTEXT_CHANGED_NOTE, NO_CONTEXT_TEXT
from duet.engine.scheduler import TurnScheduler
from duet.engine.sources.base import ContextSource
from duet.engine.sources.static import StaticContextSource
from duet.engine.types import ContextItem, SchedulerPhase, SchedulerState, Speaker


ITEM_X = ContextItem(url="https://example.test/post/x", author="alpha", title="Post X", body="x body")
ITEM_Y = ContextItem(url="https://example.test/post/y", author="beta", title="Post Y", body="y body")
ITEM_Z = ContextItem(url="https://example.test/post/z", author="gamma", title="Post Z", body="z body")


class _Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class _ScriptedBackend(GenerationBackend):
    def __init__(self, replies=None, fail_on=()):
        self.calls = []
        self.replies = list(replies or [])
        self.fail_on = set(fail_on)

    def generate(self, persona, history_text, context_text):
        self.calls.append(
            {"persona": persona.name, "history": history_text, "context": context_text}
        )
        call_number = len(self.calls)
        if call_number in self.fail_on:
            raise GenerationFailure("backend down")
        if self.replies:
            return self.replies.pop(0)
        return f"line {call_number}"


class _GatedBackend(_ScriptedBackend):
    def __init__(self):
        super().__init__()
        self.release = threading.Event()

    def generate(self, persona, history_text, context_text):
        self.release.wait(timeout=5)
        return super().generate(persona, history_text, context_text)


class _FailingSource(ContextSource):
    def fetch_current(self, category=None):
        raise ContextSourceFailure("feed offline")

    def advance(self):
        raise ContextSourceFailure("feed offline")


def _scheduler(backend=None, source=None, timeout=120.0, **kwargs):
    clock = _Clock()
    backend = backend or _ScriptedBackend()
    source = source if source is not None else StaticContextSource([ITEM_X, ITEM_Y, ITEM_Z])
    lock = ContextLock(source, timeout_seconds=timeout, clock=clock)
    scheduler = TurnScheduler(backend=backend, context_lock=lock, history=HistoryLedger(), **kwargs)
    return scheduler, backend, clock


async def _next_turn(scheduler):
    await scheduler.drain()
    return await scheduler.poll()


class TestSchedulerScenarios(unittest.IsolatedAsyncioTestCase):
    async def test_initial_state_is_idle_and_inactive(self):
        # Verifies a fresh scheduler has not started anything.
        scheduler, backend, _ = _scheduler()
        self.assertIs(scheduler.phase, SchedulerPhase.IDLE_NO_PENDING)
        self.assertFalse(scheduler.state.is_active)
        self.assertEqual(backend.calls, [])

    async def test_first_two_turns(self):
        # Verifies turn 1 carries the bootstrap item and turn 2 does not.
        scheduler, backend, _ = _scheduler()

        result = await scheduler.start()
        self.assertEqual(result, {"status": "started"})
        self.assertIs(scheduler.phase, SchedulerPhase.GENERATING)
        self.assertIsNone(await scheduler.poll())

        turn1 = await _next_turn(scheduler)
        self.assertEqual(turn1.turn_number, 1)
        self.assertEqual(turn1.speaker, Speaker.A)
        self.assertEqual(turn1.speaker_label, "Agent 1")
        self.assertEqual(turn1.new_context, ITEM_X)

        turn2 = await _next_turn(scheduler)
        self.assertEqual(turn2.turn_number, 2)
        self.assertEqual(turn2.speaker, Speaker.B)
        self.assertIsNone(turn2.new_context)
        self.assertEqual(backend.calls[1]["history"], "Agent 1: line 1")
        self.assertEqual(backend.calls[1]["persona"], "Agent 2")

    async def test_backend_failure_substitutes_fallback(self):
        # Verifies a failed generation still yields a numbered turn with a fallback line.
        scheduler, _, _ = _scheduler(backend=_ScriptedBackend(fail_on={3}))
        await scheduler.start()

        turns = [await _next_turn(scheduler) for _ in range(4)]

        self.assertEqual([t.turn_number for t in turns], [1, 2, 3, 4])
        self.assertEqual(turns[2].speaker, Speaker.A)
        self.assertIn(turns[2].text, AGENT_1.fallback_lines)
        self.assertEqual(turns[3].text, "line 4")
        self.assertIn(f"Agent 1: {turns[2].text}", scheduler.history.window_for_prompt())

    async def test_timeout_advances_context_once(self):
        # Verifies the first turn generated after the timeout carries the next item, and only that one.
        scheduler, backend, clock = _scheduler()
        await scheduler.start()

        turns = [await _next_turn(scheduler) for _ in range(3)]
        await scheduler.drain()  # turn 4 generated before the timeout
        clock.now = 121.0
        turns.append(await scheduler.poll())
        turns.append(await _next_turn(scheduler))
        turns.append(await _next_turn(scheduler))

        self.assertEqual([t.turn_number for t in turns], [1, 2, 3, 4, 5, 6])
        self.assertEqual(turns[0].new_context, ITEM_X)
        self.assertIsNone(turns[3].new_context)
        self.assertEqual(turns[4].new_context, ITEM_Y)
        self.assertNotEqual(turns[4].new_context, ITEM_X)
        self.assertIsNone(turns[5].new_context)

        # Turn 5 was generated about X; turn 6 sees Y with the change note.
        self.assertIn("Post X", backend.calls[4]["context"])
        self.assertNotIn(CONTEXT_CHANGED_NOTE, backend.calls[4]["context"])
        self.assertIn("Post Y", backend.calls[5]["context"])
        self.assertIn(CONTEXT_CHANGED_NOTE, backend.calls[5]["context"])

    async def test_timeout_with_single_item_still_notes_change(self):
        # Verifies a turn that resyncs the display is followed by a prompt with the change note.
        scheduler, backend, clock = _scheduler(source=StaticContextSource([ITEM_X]))
        await scheduler.start()

        turns = [await _next_turn(scheduler) for _ in range(2)]
        await scheduler.drain()  # turn 3 generated before the timeout
        clock.now = 121.0
        turns.append(await scheduler.poll())
        turns.append(await _next_turn(scheduler))
        turns.append(await _next_turn(scheduler))

        self.assertEqual([t.turn_number for t in turns], [1, 2, 3, 4, 5])
        self.assertEqual(turns[3].new_context, ITEM_X)
        self.assertNotIn(CONTEXT_CHANGED_NOTE, backend.calls[3]["context"])
        self.assertIn(CONTEXT_CHANGED_NOTE, backend.calls[4]["context"])
        self.assertIsNone(turns[4].new_context)

    async def test_empty_text_is_delivered_but_not_recorded(self):
        # Verifies a persona that "passes" still produces a turn without touching history.
        backend = _ScriptedBackend(replies=["hello there", "<think>nothing to add</think>", "back to you"])
        scheduler, _, _ = _scheduler(backend=backend)
        await scheduler.start()

        turns = [await _next_turn(scheduler) for _ in range(3)]

        self.assertEqual([t.text for t in turns], ["hello there", "", "back to you"])
        self.assertEqual(turns[2].turn_number, 3)
        self.assertEqual(
            [entry.text for entry in scheduler.history.entries()],
            ["hello there", "back to you"],
        )

    async def test_echoed_labels_are_stripped(self):
        # Verifies model artifacts are removed before the text is delivered.
        backend = _ScriptedBackend(replies=["Agent 1: **Wow**, look at that [NEXT_POST]"])
        scheduler, _, _ = _scheduler(backend=backend)
        await scheduler.start()

        turn = await _next_turn(scheduler)

        self.assertEqual(turn.text, "Wow, look at that")


class TestSchedulerProperties(unittest.IsolatedAsyncioTestCase):
    async def test_turn_numbers_strictly_increase_and_speakers_alternate(self):
        # Verifies delivered turns have no gaps or repeats and alternate speakers.
        scheduler, _, _ = _scheduler(initial_speaker=Speaker.B)
        await scheduler.start()

        delivered = []
        for _ in range(60):
            turn = await scheduler.poll()
            if turn is not None:
                delivered.append(turn)
            else:
                await scheduler.drain()

        numbers = [t.turn_number for t in delivered]
        self.assertEqual(numbers, list(range(1, len(delivered) + 1)))
        self.assertGreater(len(delivered), 10)
        expected = [Speaker.B if i % 2 == 0 else Speaker.A for i in range(len(delivered))]
        self.assertEqual([t.speaker for t in delivered], expected)

    async def test_context_advances_once_per_timeout_period(self):
        # Verifies zero advances before the timeout and exactly one per period after it.
        scheduler, _, clock = _scheduler(timeout=120.0)
        await scheduler.start()
        await scheduler.drain()

        delivered = []
        for _ in range(40):
            delivered.append(await scheduler.poll())
            clock.now += 10.0
            await scheduler.drain()

        advanced = [t.turn_number for t in delivered if t.new_context is not None and t.turn_number > 1]
        self.assertEqual(advanced, [13, 25, 37])

    async def test_concurrent_polls_never_create_two_generations(self):
        # Verifies reentrant generation requests are dropped while one is in flight.
        backend = _GatedBackend()
        scheduler, _, _ = _scheduler(backend=backend)
        await scheduler.start()

        results = await asyncio.gather(*(scheduler.poll() for _ in range(5)))
        self.assertEqual(results, [None] * 5)
        self.assertFalse(scheduler._schedule_generation())

        backend.release.set()
        turn1 = await _next_turn(scheduler)
        results = await asyncio.gather(*(scheduler.poll() for _ in range(5)))
        self.assertEqual(results, [None] * 5)
        turn2 = await _next_turn(scheduler)
        await scheduler.drain()

        self.assertEqual((turn1.turn_number, turn2.turn_number), (1, 2))
        self.assertEqual(len(backend.calls), 3)  # turns 1, 2 and the lookahead for 3
        self.assertIsNotNone(scheduler.state.pending_turn)

    async def test_locked_context_is_stable_during_generation(self):
        # Verifies every read of the lock during one generation returns the same item.
        reads = []

        class _ReadingBackend(_ScriptedBackend):
            def generate(self, persona, history_text, context_text):
                reads.append((lock.current_locked(), lock.current_locked()))
                return super().generate(persona, history_text, context_text)

        scheduler, _, clock = _scheduler(backend=_ReadingBackend())
        lock = scheduler.context_lock
        await scheduler.start()
        for _ in range(6):
            clock.now += 70.0
            await _next_turn(scheduler)

        self.assertTrue(reads)
        for first, second in reads:
            self.assertEqual(first, second)


class TestSchedulerRecovery(unittest.IsolatedAsyncioTestCase):
    async def test_idle_poll_generates_inline_and_bootstraps_lock(self):
        # Verifies IDLE_NO_PENDING polls generate synchronously and recover a missing lock.
        scheduler, backend, _ = _scheduler()
        scheduler.state = SchedulerState(is_active=True)

        turn = await scheduler.poll()

        self.assertIsNotNone(turn)
        self.assertEqual(turn.turn_number, 1)
        self.assertEqual(turn.new_context, ITEM_X)
        self.assertIn("Post X", backend.calls[0]["context"])
        self.assertIs(scheduler.phase, SchedulerPhase.GENERATING)

    async def test_empty_source_uses_placeholder(self):
        # Verifies generation proceeds with placeholder context when no item exists.
        scheduler, backend, _ = _scheduler(source=StaticContextSource([]))
        await scheduler.start()

        turn = await _next_turn(scheduler)

        self.assertEqual(turn.turn_number, 1)
        self.assertIsNone(turn.new_context)
        self.assertEqual(backend.calls[0]["context"], NO_CONTEXT_TEXT)

    async def test_failing_source_does_not_stall(self):
        # Verifies context source failures degrade to a placeholder instead of failing turns.
        scheduler, backend, clock = _scheduler(source=_FailingSource())
        await scheduler.start()

        turn1 = await _next_turn(scheduler)
        clock.now = 500.0
        turn2 = await _next_turn(scheduler)
        turn3 = await _next_turn(scheduler)

        self.assertEqual([turn1.turn_number, turn2.turn_number, turn3.turn_number], [1, 2, 3])
        self.assertIsNone(turn3.new_context)
        self.assertTrue(all(call["context"] == NO_CONTEXT_TEXT for call in backend.calls))

    async def test_stop_lets_inflight_generation_finish(self):
        # Verifies stop() only flips the active flag and does not abort generation.
        scheduler, _, _ = _scheduler(auto_start=False)
        await scheduler.start()

        self.assertEqual(scheduler.stop(), {"status": "stopped"})
        await scheduler.drain()

        self.assertFalse(scheduler.state.is_active)
        self.assertIsNotNone(scheduler.state.pending_turn)
        self.assertIsNone(await scheduler.poll())

    async def test_poll_after_stop_restarts_when_auto_start(self):
        # Verifies polling an inactive conversation starts a fresh one.
        scheduler, _, _ = _scheduler()
        await scheduler.start()
        await _next_turn(scheduler)
        await _next_turn(scheduler)
        scheduler.stop()

        self.assertIsNone(await scheduler.poll())
        self.assertTrue(scheduler.state.is_active)
        turn = await _next_turn(scheduler)

        self.assertEqual(turn.turn_number, 1)
        self.assertEqual(turn.speaker, Speaker.A)

    async def test_restart_resets_history_and_counters(self):
        # Verifies start() while active restarts from scratch.
        scheduler, backend, _ = _scheduler()
        await scheduler.start()
        for _ in range(3):
            await _next_turn(scheduler)

        await scheduler.start()
        turn = await _next_turn(scheduler)

        self.assertEqual(turn.turn_number, 1)
        self.assertEqual(turn.new_context, ITEM_X)
        self.assertEqual(len(scheduler.history), 1)
        self.assertEqual(backend.calls[-1]["history"], "(conversation just started)")

    async def test_acknowledge_is_idempotent(self):
        # Verifies acknowledgements only move forward and tolerate repeats.
        scheduler, _, _ = _scheduler()
        await scheduler.start()
        await _next_turn(scheduler)
        await _next_turn(scheduler)

        self.assertEqual(scheduler.acknowledge(), 2)
        self.assertEqual(scheduler.acknowledge(), 2)
        self.assertEqual(scheduler.acknowledge(1), 2)
        self.assertEqual(scheduler.acknowledge(9), 2)
        self.assertEqual(scheduler.status()["last_acknowledged"], 2)

    async def test_status_reports_progress(self):
        # Verifies status mirrors the scheduler state.
        scheduler, _, _ = _scheduler()
        self.assertEqual(scheduler.status()["is_active"], False)
        await scheduler.start()
        await _next_turn(scheduler)
        await scheduler.drain()

        status = scheduler.status()

        self.assertTrue(status["is_active"])
        self.assertEqual(status["turn_count"], 2)
        self.assertEqual(status["phase"], "pending_ready")
        self.assertEqual(status["current_speaker"], "A")


if __name__ == "__main__":
    unittest.main()
