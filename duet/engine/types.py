from __future__ import annotations
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any


class Speaker(str, Enum):
    """The two conversation identities.

    Attributes:
        A: First speaker; opens the conversation by default.
        B: Second speaker.
    """
    A = "A"
    B = "B"

    @property
    def other(self) -> "Speaker":
        return Speaker.B if self is Speaker.A else Speaker.A


class SchedulerPhase(str, Enum):
    """Phases of the turn scheduler.

    Attributes:
        IDLE_NO_PENDING: Nothing buffered and nothing being generated.
        GENERATING: A generation is in flight; no turn is buffered.
        PENDING_READY: One generated turn is buffered for the next poll.
    """
    IDLE_NO_PENDING = "idle_no_pending"
    GENERATING = "generating"
    PENDING_READY = "pending_ready"


@dataclass(frozen=True)
class ContextItem:
    """A feed item shown on screen and discussed by both speakers.

    Compared structurally: two items with the same fields are the same item.

    Attributes:
        url: Unique identifier of the item.
        author: Author handle.
        title: Item title.
        body: Item body text.
        votes: Upvote counter.
        comments: Comment counter.
        community: Community the item was posted in.
        timestamp: Source-provided creation time, free-form.
    """
    url: str
    author: str = "anonymous"
    title: str = "Untitled"
    body: str = ""
    votes: int = 0
    comments: int = 0
    community: str = "general"
    timestamp: str = "recently"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class HistoryEntry:
    """One line of the rolling transcript used for prompt building."""
    speaker_label: str
    text: str


@dataclass(frozen=True)
class Turn:
    """One delivered utterance.

    Attributes:
        speaker: Identity that spoke.
        speaker_label: Display name of the speaking persona.
        text: Cleaned utterance text; may be empty when the persona passed.
        turn_number: Sequence number starting at 1, strictly increasing.
        new_context: Item the display must switch to, only on bootstrap and advance turns.
    """
    speaker: Speaker
    speaker_label: str
    text: str
    turn_number: int
    new_context: ContextItem | None = None

    def to_wire(self) -> dict[str, Any]:
        """Return the presentation-layer payload; newContext is omitted when unset."""
        payload: dict[str, Any] = {
            "speaker": self.speaker.value,
            "speakerName": self.speaker_label,
            "text": self.text,
            "turnNumber": self.turn_number,
        }
        if self.new_context is not None:
            payload["newContext"] = self.new_context.to_dict()
        return payload


@dataclass
class SchedulerState:
    """Mutable state owned by a single TurnScheduler."""
    current_speaker: Speaker = Speaker.A
    turn_count: int = 0
    is_active: bool = False
    is_generating: bool = False
    pending_turn: Turn | None = None
    last_delivered: int = 0
    last_acknowledged: int = 0

    @property
    def phase(self) -> SchedulerPhase:
        if self.is_generating:
            return SchedulerPhase.GENERATING
        if self.pending_turn is not None:
            return SchedulerPhase.PENDING_READY
        return SchedulerPhase.IDLE_NO_PENDING
