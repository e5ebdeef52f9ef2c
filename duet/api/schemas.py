"""Wire models for the HTTP surface."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ContextItemPayload(BaseModel):
    url: str
    author: str
    title: str
    body: str
    votes: int = 0
    comments: int = 0
    community: str = "general"
    timestamp: str = "recently"


class TurnPayload(BaseModel):
    """One delivered turn. ``newContext`` is omitted unless the display must change."""
    speaker: str = Field(pattern="^[AB]$")
    speakerName: str
    text: str
    turnNumber: int = Field(ge=1)
    newContext: Optional[ContextItemPayload] = None


class WaitingPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    waiting: bool = True


class StatusPayload(BaseModel):
    isActive: bool
    turnCount: int
    phase: str
    currentSpeaker: str
    lastAcknowledged: int


class CommandPayload(BaseModel):
    status: str


class AckRequest(BaseModel):
    turnNumber: Optional[int] = Field(default=None, ge=1)


class AckPayload(BaseModel):
    status: str
    lastAcknowledged: int
