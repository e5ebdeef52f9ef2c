"""Cleanup of raw model output before it becomes a spoken line."""

from __future__ import annotations

import re
from typing import Iterable

_THINK_BLOCK = re.compile(r"<think>.*?</think>", flags=re.DOTALL | re.IGNORECASE)
_DANGLING_THINK = re.compile(r"</?think>", flags=re.IGNORECASE)
_NEXT_POST_TAG = re.compile(r"\[NEXT_POST\]", flags=re.IGNORECASE)
_EMPHASIS = re.compile(r"\*+")

DEFAULT_SPEAKER_LABELS = ("Agent 1", "Agent 2")


def clean_response(text: str | None, speaker_labels: Iterable[str] = DEFAULT_SPEAKER_LABELS) -> str:
    """Strip model artifacts from a generated line.

    Removes <think> blocks, markdown emphasis, agent-issued [NEXT_POST] tags and a
    leading "<label>:" prefix when the model echoed a speaker name.

    Args:
        text: Raw text returned by the generation backend.
        speaker_labels: Labels whose echoed prefix should be removed.

    Returns:
        str: Cleaned text, possibly empty.
    """
    if not text:
        return ""

    cleaned = _THINK_BLOCK.sub("", text)
    cleaned = _DANGLING_THINK.sub("", cleaned)
    cleaned = _NEXT_POST_TAG.sub("", cleaned)
    cleaned = _EMPHASIS.sub("", cleaned)
    cleaned = cleaned.strip()

    labels = [re.escape(label) for label in speaker_labels if label]
    if labels:
        prefix = re.compile(rf"^(?:{'|'.join(labels)})\s*:\s*", flags=re.IGNORECASE)
        cleaned = prefix.sub("", cleaned)

    return cleaned.strip()
