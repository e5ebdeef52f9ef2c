"""Exceptions raised inside the conversation engine.

None of these reach the presentation layer: each one has a local recovery path
in the scheduler or the context lock.
"""


class GenerationFailure(Exception):
    """The generation backend was unreachable or returned an unusable response."""


class NoLockedContext(Exception):
    """The context lock was read before any item was locked."""


class ContextSourceFailure(Exception):
    """The context source could not supply an item."""
