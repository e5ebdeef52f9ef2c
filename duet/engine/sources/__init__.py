from duet.engine.sources.base import ContextSource
from duet.engine.sources.feed import FeedContextSource
from duet.engine.sources.static import StaticContextSource

__all__ = [
    "ContextSource",
    "FeedContextSource",
    "StaticContextSource",
]
