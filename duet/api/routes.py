"""HTTP routes for the conversation engine and the feed it discusses."""

from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Body, HTTPException, Query

from duet.api.schemas import (
    AckPayload,
    AckRequest,
    CommandPayload,
    ContextItemPayload,
    StatusPayload,
    TurnPayload,
    WaitingPayload,
)
from duet.engine.errors import ContextSourceFailure
from duet.engine.gateway import ConversationEngine
from duet.engine.sources import FeedContextSource
from duet.engine.utils.logging import get_logger


logger = get_logger("duet")

router = APIRouter()
feed_router = APIRouter(prefix="/feed")

_engine: Optional[ConversationEngine] = None


def configure_engine(engine: Optional[ConversationEngine]) -> None:
    """Inject the engine from the host app."""
    global _engine
    _engine = engine


def _require_engine() -> ConversationEngine:
    if _engine is None:
        raise HTTPException(status_code=500, detail="Conversation engine not configured")
    return _engine


def _require_feed() -> FeedContextSource:
    engine = _require_engine()
    if not isinstance(engine.source, FeedContextSource):
        raise HTTPException(status_code=404, detail="feed source not enabled")
    return engine.source


@router.post("/start", response_model=CommandPayload)
async def start_conversation():
    engine = _require_engine()
    return await engine.gateway.start()


@router.get(
    "/next",
    response_model=Union[TurnPayload, WaitingPayload],
    response_model_exclude_none=True,
)
async def next_turn():
    engine = _require_engine()
    return await engine.gateway.next()


@router.get("/status", response_model=StatusPayload)
async def conversation_status():
    engine = _require_engine()
    return engine.gateway.status()


@router.post("/stop", response_model=CommandPayload)
async def stop_conversation():
    engine = _require_engine()
    return engine.gateway.stop()


@router.post("/ack", response_model=AckPayload)
async def acknowledge_turn(payload: Optional[AckRequest] = Body(default=None)):
    engine = _require_engine()
    turn_number = payload.turnNumber if payload else None
    return engine.gateway.acknowledge(turn_number)


# Feed APIs
@feed_router.get("/posts", response_model=List[ContextItemPayload])
def feed_posts(community: str = Query("general", min_length=1)):
    feed = _require_feed()
    try:
        items = feed.fetch_posts(community)
    except ContextSourceFailure as exc:
        logger.warning(str(exc))
        raise HTTPException(status_code=502, detail="failed to fetch posts")
    return [item.to_dict() for item in items]


@feed_router.get("/latest", response_model=Optional[ContextItemPayload])
def feed_latest():
    feed = _require_feed()
    try:
        item = feed.fetch_current()
    except ContextSourceFailure as exc:
        logger.warning(str(exc))
        raise HTTPException(status_code=502, detail="failed to get latest post")
    return item.to_dict() if item else None


@feed_router.post("/refresh", response_model=Optional[ContextItemPayload])
def feed_refresh():
    feed = _require_feed()
    try:
        item = feed.advance()
    except ContextSourceFailure as exc:
        logger.warning(str(exc))
        raise HTTPException(status_code=502, detail="failed to refresh")
    return item.to_dict() if item else None


@feed_router.get("/context")
def feed_context():
    feed = _require_feed()
    return {"context": feed.context_line()}


@feed_router.get("/stats")
def feed_stats() -> Dict[str, Any]:
    feed = _require_feed()
    return feed.stats()


@feed_router.post("/scrape-all")
def feed_scrape_all() -> Dict[str, Any]:
    feed = _require_feed()
    logger.info("Starting full scrape of all communities")
    total = feed.scrape_all()
    stats = feed.stats()
    return {
        "message": f"Scraped {total} posts from all communities",
        "totalScraped": total,
        "totalInDb": stats["totalPosts"],
    }


router.include_router(feed_router)
