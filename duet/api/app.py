"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from duet.api import routes
from duet.engine.config import Settings
from duet.engine.gateway import ConversationEngine
from duet.engine.utils.logging import get_logger


logger = get_logger("duet")


def create_app(settings: Settings | None = None, engine: ConversationEngine | None = None) -> FastAPI:
    """Build the HTTP app around an engine.

    Either ``engine`` is given, or one is wired from ``settings``. The engine is
    closed when the app shuts down.
    """
    if engine is None:
        if settings is None:
            raise ValueError("create_app needs settings or an engine")
        engine = ConversationEngine.from_settings(settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        routes.configure_engine(engine)
        logger.info("Conversation API ready")
        try:
            yield
        finally:
            await engine.close()
            routes.configure_engine(None)
            logger.info("Conversation API shut down")

    app = FastAPI(title="Duet", lifespan=lifespan)

    # CORS for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(routes.router, prefix="/api")

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app
