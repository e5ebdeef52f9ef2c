"""
Entry point for running the Duet conversation server:

    python -m duet

Configuration is loaded from:
1. Environment variables (DUET_* prefix)
2. config/local.toml (if it exists)
3. config/default.toml (default settings)

See .env.example for available environment variable overrides.
"""

from __future__ import annotations

from duet.runtime import configure_ollama_endpoint as _configure_ollama_endpoint

# Configure Ollama endpoint before importing modules that import ollama.
_configure_ollama_endpoint()

import uvicorn

from duet.api.app import create_app
from duet.engine.config import load_settings
from duet.engine.utils.logging import configure_logging, get_logger


logger = get_logger("duet")


def main() -> int:
    """Load settings, wire the engine and serve the HTTP API until interrupted.

    Returns:
        int: Process exit code; 1 on configuration errors.
    """
    try:
        settings = load_settings()
    except (RuntimeError, ValueError) as e:
        logger.error(f"Configuration error: {e}")
        return 1

    configure_logging(debug=settings.conversation.debug)
    app = create_app(settings)

    logger.info(f"Serving on http://{settings.server.host}:{settings.server.port}")
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_level="debug" if settings.conversation.debug else "info",
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
