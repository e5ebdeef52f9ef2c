"""Process-level setup that must run before third-party SDKs are imported."""

from __future__ import annotations

import os


def configure_ollama_endpoint() -> None:
    """Point the ollama SDK at OLLAMA_BASE_URL when it is set.

    The SDK reads OLLAMA_HOST when a client is built without a host, so this has
    to run before any Duet backend is created. An existing OLLAMA_HOST is left
    alone when OLLAMA_BASE_URL is unset.
    """
    base_url = os.getenv("OLLAMA_BASE_URL", "").strip().rstrip("/")
    if base_url:
        os.environ["OLLAMA_HOST"] = base_url
