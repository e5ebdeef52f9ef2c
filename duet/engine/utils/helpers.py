"""Path helpers for Duet."""

from pathlib import Path


def get_project_root() -> Path:
    """Return absolute project root path."""
    return Path(__file__).resolve().parents[3]


def get_config_dir() -> Path:
    """Return absolute path to the project `config/` directory."""
    return get_project_root() / "config"


def get_personas_dir() -> Path:
    """Return absolute path to config/personas (persona prompt overrides)."""
    return get_config_dir() / "personas"
