"""Configuration for the spike-echo service."""

from .settings_model import Settings

VERSION = "1.0.0"


def get_settings(**overrides) -> Settings:
    """Build validated settings from the environment (and ``.env``)."""
    return Settings(**overrides)


__all__ = ["VERSION", "Settings", "get_settings"]
