"""Configuration package."""

from arbiter.config.settings import Settings, settings

__all__ = ["Settings", "settings"]
