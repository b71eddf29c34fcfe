"""Configuration package."""

from readable_archive.config.settings import Settings, settings

__all__ = ["Settings", "settings"]
