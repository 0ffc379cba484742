"""Configuration package."""

from skilltrace.config.settings import Settings, settings

__all__ = [
    "Settings",
    "settings",
]
