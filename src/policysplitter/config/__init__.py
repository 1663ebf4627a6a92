"""
policy-splitter configuration.

Pydantic-based settings read from environment variables (POLICYSPLITTER_*)
and an optional .env file.
"""

from policysplitter.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
