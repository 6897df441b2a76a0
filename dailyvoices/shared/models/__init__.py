"""Shared domain models for Daily Voices services."""
from .safety import (
    ContentSurface,
    FlaggedEntryRecord,
    Language,
)

__all__ = [
    "ContentSurface",
    "FlaggedEntryRecord",
    "Language",
]
