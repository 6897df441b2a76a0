"""Audit Service: flagged-entry records for detected safety triggers.

Records who wrote what, which phrases matched, and whether the flag was
acknowledged. Records are never hard-deleted here.

Endpoints (handler.py):
- POST /flags - Record a flag
- POST /flags/<flag_id>/dismiss - Acknowledge a flag
- GET /flags - List flags (optionally per user)
- GET /flags/users - Per-user roll-up for administrators
"""

from .flag_recorder import FlagRecorder, FlaggedUserSummary
from .flag_repository import (
    DynamoFlagRepository,
    FlagRepository,
    InMemoryFlagRepository,
    repository_from_env,
)

__all__ = [
    "FlagRecorder",
    "FlaggedUserSummary",
    "FlagRepository",
    "InMemoryFlagRepository",
    "DynamoFlagRepository",
    "repository_from_env",
]
