"""Shared utilities for Daily Voices services."""
from .pii import configure_pii_salt, fingerprint_text, hash_user_id

__all__ = ["configure_pii_salt", "fingerprint_text", "hash_user_id"]
