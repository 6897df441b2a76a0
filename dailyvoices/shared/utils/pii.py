"""Identifier hashing for logs.

User ids and free text written by users never reach the logs in the clear.
Ids are salted and hashed; text is reduced to a short fingerprint so two
log lines about the same entry can still be correlated.
"""
import hashlib
import logging
from typing import Optional

logger = logging.getLogger(__name__)

MIN_SALT_LENGTH = 32

_salt: Optional[str] = None
_unsalted_warning_logged = False


def configure_pii_salt(salt: str) -> None:
    """Set the salt used by hash_user_id.

    Call once at service startup.

    Raises:
        ValueError: If the salt is shorter than MIN_SALT_LENGTH
    """
    global _salt
    if not salt or len(salt) < MIN_SALT_LENGTH:
        logger.critical(
            "PII_SALT_CONFIGURATION_FAILED",
            extra={"min_length": MIN_SALT_LENGTH},
        )
        raise ValueError(f"PII salt must be at least {MIN_SALT_LENGTH} characters")

    _salt = salt
    logger.info("PII_SALT_CONFIGURED", extra={"salt_length": len(salt)})


def hash_user_id(user_id: str) -> str:
    """Return a salted SHA-256 digest of a user id, safe for logging.

    Without a configured salt the digest is unsalted and a one-time
    warning is logged.
    """
    global _unsalted_warning_logged
    if _salt is None:
        if not _unsalted_warning_logged:
            logger.warning("PII_SALT_NOT_CONFIGURED", extra={"action": "hashing_unsalted"})
            _unsalted_warning_logged = True
        salted = str(user_id)
    else:
        salted = f"{_salt}{user_id}"
    return hashlib.sha256(salted.encode("utf-8")).hexdigest()


def fingerprint_text(text: str) -> str:
    """Short content fingerprint (first 16 hex chars of SHA-256)."""
    return hashlib.sha256((text or "").encode("utf-8")).hexdigest()[:16]
