"""Flag recorder - audit trail of detected safety triggers.

Every submission that trips the safety lexicon leaves one record here:
who, which entry, which phrases, when, and whether it was acknowledged.
Records outlive the crisis modal and are reviewed by administrators.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from dailyvoices.shared.errors import AuditWriteError, FlagNotFoundError, RepositoryError
from dailyvoices.shared.models import ContentSurface, FlaggedEntryRecord
from dailyvoices.shared.utils import hash_user_id
from .flag_repository import FlagRepository, InMemoryFlagRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FlaggedUserSummary:
    """Administrative roll-up of one user's flags."""
    user_id: str
    flag_count: int
    open_count: int
    last_flagged_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "flag_count": self.flag_count,
            "open_count": self.open_count,
            "last_flagged_at": self.last_flagged_at.isoformat(),
        }


class FlagRecorder:
    """Creates, dismisses and lists flagged-entry records."""

    def __init__(self, repository: Optional[FlagRepository] = None):
        """Initialize recorder.

        Args:
            repository: Storage backend (defaults to in-memory)
        """
        self.repository = repository or InMemoryFlagRepository()

        logger.info(
            "FLAG_RECORDER_INITIALIZED",
            extra={"backend": type(self.repository).__name__}
        )

    def record_flag(
        self,
        user_id: str,
        entry_id: str,
        matched_keywords: Sequence[str],
        surface: Optional[ContentSurface] = None,
    ) -> str:
        """Persist a flagged-entry record.

        Args:
            user_id: Author of the flagged content
            entry_id: Opaque reference to the journal entry, message or post
            matched_keywords: Trigger phrases found in the content
            surface: Where the content was written

        Returns:
            The new flag_id

        Raises:
            ValueError: If user_id, entry_id or matched_keywords is empty
            AuditWriteError: If the backend write fails
        """
        if not user_id or not entry_id:
            raise ValueError("user_id and entry_id are required")
        keywords = [k for k in matched_keywords if k]
        if not keywords:
            raise ValueError("matched_keywords must not be empty")

        record = FlaggedEntryRecord(
            flag_id=f"flag_{uuid.uuid4().hex[:16]}",
            user_id=user_id,
            entry_id=entry_id,
            matched_keywords=keywords,
            surface=surface,
        )

        try:
            self.repository.add(record)
        except RepositoryError as e:
            logger.critical(
                "FLAG_RECORD_FAILED",
                extra={
                    "flag_id": record.flag_id,
                    "user_id_hash": hash_user_id(user_id),
                    "error": str(e),
                    "action": "MANUAL_REVIEW_REQUIRED",
                }
            )
            if isinstance(e, AuditWriteError):
                raise
            raise AuditWriteError(str(e))

        logger.warning(
            "FLAG_RECORDED",
            extra={
                "flag_id": record.flag_id,
                "user_id_hash": hash_user_id(user_id),
                "surface": surface.value if surface else None,
                "keyword_count": len(keywords),
            }
        )
        return record.flag_id

    def dismiss_flag(self, flag_id: str) -> None:
        """Mark a flag as acknowledged. Dismissing twice is harmless.

        Raises:
            FlagNotFoundError: If no record has this id
        """
        record = self.repository.mark_dismissed(flag_id)
        logger.info(
            "FLAG_DISMISSED",
            extra={
                "flag_id": flag_id,
                "user_id_hash": hash_user_id(record.user_id),
            }
        )

    def get_flag(self, flag_id: str) -> FlaggedEntryRecord:
        """Raises FlagNotFoundError for unknown ids."""
        record = self.repository.get(flag_id)
        if record is None:
            raise FlagNotFoundError(f"Flag not found: {flag_id}")
        return record

    def list_flags(
        self,
        user_id: Optional[str] = None,
        include_dismissed: bool = True,
    ) -> List[FlaggedEntryRecord]:
        records = self.repository.list(user_id=user_id)
        if not include_dismissed:
            records = [r for r in records if not r.dismissed]
        return records

    def list_flagged_users(self) -> List[FlaggedUserSummary]:
        """One summary per flagged user, most recently flagged first."""
        by_user: Dict[str, List[FlaggedEntryRecord]] = {}
        for record in self.repository.list():
            by_user.setdefault(record.user_id, []).append(record)

        summaries = [
            FlaggedUserSummary(
                user_id=user_id,
                flag_count=len(records),
                open_count=sum(1 for r in records if not r.dismissed),
                last_flagged_at=max(r.timestamp for r in records),
            )
            for user_id, records in by_user.items()
        ]
        return sorted(summaries, key=lambda s: s.last_flagged_at, reverse=True)
