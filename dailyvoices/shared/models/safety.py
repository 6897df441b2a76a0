"""Core enums and records shared by the safety and audit services."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class Language(Enum):
    """Languages with a trigger lexicon."""
    EN = "en"
    JA = "ja"


class ContentSurface(Enum):
    """Places in the app where users write free text."""
    JOURNAL = "journal"
    CHAT = "chat"
    COMMUNITY = "community"


@dataclass
class FlaggedEntryRecord:
    """Audit record for content that tripped the safety lexicon.

    Mutable only through dismissal; records are never hard-deleted here.
    """
    flag_id: str
    user_id: str
    entry_id: str
    matched_keywords: List[str]
    timestamp: datetime = field(default_factory=datetime.utcnow)
    dismissed: bool = False
    surface: Optional[ContentSurface] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses and storage."""
        return {
            "flag_id": self.flag_id,
            "user_id": self.user_id,
            "entry_id": self.entry_id,
            "matched_keywords": list(self.matched_keywords),
            "timestamp": self.timestamp.isoformat(),
            "dismissed": self.dismissed,
            "surface": self.surface.value if self.surface else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FlaggedEntryRecord":
        surface = data.get("surface")
        return cls(
            flag_id=data["flag_id"],
            user_id=data["user_id"],
            entry_id=data["entry_id"],
            matched_keywords=list(data.get("matched_keywords", [])),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            dismissed=bool(data.get("dismissed", False)),
            surface=ContentSurface(surface) if surface else None,
        )
