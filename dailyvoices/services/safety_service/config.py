"""Safety Service configuration.

Detection behaviour and submission gating are plain frozen dataclasses;
the HTTP handler builds them from environment variables.
"""
from dataclasses import dataclass
from typing import Optional

from dailyvoices.shared.models import ContentSurface, Language


@dataclass(frozen=True)
class SafetyConfig:
    """Configuration for trigger detection."""

    # Lexicon used when a language tag is not recognised
    default_language: Language = Language.EN

    # Scan a second, evasion-normalised view of the text (k1ll, k.i.l.l)
    normalize_evasions: bool = True

    # Let English phrases match simple verb inflections (giving up)
    inflection_matching: bool = True

    # Scans slower than this are logged; keystroke handlers call detect()
    max_scan_latency_ms: float = 1.0

    # Version tracking for audit trail
    detector_version: str = "2026.10.01"


@dataclass(frozen=True)
class SubmissionPolicy:
    """Whether a flagged submission may proceed to persistence.

    The default lets the save go through with the crisis modal shown on
    top. Each surface can override the default.
    """
    block_submission_on_trigger: bool = False
    journal: Optional[bool] = None
    chat: Optional[bool] = None
    community: Optional[bool] = None

    def blocks(self, surface: ContentSurface) -> bool:
        """Return True if a flagged submission on this surface is held."""
        override = getattr(self, surface.value)
        if override is None:
            return self.block_submission_on_trigger
        return override
