"""Trigger phrase detector.

Runs on every keystroke-driven field change, so it is synchronous, does
no I/O and keeps all compiled patterns from construction time.

Matching is case-insensitive substring containment against the lexicon
for the requested language. Two views of the text are scanned: the plain
lowercased text and an evasion-normalized copy (see text_normalizer).
English phrases also tolerate inflection of their leading word, so the
phrase "give up" is found in "giving up" and reported as "give up".

Any unexpected fault yields a positive, failed result.
"""
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from dailyvoices.shared.errors import DetectionFailure
from dailyvoices.shared.models import Language
from dailyvoices.shared.utils import fingerprint_text
from .config import SafetyConfig
from .lexicon import LEXICONS, LanguageTag, resolve_language
from .text_normalizer import TextNormalizer, get_normalizer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectionResult:
    """Outcome of scanning one piece of text.

    matched_phrases holds distinct lexicon phrases in lexicon order, so the
    same text always yields the same tuple. A failed result is positive
    with no phrases.
    """
    matched: bool
    matched_phrases: Tuple[str, ...] = ()
    language: Language = Language.EN
    failed: bool = False
    detector_version: str = ""
    latency_ms: float = field(default=0.0, compare=False)

    def __post_init__(self):
        if self.matched_phrases and not self.matched:
            raise ValueError("A result with matched phrases must be matched")
        if self.matched and not self.matched_phrases and not self.failed:
            raise ValueError("A matched result needs phrases unless it failed")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "matched": self.matched,
            "matched_phrases": list(self.matched_phrases),
            "language": self.language.value,
            "failed": self.failed,
            "detector_version": self.detector_version,
            "latency_ms": round(self.latency_ms, 3),
        }


def _inflect(word: str) -> str:
    """Regex for a verb and its common inflections (give, giving)."""
    if not word.isalpha() or len(word) < 3:
        return re.escape(word)
    if word.endswith("ie"):
        return re.escape(word[:-2]) + "(?:ie|ies|ied|ying)"
    if word.endswith("e") and not word.endswith("ee"):
        return re.escape(word[:-1]) + "(?:e|es|ed|ing)"
    last = re.escape(word[-1])
    return re.escape(word) + f"(?:s|es|ed|ing|{last}ing|{last}ed)?"


def compile_phrase(phrase: str, language: Language, inflections: bool = True) -> re.Pattern:
    """Compile one lexicon phrase into a search pattern.

    No word boundaries: a phrase matches anywhere in the text, like a
    substring test. Whitespace inside a phrase matches any whitespace run.
    """
    if language is not Language.EN:
        return re.compile(re.escape(phrase))

    words = phrase.split()
    parts = [re.escape(w) for w in words]
    if inflections:
        parts[0] = _inflect(words[0])
    return re.compile(r"\s+".join(parts))


class SafetyDetector:
    """Detects trigger phrases in free text.

    Stateless after construction: detect() reads only its arguments and
    the precompiled patterns.
    """

    def __init__(
        self,
        config: Optional[SafetyConfig] = None,
        normalizer: Optional[TextNormalizer] = None,
    ):
        self.config = config or SafetyConfig()
        self._normalizer = normalizer or get_normalizer()
        self._patterns: Dict[Language, Tuple[Tuple[str, re.Pattern], ...]] = {
            language: tuple(
                (phrase, compile_phrase(phrase, language, self.config.inflection_matching))
                for phrase in lexicon.phrases
            )
            for language, lexicon in LEXICONS.items()
        }

        logger.info(
            "SAFETY_DETECTOR_INITIALIZED",
            extra={
                "detector_version": self.config.detector_version,
                "phrase_counts": {
                    language.value: len(patterns)
                    for language, patterns in self._patterns.items()
                },
                "normalize_evasions": self.config.normalize_evasions,
                "inflection_matching": self.config.inflection_matching,
            }
        )

    def detect(self, text: Optional[str], language: LanguageTag = None) -> DetectionResult:
        """Scan text for trigger phrases.

        Args:
            text: Free text from a monitored field; None counts as empty
            language: Language tag; unknown tags use the default lexicon

        Returns:
            DetectionResult. Never raises.
        """
        start_time = time.perf_counter()
        resolved = self.config.default_language

        try:
            if language:
                resolved = resolve_language(language)
            if not text:
                return self._result(resolved, [], start_time)

            views = [text.lower()]
            if self.config.normalize_evasions:
                normalized = self._normalizer.normalize(text)
                if normalized != views[0]:
                    views.append(normalized)

            patterns = self._patterns.get(resolved)
            if not patterns:
                raise DetectionFailure(f"No compiled patterns for {resolved.value}")
            matches = self._scan(views, patterns)

        except Exception as e:
            latency_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                "DETECTION_FAILURE",
                extra={
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "language": resolved.value,
                    "action": "TREATING_AS_MATCH",
                }
            )
            return DetectionResult(
                matched=True,
                language=resolved,
                failed=True,
                detector_version=self.config.detector_version,
                latency_ms=latency_ms,
            )

        result = self._result(resolved, matches, start_time)
        if result.matched:
            logger.warning(
                "SAFETY_DETECTION_MATCHED",
                extra={
                    "language": resolved.value,
                    "match_count": len(matches),
                    "text_fingerprint": fingerprint_text(text),
                    "latency_ms": result.latency_ms,
                }
            )
        return result

    def _scan(
        self,
        views: List[str],
        patterns: Tuple[Tuple[str, re.Pattern], ...],
    ) -> List[str]:
        return [
            phrase
            for phrase, pattern in patterns
            if any(pattern.search(view) for view in views)
        ]

    def _result(
        self,
        language: Language,
        matches: List[str],
        start_time: float,
    ) -> DetectionResult:
        latency_ms = (time.perf_counter() - start_time) * 1000
        if latency_ms > self.config.max_scan_latency_ms:
            logger.warning(
                "SAFETY_DETECTION_SLOW",
                extra={
                    "latency_ms": latency_ms,
                    "budget_ms": self.config.max_scan_latency_ms,
                    "language": language.value,
                }
            )
        return DetectionResult(
            matched=bool(matches),
            matched_phrases=tuple(matches),
            language=language,
            detector_version=self.config.detector_version,
            latency_ms=latency_ms,
        )


_detector: Optional[SafetyDetector] = None


def get_detector() -> SafetyDetector:
    """Get the shared SafetyDetector instance."""
    global _detector
    if _detector is None:
        _detector = SafetyDetector()
    return _detector


def detect(text: Optional[str], language: LanguageTag = None) -> DetectionResult:
    """Scan text with the shared detector."""
    return get_detector().detect(text, language)
