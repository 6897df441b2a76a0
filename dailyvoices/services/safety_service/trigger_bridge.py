"""Trigger bridge: one detection policy for every monitored input field.

Journal, chat and community screens report field changes here instead of
running their own checks. Positive detections are published on a single
SafetySignal that the one modal-owning component subscribes to.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from dailyvoices.shared.models import ContentSurface, Language
from .detector import DetectionResult, SafetyDetector
from .lexicon import LanguageTag, get_phrases, resolve_language

logger = logging.getLogger(__name__)


class MonitoredField(Enum):
    """Input fields scanned as the user types."""
    JOURNAL_TITLE = "journal_title"
    JOURNAL_BODY = "journal_body"
    CHAT_MESSAGE = "chat_message"
    COMMUNITY_POST_TITLE = "community_post_title"
    COMMUNITY_POST_BODY = "community_post_body"

    @property
    def surface(self) -> ContentSurface:
        return _FIELD_SURFACES[self]


_FIELD_SURFACES = {
    MonitoredField.JOURNAL_TITLE: ContentSurface.JOURNAL,
    MonitoredField.JOURNAL_BODY: ContentSurface.JOURNAL,
    MonitoredField.CHAT_MESSAGE: ContentSurface.CHAT,
    MonitoredField.COMMUNITY_POST_TITLE: ContentSurface.COMMUNITY,
    MonitoredField.COMMUNITY_POST_BODY: ContentSurface.COMMUNITY,
}


@dataclass(frozen=True)
class EscalationEvent:
    """A positive detection, whichever field produced it."""
    matched_phrases: Tuple[str, ...]
    field: Optional[MonitoredField] = None
    language: Language = Language.EN
    failed: bool = False

    @property
    def surface(self) -> Optional[ContentSurface]:
        return self.field.surface if self.field else None

    @classmethod
    def from_result(
        cls,
        result: DetectionResult,
        field: Optional[MonitoredField] = None,
    ) -> "EscalationEvent":
        return cls(
            matched_phrases=result.matched_phrases,
            field=field,
            language=result.language,
            failed=result.failed,
        )


Listener = Callable[[EscalationEvent], None]


class SafetySignal:
    """Shared observable carrying escalation events to subscribers.

    A subscriber that raises is logged and skipped; the others still
    receive the event.
    """

    def __init__(self):
        self._listeners: List[Listener] = []
        self.latest: Optional[EscalationEvent] = None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: EscalationEvent) -> None:
        self.latest = event
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(
                    "SAFETY_SIGNAL_LISTENER_FAILED",
                    extra={
                        "error": str(e),
                        "error_type": type(e).__name__,
                        "field": event.field.value if event.field else None,
                    }
                )

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


class TriggerBridge:
    """Runs the detector on field changes and raises escalation events."""

    def __init__(
        self,
        detector: SafetyDetector,
        signal: SafetySignal,
        language: LanguageTag = None,
    ):
        self.detector = detector
        self.signal = signal
        self.language = resolve_language(language)
        self._values: Dict[MonitoredField, str] = {}

    def set_language(self, language: LanguageTag) -> None:
        self.language = resolve_language(language)

    def on_change(self, field: MonitoredField, text: Optional[str]) -> DetectionResult:
        """Handle a new value for a monitored field.

        Publishes one EscalationEvent when the value contains trigger
        phrases. The latest value is kept for scan_fields().
        """
        self._values[field] = text or ""
        result = self.detector.detect(text, self.language)
        if result.matched:
            logger.info(
                "SAFETY_TRIGGER_RAISED",
                extra={
                    "field": field.value,
                    "match_count": len(result.matched_phrases),
                    "failed": result.failed,
                }
            )
            self.signal.publish(EscalationEvent.from_result(result, field))
        return result

    def value(self, field: MonitoredField) -> str:
        return self._values.get(field, "")

    def scan_fields(self, surface: ContentSurface) -> DetectionResult:
        """Rescan every remembered field of a surface as one result.

        Used when the user submits: title and body are checked together and
        their phrases merged in lexicon order.
        """
        results = [
            self.detector.detect(value, self.language)
            for field, value in self._values.items()
            if field.surface is surface
        ]
        return merge_results(results, self.language)

    def clear(self, surface: Optional[ContentSurface] = None) -> None:
        """Forget remembered values, for one surface or all of them."""
        if surface is None:
            self._values.clear()
            return
        for field in [f for f in self._values if f.surface is surface]:
            del self._values[field]


def merge_results(results: List[DetectionResult], language: Language) -> DetectionResult:
    """Combine several detection results into one, phrases in lexicon order."""
    found = set()
    failed = False
    version = ""
    latency_ms = 0.0
    for result in results:
        found.update(result.matched_phrases)
        failed = failed or result.failed
        version = version or result.detector_version
        latency_ms += result.latency_ms

    phrases = tuple(p for p in get_phrases(language) if p in found)
    return DetectionResult(
        matched=bool(phrases) or failed,
        matched_phrases=phrases,
        language=language,
        failed=failed,
        detector_version=version,
        latency_ms=latency_ms,
    )
