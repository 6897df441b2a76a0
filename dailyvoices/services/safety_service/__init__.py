"""Safety Service: trigger-phrase detection and crisis escalation.

Every journal entry, chat message and community post is scanned as the
user types and again on submit. A match opens the crisis-resource modal
and, on submit, leaves an audit record.

Components:
- lexicon.py: Per-language trigger phrases
- text_normalizer.py: Evasion-normalized view of the text
- detector.py: SafetyDetector and DetectionResult
- trigger_bridge.py: Field-change monitoring and the shared SafetySignal
- resources.py: Crisis hotlines by region
- escalation.py: Modal state machine and submission gate
- handler.py: Flask HTTP endpoints

Usage:
    from dailyvoices.services.safety_service import detect
    result = detect("I want to give up", "en")
"""

from .config import SafetyConfig, SubmissionPolicy
from .detector import DetectionResult, SafetyDetector, detect
from .escalation import (
    ContactChannel,
    EscalationController,
    EscalationState,
    ModalState,
    SubmissionDecision,
)
from .lexicon import LEXICONS, TriggerLexicon, get_phrases, parse_language, resolve_language
from .resources import CrisisResource, CrisisResourceResolver, normalize_region_code
from .trigger_bridge import EscalationEvent, MonitoredField, SafetySignal, TriggerBridge

__all__ = [
    "SafetyConfig",
    "SubmissionPolicy",
    "DetectionResult",
    "SafetyDetector",
    "detect",
    "ContactChannel",
    "EscalationController",
    "EscalationState",
    "ModalState",
    "SubmissionDecision",
    "LEXICONS",
    "TriggerLexicon",
    "get_phrases",
    "parse_language",
    "resolve_language",
    "CrisisResource",
    "CrisisResourceResolver",
    "normalize_region_code",
    "EscalationEvent",
    "MonitoredField",
    "SafetySignal",
    "TriggerBridge",
]
