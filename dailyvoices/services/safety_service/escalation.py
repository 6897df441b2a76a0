"""Escalation modal controller.

Owns the crisis-resource modal for one user session: whether it is open,
which phrases triggered it, which crisis resource it shows, and whether
a flagged submission may proceed to persistence.

State machine (initial CLOSED):
    CLOSED --positive detection--> OPEN
    OPEN   --positive detection--> OPEN    (new phrase set replaces snapshot)
    OPEN   --contact resource----> OPEN    (contacting never auto-dismisses)
    OPEN   --dismiss-------------> CLOSED

Audit writes happen once per distinct submission attempt, never for live
typing, and are fire-and-forget: a failing recorder is logged and has no
effect on the modal or on the user's action.
"""
import logging
from concurrent.futures import Executor, Future
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Set, Tuple, Union

from dailyvoices.shared.models import ContentSurface
from dailyvoices.shared.utils import hash_user_id
from .config import SubmissionPolicy
from .detector import DetectionResult
from .resources import (
    CRISIS_RESOURCES,
    DEFAULT_REGION,
    CrisisResource,
    CrisisResourceResolver,
    normalize_region_code,
)
from .trigger_bridge import EscalationEvent, MonitoredField, SafetySignal

logger = logging.getLogger(__name__)

# Recorded in place of phrases when the detector itself failed
DETECTION_FAILURE_KEYWORD = "[detection-failure]"


class AuditRecorder(Protocol):
    """Persistence collaborator for flagged-entry records."""

    def record_flag(
        self,
        user_id: str,
        entry_id: str,
        matched_keywords: List[str],
        surface: Optional[ContentSurface] = None,
    ) -> str:
        ...

    def dismiss_flag(self, flag_id: str) -> None:
        ...


class ModalState(Enum):
    CLOSED = "closed"
    OPEN = "open"


class ContactChannel(Enum):
    """Ways the modal lets the user reach a crisis resource."""
    CALL = "call"
    TEXT = "text"
    CHAT = "chat"


@dataclass(frozen=True)
class EscalationState:
    """Snapshot of the modal state handed to host UIs."""
    state: ModalState
    matched_phrases: Tuple[str, ...]
    resource: CrisisResource
    trigger_field: Optional[MonitoredField] = None
    opened_at: Optional[datetime] = None
    contact_attempts: int = 0
    failed: bool = False

    @property
    def is_open(self) -> bool:
        return self.state is ModalState.OPEN


@dataclass(frozen=True)
class SubmissionAttempt:
    """Identity of one submission attempt, used to de-duplicate audit writes."""
    surface: ContentSurface
    entry_id: str
    user_id: str
    matched_phrases: Tuple[str, ...]


@dataclass(frozen=True)
class SubmissionDecision:
    """Whether a submission may be persisted now."""
    allowed: bool
    blocked: bool
    detection: DetectionResult
    flag_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "blocked": self.blocked,
            "detection": self.detection.to_dict(),
            "flag_id": self.flag_id,
        }


FlagRef = Union[str, Future, None]
StateListener = Callable[[EscalationState], None]


class EscalationController:
    """Singleton-per-session controller for the crisis-resource modal."""

    def __init__(
        self,
        resolver: Optional[CrisisResourceResolver] = None,
        audit_recorder: Optional[AuditRecorder] = None,
        policy: Optional[SubmissionPolicy] = None,
        region_code: Optional[str] = DEFAULT_REGION,
        executor: Optional[Executor] = None,
        acknowledge_flags_on_dismiss: bool = True,
    ):
        """Initialize controller.

        Args:
            resolver: Crisis resource lookup
            audit_recorder: Flagged-entry persistence; None disables auditing
            policy: Per-surface submission blocking policy
            region_code: Result of the external geolocation lookup
            executor: Runs audit writes off the caller's path when given;
                otherwise they run inline with failures contained
            acknowledge_flags_on_dismiss: Mark the episode's flags dismissed
                when the user closes the modal
        """
        self.resolver = resolver or CrisisResourceResolver()
        self.audit_recorder = audit_recorder
        self.policy = policy or SubmissionPolicy()
        self.executor = executor
        self.acknowledge_flags_on_dismiss = acknowledge_flags_on_dismiss

        self.region_code = normalize_region_code(region_code)
        self._state = EscalationState(
            state=ModalState.CLOSED,
            matched_phrases=(),
            resource=self._resolve(self.region_code),
        )
        self._flags: Dict[SubmissionAttempt, FlagRef] = {}
        self._episode: List[SubmissionAttempt] = []
        self._held: Set[SubmissionAttempt] = set()
        self._released: Set[SubmissionAttempt] = set()
        self._listeners: List[StateListener] = []

    @property
    def state(self) -> EscalationState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state.is_open

    @property
    def held_submissions(self) -> Tuple[SubmissionAttempt, ...]:
        return tuple(a for a in self._episode if a in self._held)

    def attach(self, signal: SafetySignal) -> Callable[[], None]:
        """Subscribe to a SafetySignal. Returns the unsubscribe callable."""
        return signal.subscribe(self.on_detection)

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Call listener with the new state after every transition."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def on_detection(self, detection: Union[DetectionResult, EscalationEvent]) -> bool:
        """Open the modal for a positive detection.

        Returns True if the state changed. A negative detection, or the same
        phrase set arriving again while open, changes nothing.
        """
        if isinstance(detection, DetectionResult):
            if not detection.matched:
                return False
            detection = EscalationEvent.from_result(detection)

        if not (detection.matched_phrases or detection.failed):
            return False

        current = self._state
        if current.is_open:
            if (detection.matched_phrases == current.matched_phrases
                    and detection.failed == current.failed):
                return False
            self._set_state(replace(
                current,
                matched_phrases=detection.matched_phrases,
                trigger_field=detection.field or current.trigger_field,
                failed=detection.failed,
            ))
            return True

        logger.warning(
            "ESCALATION_MODAL_OPENED",
            extra={
                "field": detection.field.value if detection.field else None,
                "match_count": len(detection.matched_phrases),
                "failed": detection.failed,
                "region_code": current.resource.region_code,
            }
        )
        self._set_state(EscalationState(
            state=ModalState.OPEN,
            matched_phrases=detection.matched_phrases,
            resource=self._resolve(self.region_code),
            trigger_field=detection.field,
            opened_at=datetime.utcnow(),
            failed=detection.failed,
        ))
        return True

    def dismiss(self) -> Tuple[SubmissionAttempt, ...]:
        """Close the modal.

        Returns the submissions that were held by a blocking policy and may
        now be persisted. Dismissing a closed modal does nothing.
        """
        if not self._state.is_open:
            return ()

        released = self.held_submissions
        self._released.update(released)
        self._held.difference_update(released)

        if self.acknowledge_flags_on_dismiss and self.audit_recorder is not None:
            for attempt in self._episode:
                self._acknowledge(self._flags.get(attempt))

        logger.info(
            "ESCALATION_MODAL_DISMISSED",
            extra={
                "contact_attempts": self._state.contact_attempts,
                "released_submissions": len(released),
            }
        )
        self._episode = []
        self._set_state(EscalationState(
            state=ModalState.CLOSED,
            matched_phrases=(),
            resource=self._state.resource,
        ))
        return released

    def contact_resource(self, channel: Union[ContactChannel, str] = ContactChannel.CALL) -> str:
        """Return the contact target for a channel; the modal stays open.

        CALL gives a tel: URI, TEXT the texting instruction, CHAT the URL.
        """
        channel = ContactChannel(channel)
        resource = self._state.resource
        target = {
            ContactChannel.CALL: resource.dial_uri,
            ContactChannel.TEXT: resource.text_instruction,
            ContactChannel.CHAT: resource.chat_url,
        }[channel]

        if self._state.is_open:
            self._set_state(replace(
                self._state,
                contact_attempts=self._state.contact_attempts + 1,
            ))

        logger.warning(
            "CRISIS_RESOURCE_CONTACTED",
            extra={
                "channel": channel.value,
                "region_code": resource.region_code,
                "modal_open": self._state.is_open,
            }
        )
        return target

    def set_region(self, region_code: Optional[str]) -> CrisisResource:
        """Update the user's region and re-resolve the crisis resource."""
        self.region_code = normalize_region_code(region_code)
        resource = self._resolve(self.region_code)
        self._set_state(replace(self._state, resource=resource))
        return resource

    def submit(
        self,
        surface: ContentSurface,
        entry_id: str,
        user_id: str,
        detection: DetectionResult,
    ) -> SubmissionDecision:
        """Gate a content submission on its detection result.

        A positive detection opens the modal and writes one audit record per
        distinct attempt (surface, entry, user, phrase set); repeats of the
        same attempt reuse the first record. Surfaces whose policy blocks
        are held until dismiss().
        """
        if not detection.matched:
            return SubmissionDecision(allowed=True, blocked=False, detection=detection)

        attempt = SubmissionAttempt(
            surface=surface,
            entry_id=str(entry_id),
            user_id=str(user_id),
            matched_phrases=detection.matched_phrases,
        )

        if attempt in self._released:
            return SubmissionDecision(
                allowed=True,
                blocked=False,
                detection=detection,
                flag_id=self._flag_id(attempt),
            )

        self.on_detection(detection)

        if attempt not in self._flags:
            self._flags[attempt] = self._record(attempt, detection)
        if attempt not in self._episode:
            self._episode.append(attempt)

        blocked = self.policy.blocks(surface)
        if blocked:
            self._held.add(attempt)

        logger.info(
            "FLAGGED_SUBMISSION_GATED",
            extra={
                "surface": surface.value,
                "user_id_hash": hash_user_id(attempt.user_id),
                "blocked": blocked,
                "match_count": len(detection.matched_phrases),
            }
        )
        return SubmissionDecision(
            allowed=not blocked,
            blocked=blocked,
            detection=detection,
            flag_id=self._flag_id(attempt),
        )

    def _record(self, attempt: SubmissionAttempt, detection: DetectionResult) -> FlagRef:
        if self.audit_recorder is None:
            return None
        keywords = list(attempt.matched_phrases)
        if detection.failed and not keywords:
            keywords = [DETECTION_FAILURE_KEYWORD]
        return self._dispatch(
            self.audit_recorder.record_flag,
            attempt.user_id,
            attempt.entry_id,
            keywords,
            attempt.surface,
        )

    def _acknowledge(self, ref: FlagRef) -> None:
        if isinstance(ref, Future):
            def dismiss_when_recorded(done: Future) -> None:
                if done.cancelled():
                    return
                flag_id = done.result()
                if flag_id:
                    self._guarded(self.audit_recorder.dismiss_flag, flag_id)

            ref.add_done_callback(dismiss_when_recorded)
        elif ref:
            self._dispatch(self.audit_recorder.dismiss_flag, ref)

    def _dispatch(self, fn: Callable, *args) -> FlagRef:
        if self.executor is None:
            return self._guarded(fn, *args)
        try:
            return self.executor.submit(self._guarded, fn, *args)
        except Exception as e:
            logger.error(
                "AUDIT_WRITE_FAILED",
                extra={
                    "operation": getattr(fn, "__name__", "unknown"),
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "stage": "dispatch",
                }
            )
            return None

    def _guarded(self, fn: Callable, *args) -> Optional[str]:
        try:
            return fn(*args)
        except Exception as e:
            logger.error(
                "AUDIT_WRITE_FAILED",
                extra={
                    "operation": getattr(fn, "__name__", "unknown"),
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "action": "MODAL_STATE_UNCHANGED",
                }
            )
            return None

    def _flag_id(self, attempt: SubmissionAttempt) -> Optional[str]:
        ref = self._flags.get(attempt)
        if isinstance(ref, Future):
            if ref.cancelled() or not ref.done():
                return None
            return ref.result()
        return ref

    def _resolve(self, region_code: str) -> CrisisResource:
        try:
            return self.resolver.resolve(region_code)
        except Exception as e:
            logger.error(
                "CRISIS_RESOURCE_RESOLUTION_FAILED",
                extra={
                    "region_code": region_code,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "fallback_region": DEFAULT_REGION,
                }
            )
            return CRISIS_RESOURCES[DEFAULT_REGION]

    def _set_state(self, state: EscalationState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error(
                    "ESCALATION_LISTENER_FAILED",
                    extra={"error": str(e), "error_type": type(e).__name__}
                )
