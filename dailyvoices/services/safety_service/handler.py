"""Safety Service HTTP handler.

Exposes trigger detection, crisis resources and the submission gate to
the web client. One EscalationController is kept per client session.

On any internal error the detection endpoints answer with a positive,
failed result: the worst outcome of a fault is an unnecessary modal.
"""
import logging
import os
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from flask import Flask, request, jsonify

from dailyvoices.shared.models import ContentSurface
from dailyvoices.shared.utils import configure_pii_salt
from dailyvoices.services.audit_service import FlagRecorder, repository_from_env
from .config import SafetyConfig, SubmissionPolicy
from .detector import DetectionResult, SafetyDetector
from .escalation import EscalationController, EscalationState, SubmissionDecision
from .lexicon import resolve_language
from .resources import (
    CrisisResource,
    CrisisResourceResolver,
    language_for_region,
    load_resource_table,
    normalize_region_code,
)
from .trigger_bridge import merge_results

logger = logging.getLogger(__name__)


def _env_flag(name: str, default: Optional[bool] = False) -> Optional[bool]:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.lower() == "true"


# Initialize Flask app
app = Flask(__name__)

# Configure PII salt from environment
pii_salt = os.getenv("PII_HASH_SALT", "default_dev_salt_change_in_production_32chars")
configure_pii_salt(pii_salt)

config = SafetyConfig(
    default_language=resolve_language(os.getenv("DEFAULT_LANGUAGE", "en")),
    normalize_evasions=_env_flag("NORMALIZE_EVASIONS", True),
    detector_version=os.getenv("DETECTOR_VERSION", SafetyConfig.detector_version),
)
detector = SafetyDetector(config=config)

policy = SubmissionPolicy(
    block_submission_on_trigger=_env_flag("BLOCK_SUBMISSION_ON_TRIGGER", False),
    journal=_env_flag("BLOCK_JOURNAL", None),
    chat=_env_flag("BLOCK_CHAT", None),
    community=_env_flag("BLOCK_COMMUNITY", None),
)

_resource_table_path = os.getenv("CRISIS_RESOURCE_TABLE")
resolver = CrisisResourceResolver(
    table=load_resource_table(_resource_table_path) if _resource_table_path else None,
    default_region=os.getenv("DEFAULT_REGION", "US"),
)

flag_recorder = FlagRecorder(repository=repository_from_env())
audit_executor = (
    ThreadPoolExecutor(max_workers=2, thread_name_prefix="audit")
    if _env_flag("AUDIT_ASYNC", False) else None
)

# session_id -> controller, least recently used first; in-memory, one process.
# Sessions exist only once something was flagged.
MAX_SESSIONS = int(os.getenv("MAX_SESSIONS", "10000"))
sessions: "OrderedDict[str, EscalationController]" = OrderedDict()


def get_controller(session_id: str, region_code: Optional[str] = None) -> EscalationController:
    """Return the session's controller, creating it on first use."""
    controller = sessions.get(session_id)
    if controller is None:
        controller = EscalationController(
            resolver=resolver,
            audit_recorder=flag_recorder,
            policy=policy,
            region_code=region_code,
            executor=audit_executor,
        )
        sessions[session_id] = controller
        return controller

    sessions.move_to_end(session_id)
    if region_code and normalize_region_code(region_code) != controller.region_code:
        controller.set_region(region_code)
    return controller


def evict_sessions(keep: Optional[str] = None) -> None:
    """Drop least recently used sessions beyond MAX_SESSIONS.

    Closed modals go first; an open one is only dropped when every
    remaining session is open.
    """
    while len(sessions) > MAX_SESSIONS:
        candidates = [sid for sid in sessions if sid != keep]
        if not candidates:
            return
        victim = next(
            (sid for sid in candidates if not sessions[sid].is_open),
            candidates[0],
        )
        evicted = sessions.pop(victim)
        logger.info(
            "SESSION_EVICTED",
            extra={
                "modal_open": evicted.is_open,
                "held_submissions": len(evicted.held_submissions),
                "session_count": len(sessions),
            }
        )


def _request_language(data: dict):
    """Explicit language tag first, then the user's region, then the default."""
    if data.get("language"):
        return resolve_language(data["language"])
    if data.get("region_code"):
        return language_for_region(data["region_code"])
    return config.default_language


def _fail_safe_result() -> DetectionResult:
    return DetectionResult(
        matched=True,
        language=config.default_language,
        failed=True,
        detector_version=config.detector_version,
    )


@app.route("/health", methods=["GET"])
def health():
    """Health check endpoint."""
    return jsonify({
        "status": "healthy",
        "service": "safety-service",
        "detector_version": config.detector_version,
    }), 200


@app.route("/ready", methods=["GET"])
def ready():
    """Readiness check - verifies detector is initialized."""
    if detector is None:
        return jsonify({"status": "not_ready", "reason": "detector_not_initialized"}), 503
    return jsonify({"status": "ready"}), 200


@app.route("/detect", methods=["POST"])
def detect_text():
    """Scan text for trigger phrases.

    Request Body:
        {"text": "...", "language": "en", "region_code": "JP"}

    Response:
        DetectionResult as a dict
    """
    data = request.get_json(silent=True)
    if data is None:
        return jsonify({"error": "Request body required"}), 400

    try:
        result = detector.detect(data.get("text"), _request_language(data))
    except Exception as e:
        logger.error(
            "DETECT_ENDPOINT_ERROR",
            extra={"error": str(e), "error_type": type(e).__name__}
        )
        result = _fail_safe_result()
    return jsonify(result.to_dict()), 200


@app.route("/resources", methods=["GET"])
def list_resources():
    """All crisis resources in the external table format."""
    return jsonify({
        "default_region": resolver.default_region,
        "resources": resolver.as_table(),
    }), 200


@app.route("/resources/<region_code>", methods=["GET"])
def get_resource(region_code: str):
    """Crisis resource for a region; unknown regions get the default."""
    return jsonify(resolver.resolve(region_code).to_dict()), 200


@app.route("/submissions", methods=["POST"])
def submit_content():
    """Gate a journal entry, chat message or community post.

    Request Body:
        {
            "session_id": "sess_123",
            "surface": "journal" | "chat" | "community",
            "entry_id": "journal_456",
            "user_id": "user_789",
            "text": "..." or "fields": {"title": "...", "body": "..."},
            "language": "en" (optional),
            "region_code": "JP" (optional)
        }

    Response:
        {
            "allowed": true | false,
            "blocked": true | false,
            "detection": {...},
            "flag_id": "flag_..." | null,
            "modal": {"is_open": ..., "matched_phrases": [...]},
            "crisis_resource": {...}
        }
    """
    data = request.get_json(silent=True)
    if not data:
        return jsonify({"error": "Request body required"}), 400
    if not isinstance(data, dict):
        return jsonify({"error": "Request body must be an object"}), 400

    missing = [k for k in ("session_id", "surface", "entry_id", "user_id") if not data.get(k)]
    if missing:
        return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

    try:
        surface = ContentSurface(data["surface"])
    except ValueError as e:
        return jsonify({"error": f"Invalid surface: {str(e)}"}), 400

    language = _request_language(data)
    fields = data.get("fields") or {"text": data.get("text")}
    if not isinstance(fields, dict):
        return jsonify({"error": "fields must be an object"}), 400

    try:
        detection = merge_results(
            [detector.detect(value, language) for value in fields.values()],
            language,
        )
    except Exception as e:
        logger.error(
            "SUBMISSION_SCAN_ERROR",
            extra={"error": str(e), "error_type": type(e).__name__}
        )
        detection = _fail_safe_result()

    session_id = data["session_id"]
    if not detection.matched and session_id not in sessions:
        decision = SubmissionDecision(allowed=True, blocked=False, detection=detection)
        return jsonify(_submission_response(
            decision, resolver.resolve(normalize_region_code(data.get("region_code")))
        )), 200

    controller = get_controller(session_id, data.get("region_code"))
    decision = controller.submit(
        surface=surface,
        entry_id=data["entry_id"],
        user_id=data["user_id"],
        detection=detection,
    )
    evict_sessions(keep=session_id)
    return jsonify(_submission_response(decision, controller.state.resource, controller.state)), 200


def _submission_response(
    decision: SubmissionDecision,
    resource: CrisisResource,
    state: Optional[EscalationState] = None,
) -> dict:
    response = decision.to_dict()
    response["modal"] = {
        "is_open": state.is_open if state else False,
        "matched_phrases": list(state.matched_phrases) if state else [],
    }
    response["crisis_resource"] = resource.to_dict()
    return response


@app.route("/sessions/<session_id>/dismiss", methods=["POST"])
def dismiss_modal(session_id: str):
    """Close the session's modal and release held submissions."""
    controller = sessions.get(session_id)
    if controller is None:
        return jsonify({"error": "Unknown session"}), 404

    released = controller.dismiss()
    return jsonify({
        "is_open": controller.is_open,
        "released": [
            {"surface": a.surface.value, "entry_id": a.entry_id}
            for a in released
        ],
    }), 200


@app.route("/sessions/<session_id>/contact", methods=["POST"])
def contact_resource(session_id: str):
    """Return the contact target for a channel; the modal stays open."""
    controller = sessions.get(session_id)
    if controller is None:
        return jsonify({"error": "Unknown session"}), 404

    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({"error": "Request body must be an object"}), 400
    try:
        target = controller.contact_resource(data.get("channel", "call"))
    except ValueError as e:
        return jsonify({"error": f"Invalid channel: {str(e)}"}), 400

    return jsonify({"target": target, "is_open": controller.is_open}), 200


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    port = int(os.getenv("PORT", "8001"))
    app.run(host="0.0.0.0", port=port, debug=False)
