"""Audit Service HTTP handler - flagged-entry endpoints.

Called by the app's content flows when a submission trips the safety
lexicon, and by administrators reviewing flags.
"""
import logging
import os
from flask import Flask, request, jsonify

from dailyvoices.shared.errors import FlagNotFoundError, RepositoryError
from dailyvoices.shared.models import ContentSurface
from dailyvoices.shared.utils import configure_pii_salt
from .flag_recorder import FlagRecorder
from .flag_repository import repository_from_env

logger = logging.getLogger(__name__)

# Initialize Flask app
app = Flask(__name__)

# Configure PII salt
pii_salt = os.getenv("PII_HASH_SALT", "default_dev_salt_change_in_production_32chars")
configure_pii_salt(pii_salt)

flag_recorder = FlagRecorder(repository=repository_from_env())


@app.route("/health", methods=["GET"])
def health():
    """Health check endpoint."""
    return jsonify({
        "status": "healthy",
        "service": "audit-service",
        "backend": type(flag_recorder.repository).__name__,
    }), 200


@app.route("/flags", methods=["POST"])
def record_flag():
    """Record a flagged entry.

    Request Body:
        {
            "user_id": "user_123",
            "entry_id": "journal_456",
            "matched_keywords": ["give up", "want to die"],
            "surface": "journal" (optional)
        }
    """
    data = request.get_json(silent=True)
    if not data:
        return jsonify({"error": "Request body required"}), 400
    if not isinstance(data, dict):
        return jsonify({"error": "Request body must be an object"}), 400

    keywords = data.get("matched_keywords")
    if not isinstance(keywords, list):
        return jsonify({"error": "matched_keywords must be a list"}), 400

    surface = None
    if data.get("surface"):
        try:
            surface = ContentSurface(data["surface"])
        except ValueError as e:
            return jsonify({"error": f"Invalid surface: {str(e)}"}), 400

    try:
        flag_id = flag_recorder.record_flag(
            user_id=data.get("user_id"),
            entry_id=data.get("entry_id"),
            matched_keywords=keywords,
            surface=surface,
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except RepositoryError as e:
        logger.error("FLAG_ENDPOINT_ERROR", extra={"error": str(e)})
        return jsonify({"error": "Failed to record flag"}), 503

    return jsonify({"flag_id": flag_id}), 201


@app.route("/flags/<flag_id>/dismiss", methods=["POST"])
def dismiss_flag(flag_id: str):
    """Acknowledge a flag."""
    try:
        flag_recorder.dismiss_flag(flag_id)
    except FlagNotFoundError:
        return jsonify({"error": "Flag not found"}), 404
    except RepositoryError as e:
        logger.error("FLAG_DISMISS_ENDPOINT_ERROR", extra={"error": str(e)})
        return jsonify({"error": "Failed to dismiss flag"}), 503

    return jsonify({"flag_id": flag_id, "dismissed": True}), 200


@app.route("/flags", methods=["GET"])
def list_flags():
    """List flags.

    Query Parameters:
        user_id: Only this user's flags
        include_dismissed: "false" to hide acknowledged flags
    """
    include_dismissed = request.args.get("include_dismissed", "true").lower() != "false"
    try:
        records = flag_recorder.list_flags(
            user_id=request.args.get("user_id"),
            include_dismissed=include_dismissed,
        )
    except RepositoryError as e:
        logger.error("FLAG_LIST_ENDPOINT_ERROR", extra={"error": str(e)})
        return jsonify({"error": "Failed to list flags"}), 503

    return jsonify({
        "flags": [r.to_dict() for r in records],
        "count": len(records),
    }), 200


@app.route("/flags/users", methods=["GET"])
def list_flagged_users():
    """Per-user flag roll-up for administrators."""
    try:
        summaries = flag_recorder.list_flagged_users()
    except RepositoryError as e:
        logger.error("FLAG_USERS_ENDPOINT_ERROR", extra={"error": str(e)})
        return jsonify({"error": "Failed to list flagged users"}), 503

    return jsonify({"users": [s.to_dict() for s in summaries]}), 200


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    port = int(os.getenv("PORT", "8004"))
    app.run(host="0.0.0.0", port=port, debug=False)
