"""HTTP route handlers for the Program Report API."""

from flask import Blueprint, jsonify, request

from program_report.config import config_exists
from program_report.exceptions import (
    AuthenticationError,
    ConfigNotFoundError,
    InvalidConfigError,
    RateLimitError,
    RemoteError,
    ReportError,
)
from program_report.service import (
    cached_report_to_dict,
    get_program_report,
    search_programs_for_query,
)

bp = Blueprint("main", __name__)


def _error(error: Exception, status: int):
    return jsonify({"error": str(error)}), status


@bp.errorhandler(ConfigNotFoundError)
@bp.errorhandler(InvalidConfigError)
def handle_config_error(e):
    return _error(e, 503)


@bp.errorhandler(AuthenticationError)
def handle_auth_error(e):
    return _error(e, 401)


@bp.errorhandler(RateLimitError)
def handle_rate_limit(e):
    return _error(e, 429)


@bp.errorhandler(RemoteError)
def handle_remote_error(e):
    return _error(e, 502)


@bp.errorhandler(ReportError)
def handle_report_error(e):
    return _error(e, 500)


@bp.route("/health")
def health():
    """Health check endpoint."""
    if config_exists():
        return jsonify({"status": "ok", "config_loaded": True})
    return jsonify({
        "status": "error",
        "config_loaded": False,
        "message": "Configuration not found",
    }), 503


@bp.route("/api/programs")
def api_search_programs():
    """Return issues matching ``q`` that could be used as programs."""
    query = request.args.get("q", "")
    options = search_programs_for_query(query)
    return jsonify([
        {
            "label": o.label,
            "value": o.key,
            "summary": o.summary,
            "type": o.issue_type,
        }
        for o in options
    ])


@bp.route("/api/programs/<program_key>/report")
def api_program_report(program_key):
    """Return the program report; ``refresh=1`` bypasses the cache."""
    force_refresh = request.args.get("refresh", "").lower() in ("1", "true", "yes")
    cached = get_program_report(program_key, force_refresh=force_refresh)
    return jsonify(cached_report_to_dict(cached))
