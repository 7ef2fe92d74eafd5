from flask import Blueprint, current_app, jsonify
from werkzeug.exceptions import HTTPException

from .errors import AppError, InvariantViolation, NotFoundError, ValidationError

error_handlers_bp = Blueprint("error_handlers", __name__)


def error_response(message, status_code, reason, errors=None):
    """Build the standard failure envelope."""
    body = {"success": False, "message": message, "reason": reason}
    if errors:
        body["errors"] = errors
    return jsonify(body), status_code


@error_handlers_bp.app_errorhandler(ValidationError)
def handle_validation_error(error):
    """Handles validation errors, including the field-level details."""
    current_app.logger.warning(f"Validation Error: {error.message}")
    return error_response(
        error.message, error.status_code, error.reason, error.errors
    )


@error_handlers_bp.app_errorhandler(InvariantViolation)
def handle_invariant_violation(error):
    """Handles requests that would break a group or chat rule."""
    current_app.logger.info(f"Invariant Violation ({error.reason}): {error.message}")
    return error_response(error.message, error.status_code, error.reason)


@error_handlers_bp.app_errorhandler(NotFoundError)
def handle_not_found_error(error):
    """Handles not found errors."""
    current_app.logger.warning(f"Not Found Error: {error.message}")
    return error_response(error.message, error.status_code, error.reason)


@error_handlers_bp.app_errorhandler(AppError)
def handle_app_error(error):
    """Handles generic application errors."""
    current_app.logger.warning(f"Application Error: {error.message}")
    return error_response(error.message, error.status_code, error.reason)


@error_handlers_bp.app_errorhandler(404)
def handle_404(e):
    """Handles generic 404 errors for routes that don't exist."""
    return error_response("Resource not found.", 404, "not_found")


@error_handlers_bp.app_errorhandler(405)
def handle_405(e):
    return error_response("Method not allowed.", 405, "method_not_allowed")


@error_handlers_bp.app_errorhandler(413)
def handle_413(e):
    """Handles uploads over MAX_CONTENT_LENGTH."""
    return error_response("Upload is too large.", 413, "payload_too_large")


@error_handlers_bp.app_errorhandler(500)
def handle_500(e):
    """Handles unexpected server errors."""
    current_app.logger.error(f"Internal Server Error: {e}")
    return error_response("An unexpected error occurred.", 500, "internal_error")


@error_handlers_bp.app_errorhandler(HTTPException)
def handle_http_exception(e):
    """Handles any other HTTP error raised by Flask or Werkzeug."""
    return error_response(e.description, e.code or 500, "http_error")
