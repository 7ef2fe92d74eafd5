"""Routes for the main blueprint."""

from __future__ import annotations

from typing import TYPE_CHECKING

from flask import jsonify

from studyhub.extensions import coordinator

from . import bp

if TYPE_CHECKING:
    from flask import Response


@bp.route("/health")
def health_check() -> Response:
    """Perform a simple health check."""
    return jsonify(
        {"status": "ok", "onlineUsers": len(coordinator.registry.online_users())}
    )
