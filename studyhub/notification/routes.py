"""Routes for the notification blueprint."""

from __future__ import annotations

from typing import TYPE_CHECKING

from flask import g, request

from studyhub.auth.decorators import login_required
from studyhub.core.constants import DEFAULT_PAGE_SIZE
from studyhub.extensions import coordinator, store
from studyhub.utils import api_response, validate_form

from . import bp
from .forms import MarkReadForm
from .services import NotificationService

if TYPE_CHECKING:
    from flask import Response


@bp.route("", methods=["GET"])
@login_required
def list_notifications() -> Response:
    """List the current user's live notifications, newest first."""
    page = request.args.get("page", 1, type=int)
    limit = request.args.get("limit", DEFAULT_PAGE_SIZE, type=int)
    unread_only = request.args.get("unreadOnly", "false").lower() in ["true", "1"]
    items, pagination = NotificationService.list_for_user(
        store, g.user.id, page=page, limit=limit, unread_only=unread_only
    )
    return api_response(data={"notifications": items, "pagination": pagination})


@bp.route("/unread-count", methods=["GET"])
@login_required
def unread_count() -> Response:
    count = NotificationService.unread_count(store, g.user.id)
    return api_response(data={"unreadCount": count})


@bp.route("/read", methods=["POST"])
@login_required
def mark_read() -> Response:
    """Mark the given notifications read, or all of them when none are given."""
    form = validate_form(MarkReadForm, request.get_json(silent=True))
    marked = NotificationService.mark_read(
        store, g.user.id, form.notification_ids.data or None
    )
    coordinator.send_to_user(
        g.user.id, "notifications_marked_read", {"notificationIds": marked}
    )
    return api_response(
        "Notifications marked as read.", {"notificationIds": marked}
    )


@bp.route("/<string:notification_id>", methods=["DELETE"])
@login_required
def dismiss(notification_id: str) -> Response:
    NotificationService.dismiss(store, g.user.id, notification_id)
    return api_response("Notification dismissed.")
