"""Socket.IO event handlers.

Handlers validate the payload, delegate to the same services the JSON API
uses and let the coordinator fan out the result. Failures never reach
other sessions: they are reported to the originating sid as ``error``.
"""

from __future__ import annotations

import logging
from functools import wraps
from typing import TYPE_CHECKING, Any

from flask import request
from flask_socketio import ConnectionRefusedError

from studyhub.chat.forms import EditMessageForm, MessageForm, ReactionForm, ReadForm
from studyhub.chat.models import FileMeta
from studyhub.chat.services import ChatService
from studyhub.directory import DirectoryService
from studyhub.errors import (
    AppError,
    AuthenticationError,
    PermissionDenied,
    ValidationError,
)
from studyhub.extensions import coordinator, socketio, store
from studyhub.group.services import GroupService
from studyhub.notification.forms import MarkReadForm
from studyhub.notification.services import NotificationService
from studyhub.utils import validate_form

from .coordinator import group_room

if TYPE_CHECKING:
    from studyhub.directory import UserProfile

logger = logging.getLogger(__name__)


def socket_errors(f):
    """Report failures of an event handler to the calling session only."""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except AppError as e:
            logger.info("%s rejected for %s: %s", f.__name__, request.sid, e.message)
            coordinator.emit_error(request.sid, e)
        except Exception:
            logger.exception("Unhandled error in %s for %s", f.__name__, request.sid)
            coordinator.emit_error(request.sid, "An unexpected error occurred.")
        return None

    return decorated_function


def _payload(data: Any) -> dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Event payload must be an object.")
    return data


def _required(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(
            errors=[{"field": key, "message": "This field is required."}]
        )
    return value.strip()


def _current_user() -> UserProfile:
    """Reload the session's user so role and status changes take effect."""
    profile = DirectoryService.lookup_user(store, coordinator.user_for(request.sid))
    if profile is None or not profile.is_active:
        raise AuthenticationError("Account is no longer active.", "account_inactive")
    return profile


@socketio.on("connect")
def handle_connect(auth=None):
    """Authenticate the handshake and join the session's rooms."""
    token = auth.get("token") if isinstance(auth, dict) else None
    token = token or request.args.get("token")
    try:
        coordinator.connect(request.sid, token)
    except AppError as e:
        logger.info("Refused connection %s: %s", request.sid, e.message)
        raise ConnectionRefusedError(e.to_dict()) from e


@socketio.on("disconnect")
def handle_disconnect(*args):
    coordinator.disconnect(request.sid)


@socketio.on("join_group")
@socket_errors
def handle_join_group(data=None):
    group_id = _required(_payload(data), "groupId")
    coordinator.join_group_room(request.sid, group_id)
    coordinator.send_to_session(request.sid, "joined_group", {"groupId": group_id})


@socketio.on("leave_group")
@socket_errors
def handle_leave_group(data=None):
    group_id = _required(_payload(data), "groupId")
    coordinator.leave_group_room(request.sid, group_id)
    coordinator.send_to_session(request.sid, "left_group", {"groupId": group_id})


@socketio.on("send_message")
@socket_errors
def handle_send_message(data=None):
    """Post a message; the room, sender included, receives ``new_message``."""
    data = _payload(data)
    group_id = _required(data, "groupId")
    form = validate_form(MessageForm, data)
    file = None
    if form.file_url.data:
        file = FileMeta(
            url=form.file_url.data,
            name=form.file_name.data or None,
            size=form.file_size.data,
        )
    ChatService.post_message(
        store,
        _current_user(),
        group_id,
        form.content.data,
        message_type=form.message_type.data,
        file=file,
        reply_to=form.reply_to.data or None,
    )


@socketio.on("edit_message")
@socket_errors
def handle_edit_message(data=None):
    data = _payload(data)
    group_id = _required(data, "groupId")
    message_id = _required(data, "messageId")
    form = validate_form(EditMessageForm, data)
    ChatService.edit_message(
        store, _current_user(), group_id, message_id, form.content.data
    )


@socketio.on("add_reaction")
@socket_errors
def handle_add_reaction(data=None):
    data = _payload(data)
    group_id = _required(data, "groupId")
    message_id = _required(data, "messageId")
    form = validate_form(ReactionForm, data)
    ChatService.react(store, _current_user(), group_id, message_id, form.emoji.data)


@socketio.on("mark_messages_read")
@socket_errors
def handle_mark_messages_read(data=None):
    data = _payload(data)
    group_id = _required(data, "groupId")
    form = validate_form(ReadForm, data)
    ChatService.mark_read(
        store,
        _current_user(),
        group_id,
        form.message_ids.data,
        skip_sid=request.sid,
    )


def _typing(data: Any, typing: bool) -> None:
    group_id = _required(_payload(data), "groupId")
    user_id = coordinator.user_for(request.sid)
    if group_room(group_id) not in coordinator.registry.rooms_for(request.sid):
        raise PermissionDenied("Join the group room first.", "not_member")
    coordinator.broadcast_typing(group_id, user_id, typing, skip_sid=request.sid)


@socketio.on("typing_start")
@socket_errors
def handle_typing_start(data=None):
    _typing(data, True)


@socketio.on("typing_stop")
@socket_errors
def handle_typing_stop(data=None):
    _typing(data, False)


@socketio.on("request_timer_update")
@socket_errors
def handle_request_timer_update(data=None):
    """Send the current timer state to the requesting session only."""
    group_id = _required(_payload(data), "groupId")
    timer = GroupService.timer(store, _current_user(), group_id)
    coordinator.send_to_session(request.sid, "timer_update", timer)


@socketio.on("notification_read")
@socket_errors
def handle_notification_read(data=None):
    form = validate_form(MarkReadForm, _payload(data))
    user_id = coordinator.user_for(request.sid)
    marked = NotificationService.mark_read(
        store, user_id, form.notification_ids.data or None
    )
    coordinator.send_to_user(
        user_id, "notifications_marked_read", {"notificationIds": marked}
    )


@socketio.on("get_unread_count")
@socket_errors
def handle_get_unread_count(data=None):
    user_id = coordinator.user_for(request.sid)
    count = NotificationService.unread_count(store, user_id)
    coordinator.send_to_session(request.sid, "unread_count", {"count": count})


@socketio.on("update_status")
@socket_errors
def handle_update_status(data=None):
    status = _required(_payload(data), "status")
    user_id = coordinator.user_for(request.sid)
    coordinator.broadcast_status_change(user_id, status, skip_sid=request.sid)
    DirectoryService.touch_last_active(store, user_id)
