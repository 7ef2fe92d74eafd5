"""Broadcast rules that keep connected clients in step with the aggregates.

Mutations always happen first, in the services; the coordinator only
fans out facts about what was committed. Nothing here writes to an
aggregate.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from studyhub.core.constants import (
    GROUP_ROOM_PREFIX,
    GROUPS_COLLECTION,
    USER_ROOM_PREFIX,
    USER_STATUSES,
)
from studyhub.core.store import key_path
from studyhub.directory import DirectoryService
from studyhub.errors import (
    AppError,
    AuthenticationError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)

from .registry import SessionRegistry

if TYPE_CHECKING:
    from flask import Flask
    from flask_socketio import SocketIO

    from studyhub.core.store import DocumentStore
    from studyhub.directory import UserProfile

logger = logging.getLogger(__name__)


def group_room(group_id: str) -> str:
    return f"{GROUP_ROOM_PREFIX}{group_id}"


def user_room(user_id: str) -> str:
    return f"{USER_ROOM_PREFIX}{user_id}"


class SocketIOTransport:
    """Delivers events and room changes through Flask-SocketIO."""

    namespace = "/"

    def __init__(self, socketio: SocketIO) -> None:
        self.socketio = socketio

    def emit(
        self, event: str, payload: Any, to: str, skip_sid: str | None = None
    ) -> None:
        self.socketio.emit(
            event, payload, to=to, skip_sid=skip_sid, namespace=self.namespace
        )

    def enter_room(self, sid: str, room: str) -> None:
        self.socketio.server.enter_room(sid, room, namespace=self.namespace)

    def leave_room(self, sid: str, room: str) -> None:
        self.socketio.server.leave_room(sid, room, namespace=self.namespace)


class RealtimeCoordinator:
    """Session lifecycle, room membership and event fan-out."""

    def __init__(
        self,
        store: DocumentStore,
        registry: SessionRegistry | None = None,
        transport: Any = None,
    ) -> None:
        self.store = store
        self.registry = registry or SessionRegistry()
        self.transport = transport

    def init_app(self, app: Flask, socketio: SocketIO) -> None:
        """Bind the coordinator to an application's Socket.IO server."""
        self.transport = SocketIOTransport(socketio)
        app.extensions["realtime"] = self

    def reset(self, transport: Any = None) -> None:
        """Drop every session (used by tests)."""
        self.registry = SessionRegistry()
        if transport is not None:
            self.transport = transport

    # -- delivery ----------------------------------------------------------

    def _emit(
        self, event: str, payload: Any, to: str, skip_sid: str | None = None
    ) -> None:
        if self.transport is None:
            logger.debug("No realtime transport bound; dropping %s", event)
            return
        try:
            self.transport.emit(event, payload, to=to, skip_sid=skip_sid)
        except Exception:
            logger.exception("Failed to emit %s to %s", event, to)

    def _enter(self, sid: str, room: str) -> None:
        if self.registry.join(sid, room) and self.transport is not None:
            self.transport.enter_room(sid, room)

    def _group_locked(self, group_id: str) -> Any:
        """Hold a group's document lock so membership cannot change meanwhile."""
        return self.store.locks.hold([key_path((GROUPS_COLLECTION, group_id))])

    def _leave(self, sid: str, room: str) -> bool:
        left = self.registry.leave(sid, room)
        if left and self.transport is not None:
            self.transport.leave_room(sid, room)
        return left

    # -- session lifecycle -------------------------------------------------

    def connect(self, sid: str, token: str) -> UserProfile:
        """Authenticate a new session and derive its rooms from current state.

        Raises AuthenticationError before any room is joined when the token
        is rejected.
        """
        from studyhub.group.services import GroupService

        profile = DirectoryService.authenticate(self.store, token)
        self.registry.register(sid, profile.id)
        self._enter(sid, user_room(profile.id))

        for group_id in profile.groups:
            with self._group_locked(group_id):
                if GroupService.is_active_member(self.store, group_id, profile.id):
                    self._enter(sid, group_room(group_id))

        logger.info("User %s connected on %s", profile.id, sid)
        self.broadcast_status_change(profile.id, "online", skip_sid=sid)
        return profile

    def disconnect(self, sid: str) -> None:
        """Forget the session; the rest is best-effort bookkeeping."""
        rooms = self.registry.rooms_for(sid)
        user_id, _ = self.registry.unregister(sid)
        if user_id is None:
            return
        logger.info("User %s disconnected from %s", user_id, sid)
        if self.registry.is_online(user_id):
            return
        try:
            DirectoryService.touch_last_active(self.store, user_id)
            payload = {"userId": user_id, "status": "offline"}
            for room in rooms:
                if room.startswith(GROUP_ROOM_PREFIX):
                    self._emit("user_status_update", payload, to=room)
        except Exception:
            logger.warning(
                "Disconnect bookkeeping failed for %s", user_id, exc_info=True
            )

    def user_for(self, sid: str) -> str:
        user_id = self.registry.user_for(sid)
        if user_id is None:
            raise AuthenticationError("Session is not authenticated.")
        return user_id

    # -- rooms -------------------------------------------------------------

    def join_group_room(self, sid: str, group_id: str) -> str:
        """Join a group room after re-checking membership against the group."""
        from studyhub.group.services import GroupService

        user_id = self.user_for(sid)
        if not group_id:
            raise ValidationError(
                errors=[{"field": "groupId", "message": "Group id is required."}]
            )
        room = group_room(group_id)
        with self._group_locked(group_id):
            group = GroupService.load(self.store, group_id)
            if group is None:
                raise NotFoundError("Group not found.")
            if not group.is_active_member(user_id):
                raise PermissionDenied("Not a member of this group.", "not_member")
            self._enter(sid, room)
        return room

    def leave_group_room(self, sid: str, group_id: str) -> None:
        self._leave(sid, group_room(group_id))

    def evict_from_group(self, user_id: str, group_id: str) -> None:
        """Remove all of a user's live sessions from a group room.

        Called while the group's document lock is held, so a concurrent
        room join either sees the removal or is evicted by it.
        """
        room = group_room(group_id)
        for sid in self.registry.evict(user_id, room):
            if self.transport is not None:
                self.transport.leave_room(sid, room)
            self._emit("left_group", {"groupId": group_id, "evicted": True}, to=sid)

    # -- fan-out -----------------------------------------------------------

    def broadcast_message(self, group_id: str, message: dict[str, Any]) -> None:
        """Deliver a new message to the whole room, sender included."""
        self._emit(
            "new_message",
            {"groupId": group_id, "message": message},
            group_room(group_id),
        )

    def broadcast_message_edit(self, group_id: str, message: dict[str, Any]) -> None:
        self._emit(
            "message_edited",
            {
                "groupId": group_id,
                "messageId": message["id"],
                "content": message["content"],
                "editedAt": message["editedAt"],
            },
            group_room(group_id),
        )

    def broadcast_reaction(
        self, group_id: str, message_id: str, user_id: str, emoji: str
    ) -> None:
        self._emit(
            "message_reaction",
            {
                "groupId": group_id,
                "messageId": message_id,
                "userId": user_id,
                "emoji": emoji,
            },
            group_room(group_id),
        )

    def broadcast_read_receipt(
        self,
        group_id: str,
        user_id: str,
        message_ids: list[str],
        skip_sid: str | None = None,
    ) -> None:
        self._emit(
            "messages_read",
            {"groupId": group_id, "userId": user_id, "messageIds": message_ids},
            group_room(group_id),
            skip_sid=skip_sid,
        )

    def broadcast_typing(
        self, group_id: str, user_id: str, typing: bool, skip_sid: str | None = None
    ) -> None:
        event = "user_typing" if typing else "user_stopped_typing"
        self._emit(
            event,
            {"groupId": group_id, "userId": user_id},
            group_room(group_id),
            skip_sid=skip_sid,
        )

    def broadcast_timer_update(self, group_id: str, timer: dict[str, Any]) -> None:
        self._emit("timer_update", timer, group_room(group_id))

    def broadcast_challenge_update(
        self, group_id: str, update: dict[str, Any]
    ) -> None:
        self._emit(
            "challenge_update", {"groupId": group_id, **update}, group_room(group_id)
        )

    def broadcast_status_change(
        self, user_id: str, status: str, skip_sid: str | None = None
    ) -> None:
        """Tell every group room the user is in about a presence change."""
        if status not in USER_STATUSES:
            raise ValidationError(
                errors=[{"field": "status", "message": "Unknown status."}]
            )
        self.registry.set_status(user_id, status)
        payload = {"userId": user_id, "status": status}
        for room in self.registry.rooms_for_user(user_id):
            if room.startswith(GROUP_ROOM_PREFIX):
                self._emit("user_status_update", payload, room, skip_sid=skip_sid)

    def send_to_user(self, user_id: str, event: str, payload: Any) -> None:
        self._emit(event, payload, user_room(user_id))

    def send_to_session(self, sid: str, event: str, payload: Any) -> None:
        self._emit(event, payload, sid)

    def emit_error(self, sid: str, error: AppError | str) -> None:
        """Report a failure to the originating session only."""
        if isinstance(error, AppError):
            payload = error.to_dict()
        else:
            payload = {"message": error, "reason": "error"}
        self._emit("error", payload, sid)
