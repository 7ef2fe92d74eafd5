"""Service layer for notifications.

Delivery is fire-and-forget: a notification that cannot be stored or
pushed is logged and dropped, and never undoes the change that caused it.
"""

from __future__ import annotations

import datetime
import logging
from typing import TYPE_CHECKING, Any

from studyhub.core.constants import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    NOTIFICATION_MESSAGE_MAX_LENGTH,
    NOTIFICATION_TITLE_MAX_LENGTH,
    NOTIFICATIONS_COLLECTION,
    NOTIFICATION_TTL_DAYS,
)
from studyhub.errors import NotFoundError
from studyhub.extensions import coordinator
from studyhub.utils import as_utc, isoformat, utcnow

from .models import (
    ActionType,
    Notification,
    NotificationStatus,
    NotificationType,
    Priority,
)

if TYPE_CHECKING:
    from studyhub.core.store import DocumentStore
    from studyhub.group.models import Group

logger = logging.getLogger(__name__)


def serialize_notification(doc_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Render a stored notification for JSON and socket payloads."""
    return {
        "id": doc_id,
        "recipientId": data.get("recipientId"),
        "senderId": data.get("senderId"),
        "type": data.get("type"),
        "title": data.get("title"),
        "message": data.get("message"),
        "data": data.get("data", {}),
        "priority": data.get("priority"),
        "status": data.get("status"),
        "isRead": bool(data.get("isRead")),
        "readAt": isoformat(as_utc(data.get("readAt"))),
        "createdAt": isoformat(as_utc(data.get("createdAt"))),
        "expiresAt": isoformat(as_utc(data.get("expiresAt"))),
    }


def _is_live(data: dict[str, Any], now: datetime.datetime) -> bool:
    if data.get("status") == NotificationStatus.DISMISSED.value:
        return False
    expires_at = as_utc(data.get("expiresAt"))
    return expires_at is None or expires_at > now


class NotificationService:
    """Service class for notification operations."""

    @staticmethod
    def send(  # noqa: PLR0913
        store: DocumentStore,
        recipient_id: str,
        notification_type: NotificationType,
        title: str,
        message: str,
        data: dict[str, Any] | None = None,
        sender_id: str | None = None,
        priority: Priority = Priority.MEDIUM,
    ) -> dict[str, Any] | None:
        """Persist a notification and push it to the recipient's private room."""
        now = utcnow()
        record: Notification = {
            "recipientId": recipient_id,
            "senderId": sender_id,
            "type": notification_type.value,
            "title": title[:NOTIFICATION_TITLE_MAX_LENGTH],
            "message": message[:NOTIFICATION_MESSAGE_MAX_LENGTH],
            "data": data or {},
            "priority": priority.value,
            "status": NotificationStatus.UNREAD.value,
            "isRead": False,
            "readAt": None,
            "isPushSent": False,
            "createdAt": now,
            "expiresAt": now + datetime.timedelta(days=NOTIFICATION_TTL_DAYS),
        }
        try:
            ref = store.db.collection(NOTIFICATIONS_COLLECTION).document()
            ref.set(record)
        except Exception:
            logger.exception(
                "Failed to store %s notification for %s",
                notification_type.value,
                recipient_id,
            )
            return None

        payload = serialize_notification(ref.id, dict(record))
        try:
            coordinator.send_to_user(recipient_id, "new_notification", payload)
            ref.update({"isPushSent": True, "pushSentAt": utcnow()})
        except Exception:
            logger.warning(
                "Failed to push notification %s to %s",
                ref.id,
                recipient_id,
                exc_info=True,
            )
        return payload

    @staticmethod
    def send_many(
        store: DocumentStore, recipient_ids: list[str], **kwargs: Any
    ) -> int:
        """Send the same notification to several users; return how many were stored."""
        sent = 0
        for recipient_id in recipient_ids:
            if NotificationService.send(store, recipient_id, **kwargs) is not None:
                sent += 1
        return sent

    # -- builders ----------------------------------------------------------

    @staticmethod
    def group_invite(
        store: DocumentStore, group: Group, invitee_id: str, inviter_name: str
    ) -> dict[str, Any] | None:
        return NotificationService.send(
            store,
            invitee_id,
            NotificationType.GROUP_INVITE,
            title="Group Invitation",
            message=f"{inviter_name} invited you to join {group.name}",
            data={"groupId": group.id, "actionType": ActionType.JOIN.value},
            sender_id=group.creator_id,
            priority=Priority.HIGH,
        )

    @staticmethod
    def challenge_start(store: DocumentStore, group: Group) -> int:
        """Notify every active member except the creator that the clock is running."""
        recipients = [uid for uid in group.active_member_ids if uid != group.creator_id]
        return NotificationService.send_many(
            store,
            recipients,
            notification_type=NotificationType.CHALLENGE_START,
            title="Challenge Started!",
            message=(
                f"The {group.challenge.duration_days}-day challenge for "
                f"{group.name} has started. Good luck!"
            ),
            data={"groupId": group.id, "actionType": ActionType.VIEW.value},
            sender_id=group.creator_id,
            priority=Priority.HIGH,
        )

    @staticmethod
    def exam_time(store: DocumentStore, group: Group, actor_id: str) -> int:
        recipients = [uid for uid in group.active_member_ids if uid != actor_id]
        return NotificationService.send_many(
            store,
            recipients,
            notification_type=NotificationType.EXAM_TIME,
            title="Exam Time!",
            message=(
                f"The exam for {group.name} has started. You have "
                f"{group.exam.duration_minutes} minutes."
            ),
            data={"groupId": group.id, "actionType": ActionType.START_EXAM.value},
            sender_id=actor_id,
            priority=Priority.URGENT,
        )

    @staticmethod
    def marks_published(
        store: DocumentStore,
        group: Group,
        user_id: str,
        marks: float,
        grader_id: str,
    ) -> dict[str, Any] | None:
        return NotificationService.send(
            store,
            user_id,
            NotificationType.MARKS_PUBLISHED,
            title="Marks Published",
            message=(
                f"Your exam for {group.name} has been graded: "
                f"{marks}/{group.exam.max_marks}"
            ),
            data={
                "groupId": group.id,
                "marks": marks,
                "maxMarks": group.exam.max_marks,
                "actionType": ActionType.VIEW.value,
            },
            sender_id=grader_id,
            priority=Priority.HIGH,
        )

    # -- queries -----------------------------------------------------------

    @staticmethod
    def _docs_for(
        store: DocumentStore, user_id: str
    ) -> list[tuple[str, dict[str, Any]]]:
        query = store.db.collection(NOTIFICATIONS_COLLECTION).where(
            "recipientId", "==", user_id
        )
        docs = []
        for snapshot in query.stream():
            if snapshot.exists:
                docs.append((snapshot.id, snapshot.to_dict() or {}))
        return docs

    @staticmethod
    def list_for_user(
        store: DocumentStore,
        user_id: str,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        unread_only: bool = False,
    ) -> tuple[list[dict[str, Any]], dict[str, Any]]:
        """Return the user's live notifications, newest first."""
        now = utcnow()
        docs = [
            (doc_id, data)
            for doc_id, data in NotificationService._docs_for(store, user_id)
            if _is_live(data, now) and not (unread_only and data.get("isRead"))
        ]
        docs.sort(
            key=lambda item: as_utc(item[1].get("createdAt")) or now, reverse=True
        )

        page = max(1, page)
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        start = (page - 1) * limit
        items = [serialize_notification(i, d) for i, d in docs[start : start + limit]]
        return items, {
            "page": page,
            "limit": limit,
            "total": len(docs),
            "hasMore": start + limit < len(docs),
        }

    @staticmethod
    def unread_count(store: DocumentStore, user_id: str) -> int:
        """Count unread, undismissed, unexpired notifications."""
        now = utcnow()
        return sum(
            1
            for _, data in NotificationService._docs_for(store, user_id)
            if not data.get("isRead") and _is_live(data, now)
        )

    @staticmethod
    def mark_read(
        store: DocumentStore, user_id: str, notification_ids: list[str] | None = None
    ) -> list[str]:
        """Mark the given notifications (or all) read; return the ids changed."""
        now = utcnow()
        wanted = set(notification_ids) if notification_ids else None
        marked = []
        for doc_id, data in NotificationService._docs_for(store, user_id):
            if wanted is not None and doc_id not in wanted:
                continue
            if data.get("isRead") or not _is_live(data, now):
                continue
            store.ref(NOTIFICATIONS_COLLECTION, doc_id).update(
                {
                    "isRead": True,
                    "readAt": now,
                    "status": NotificationStatus.READ.value,
                }
            )
            marked.append(doc_id)
        return marked

    @staticmethod
    def dismiss(store: DocumentStore, user_id: str, notification_id: str) -> None:
        data = store.get(NOTIFICATIONS_COLLECTION, notification_id)
        if data is None or data.get("recipientId") != user_id:
            raise NotFoundError("Notification not found.")
        store.ref(NOTIFICATIONS_COLLECTION, notification_id).update(
            {"status": NotificationStatus.DISMISSED.value}
        )
