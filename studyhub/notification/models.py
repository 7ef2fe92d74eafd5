"""Data models for the notification blueprint."""

from __future__ import annotations

from enum import Enum
from typing import Any

from studyhub.core.types import FirestoreDocument


class NotificationType(str, Enum):
    GROUP_INVITE = "group_invite"
    CHALLENGE_START = "challenge_start"
    EXAM_TIME = "exam_time"
    MARKS_PUBLISHED = "marks_published"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class NotificationStatus(str, Enum):
    UNREAD = "unread"
    READ = "read"
    DISMISSED = "dismissed"


class ActionType(str, Enum):
    """What the client should offer when the notification is opened."""

    ACCEPT = "accept"
    DECLINE = "decline"
    VIEW = "view"
    JOIN = "join"
    START_EXAM = "start_exam"
    SUBMIT = "submit"
    NONE = "none"


class Notification(FirestoreDocument, total=False):
    """A notification document in Firestore."""

    recipientId: str
    senderId: str | None
    type: str
    title: str
    message: str
    data: dict[str, Any]
    priority: str
    status: str
    isRead: bool
    readAt: Any
    isPushSent: bool
    pushSentAt: Any
    expiresAt: Any
