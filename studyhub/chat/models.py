"""Data models for the chat blueprint.

One ``Chat`` document exists per group and shares the group's id. Messages
are embedded in the document as an append-only log; ``seq`` is the
message's position in that log and is the only ordering clients should
trust.
"""

from __future__ import annotations

import datetime
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from studyhub.core import constants
from studyhub.errors import NotFoundError, PermissionDenied, ValidationError
from studyhub.utils import as_utc, isoformat


class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    SYSTEM = "system"


class ParticipantRole(str, Enum):
    MEMBER = "member"
    ADMIN = "admin"


@dataclass
class Reaction:
    user_id: str
    emoji: str
    added_at: datetime.datetime

    def to_dict(self) -> dict[str, Any]:
        return {"userId": self.user_id, "emoji": self.emoji, "addedAt": self.added_at}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Reaction:
        return cls(data["userId"], data["emoji"], as_utc(data["addedAt"]))


@dataclass
class ReadReceipt:
    user_id: str
    read_at: datetime.datetime

    def to_dict(self) -> dict[str, Any]:
        return {"userId": self.user_id, "readAt": self.read_at}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReadReceipt:
        return cls(data["userId"], as_utc(data["readAt"]))


@dataclass
class FileMeta:
    """Metadata of an already-stored attachment."""

    url: str
    name: Optional[str] = None
    size: Optional[int] = None


@dataclass
class Message:
    """A single chat message."""

    id: str
    seq: int
    sender_id: str
    content: str
    created_at: datetime.datetime
    message_type: MessageType = MessageType.TEXT
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    is_edited: bool = False
    edited_at: Optional[datetime.datetime] = None
    reactions: list[Reaction] = field(default_factory=list)
    read_by: list[ReadReceipt] = field(default_factory=list)
    reply_to: Optional[str] = None

    def is_read_by(self, user_id: str) -> bool:
        return any(r.user_id == user_id for r in self.read_by)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "seq": self.seq,
            "senderId": self.sender_id,
            "content": self.content,
            "type": self.message_type.value,
            "fileUrl": self.file_url,
            "fileName": self.file_name,
            "fileSize": self.file_size,
            "isEdited": self.is_edited,
            "editedAt": self.edited_at,
            "reactions": [r.to_dict() for r in self.reactions],
            "readBy": [r.to_dict() for r in self.read_by],
            "replyTo": self.reply_to,
            "createdAt": self.created_at,
        }

    def to_api(self) -> dict[str, Any]:
        data = self.to_dict()
        data["createdAt"] = isoformat(self.created_at)
        data["editedAt"] = isoformat(self.edited_at)
        data["reactions"] = [
            {**r.to_dict(), "addedAt": isoformat(r.added_at)} for r in self.reactions
        ]
        data["readBy"] = [
            {**r.to_dict(), "readAt": isoformat(r.read_at)} for r in self.read_by
        ]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        return cls(
            id=data["id"],
            seq=int(data["seq"]),
            sender_id=data["senderId"],
            content=data["content"],
            created_at=as_utc(data["createdAt"]),
            message_type=MessageType(data.get("type", "text")),
            file_url=data.get("fileUrl"),
            file_name=data.get("fileName"),
            file_size=data.get("fileSize"),
            is_edited=bool(data.get("isEdited", False)),
            edited_at=as_utc(data.get("editedAt")),
            reactions=[Reaction.from_dict(r) for r in data.get("reactions", [])],
            read_by=[ReadReceipt.from_dict(r) for r in data.get("readBy", [])],
            reply_to=data.get("replyTo"),
        )


@dataclass
class Participant:
    user_id: str
    joined_at: datetime.datetime
    last_seen: datetime.datetime
    role: ParticipantRole = ParticipantRole.MEMBER
    is_active: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "joinedAt": self.joined_at,
            "lastSeen": self.last_seen,
            "role": self.role.value,
            "isActive": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Participant:
        return cls(
            user_id=data["userId"],
            joined_at=as_utc(data["joinedAt"]),
            last_seen=as_utc(data["lastSeen"]),
            role=ParticipantRole(data.get("role", "member")),
            is_active=bool(data.get("isActive", True)),
        )


@dataclass
class ChatSettings:
    allow_file_sharing: bool = True
    allow_image_sharing: bool = True
    max_file_size: int = constants.DEFAULT_MAX_FILE_SIZE
    muted_users: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowFileSharing": self.allow_file_sharing,
            "allowImageSharing": self.allow_image_sharing,
            "maxFileSize": self.max_file_size,
            "mutedUsers": list(self.muted_users),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChatSettings:
        return cls(
            allow_file_sharing=bool(data.get("allowFileSharing", True)),
            allow_image_sharing=bool(data.get("allowImageSharing", True)),
            max_file_size=int(
                data.get("maxFileSize", constants.DEFAULT_MAX_FILE_SIZE)
            ),
            muted_users=list(data.get("mutedUsers", [])),
        )


@dataclass
class Chat:
    """The message log of one group."""

    group_id: str
    participants: list[Participant] = field(default_factory=list)
    messages: list[Message] = field(default_factory=list)
    settings: ChatSettings = field(default_factory=ChatSettings)
    is_active: bool = True
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None

    @classmethod
    def create(
        cls,
        group_id: str,
        member_ids: list[str],
        creator_id: str,
        now: datetime.datetime,
    ) -> Chat:
        """Create a chat whose participants mirror the group's active members."""
        chat = cls(group_id=group_id, created_at=now, updated_at=now)
        for user_id in member_ids:
            role = (
                ParticipantRole.ADMIN
                if user_id == creator_id
                else ParticipantRole.MEMBER
            )
            chat.add_participant(user_id, now, role)
        return chat

    # -- queries -----------------------------------------------------------

    def participant(self, user_id: str) -> Participant | None:
        for participant in self.participants:
            if participant.user_id == user_id:
                return participant
        return None

    def message(self, message_id: str) -> Message | None:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None

    def _require_message(self, message_id: str) -> Message:
        message = self.message(message_id)
        if message is None:
            raise NotFoundError("Message not found.", "message_not_found")
        return message

    @property
    def active_participant_ids(self) -> list[str]:
        return [p.user_id for p in self.participants if p.is_active]

    @property
    def latest_message(self) -> Message | None:
        return self.messages[-1] if self.messages else None

    def unread_for(self, user_id: str) -> list[Message]:
        """Messages from others created after the user's last-seen cursor."""
        participant = self.participant(user_id)
        if participant is None:
            return []
        return [
            m
            for m in self.messages
            if m.created_at > participant.last_seen and m.sender_id != user_id
        ]

    def list_messages(
        self, page: int = 1, limit: int = constants.DEFAULT_PAGE_SIZE
    ) -> tuple[list[Message], dict[str, Any]]:
        """Return one page counted from the newest message, oldest first."""
        page = max(1, page)
        limit = max(1, min(limit, constants.MAX_PAGE_SIZE))
        total = len(self.messages)
        end = max(0, total - (page - 1) * limit)
        start = max(0, end - limit)
        pagination = {
            "page": page,
            "limit": limit,
            "total": total,
            "hasMore": start > 0,
        }
        return self.messages[start:end], pagination

    # -- participants ------------------------------------------------------

    def add_participant(
        self,
        user_id: str,
        now: datetime.datetime,
        role: ParticipantRole = ParticipantRole.MEMBER,
    ) -> Participant:
        """Add a participant, reactivating rather than duplicating."""
        participant = self.participant(user_id)
        if participant is not None:
            if not participant.is_active:
                participant.is_active = True
                participant.joined_at = now
            return participant
        participant = Participant(
            user_id=user_id, joined_at=now, last_seen=now, role=role
        )
        self.participants.append(participant)
        self.updated_at = now
        return participant

    def remove_participant(self, user_id: str, now: datetime.datetime) -> None:
        participant = self.participant(user_id)
        if participant is not None and participant.is_active:
            participant.is_active = False
            self.updated_at = now

    def update_last_seen(self, user_id: str, now: datetime.datetime) -> None:
        """Advance the user's read cursor; it never moves backward."""
        participant = self.participant(user_id)
        if participant is not None and now > participant.last_seen:
            participant.last_seen = now

    # -- messages ----------------------------------------------------------

    def post_message(  # noqa: PLR0913
        self,
        sender_id: str,
        content: str,
        now: datetime.datetime,
        message_type: MessageType = MessageType.TEXT,
        file: FileMeta | None = None,
        reply_to: str | None = None,
    ) -> Message:
        """Append a message to the log and return it with its sequence number."""
        participant = self.participant(sender_id)
        if message_type is not MessageType.SYSTEM and (
            participant is None or not participant.is_active
        ):
            raise PermissionDenied("You are not part of this chat.", "not_participant")
        if sender_id in self.settings.muted_users:
            raise PermissionDenied("You are muted in this chat.", "muted")

        content = (content or "").strip()
        if not content:
            raise ValidationError(
                errors=[{"field": "content", "message": "Message cannot be empty."}]
            )
        if len(content) > constants.MAX_MESSAGE_LENGTH:
            raise ValidationError(
                errors=[
                    {
                        "field": "content",
                        "message": (
                            "Message cannot exceed "
                            f"{constants.MAX_MESSAGE_LENGTH} characters."
                        ),
                    }
                ]
            )
        if message_type is MessageType.IMAGE and not self.settings.allow_image_sharing:
            raise PermissionDenied("Image sharing is disabled.", "images_disabled")
        if message_type is MessageType.FILE and not self.settings.allow_file_sharing:
            raise PermissionDenied("File sharing is disabled.", "files_disabled")
        if message_type in (MessageType.IMAGE, MessageType.FILE) and not (
            file and file.url
        ):
            raise ValidationError(
                errors=[{"field": "fileUrl", "message": "An attachment is required."}]
            )
        if file and file.size and file.size > self.settings.max_file_size:
            raise ValidationError(
                errors=[{"field": "fileSize", "message": "Attachment is too large."}]
            )
        if reply_to is not None and self.message(reply_to) is None:
            raise NotFoundError("Replied-to message not found.", "message_not_found")

        message = Message(
            id=uuid.uuid4().hex,
            seq=len(self.messages) + 1,
            sender_id=sender_id,
            content=content,
            created_at=now,
            message_type=message_type,
            file_url=file.url if file else None,
            file_name=file.name if file else None,
            file_size=file.size if file else None,
            reply_to=reply_to,
        )
        self.messages.append(message)
        if participant is not None:
            self.update_last_seen(sender_id, now)
        self.updated_at = now
        return message

    def edit_message(
        self, message_id: str, user_id: str, content: str, now: datetime.datetime
    ) -> Message:
        message = self._require_message(message_id)
        if message.sender_id != user_id:
            raise PermissionDenied("You can only edit your own messages.")
        if message.message_type is MessageType.SYSTEM:
            raise PermissionDenied("System messages cannot be edited.")
        content = (content or "").strip()
        if not content or len(content) > constants.MAX_MESSAGE_LENGTH:
            raise ValidationError(
                errors=[{"field": "content", "message": "Invalid message content."}]
            )
        message.content = content
        message.is_edited = True
        message.edited_at = now
        self.updated_at = now
        return message

    def mark_read(
        self, message_ids: list[str], user_id: str, now: datetime.datetime
    ) -> list[str]:
        """Record read receipts, returning the ids that were newly marked.

        Unknown ids are skipped and repeated reads are no-ops.
        """
        marked = []
        for message_id in message_ids:
            message = self.message(message_id)
            if message is None or message.is_read_by(user_id):
                continue
            message.read_by.append(ReadReceipt(user_id=user_id, read_at=now))
            marked.append(message_id)
        self.update_last_seen(user_id, now)
        return marked

    def react(
        self, message_id: str, user_id: str, emoji: str, now: datetime.datetime
    ) -> Reaction:
        """Set the user's reaction on a message, replacing any earlier one."""
        emoji = (emoji or "").strip()
        if not emoji or len(emoji) > constants.MAX_EMOJI_LENGTH:
            raise ValidationError(
                errors=[{"field": "emoji", "message": "Invalid emoji."}]
            )
        message = self._require_message(message_id)
        message.reactions = [r for r in message.reactions if r.user_id != user_id]
        reaction = Reaction(user_id=user_id, emoji=emoji, added_at=now)
        message.reactions.append(reaction)
        self.updated_at = now
        return reaction

    # -- persistence -------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        latest = self.latest_message
        return {
            "groupId": self.group_id,
            "participants": [p.to_dict() for p in self.participants],
            "messages": [m.to_dict() for m in self.messages],
            "settings": self.settings.to_dict(),
            "stats": {
                "totalMessages": len(self.messages),
                "totalParticipants": len(self.active_participant_ids),
                "lastActivity": latest.created_at if latest else self.updated_at,
            },
            "isActive": self.is_active,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Chat:
        return cls(
            group_id=data["groupId"],
            participants=[
                Participant.from_dict(p) for p in data.get("participants", [])
            ],
            messages=[Message.from_dict(m) for m in data.get("messages", [])],
            settings=ChatSettings.from_dict(data.get("settings", {})),
            is_active=bool(data.get("isActive", True)),
            created_at=as_utc(data.get("createdAt")),
            updated_at=as_utc(data.get("updatedAt")),
        )
