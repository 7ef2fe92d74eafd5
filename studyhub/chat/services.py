"""Service layer for chat operations.

Chat writes are serialized per chat document. New messages are broadcast
from the post-commit hook while that document's lock is still held, so the
room sees messages in exactly the order they were appended.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable

from studyhub.core.constants import DEFAULT_PAGE_SIZE, UNREAD_PREVIEW_LIMIT
from studyhub.extensions import coordinator
from studyhub.group.services import GroupService, chat_key, read_chat
from studyhub.utils import utcnow

from .models import Chat, FileMeta, MessageType

if TYPE_CHECKING:
    import datetime

    from google.cloud.firestore_v1.base_document import DocumentSnapshot
    from google.cloud.firestore_v1.transaction import Transaction

    from studyhub.core.store import DocKey, DocumentStore
    from studyhub.directory import UserProfile
    from studyhub.group.models import Group


class ChatService:
    """Service class for chat-related operations."""

    @staticmethod
    def _mutate(
        store: DocumentStore,
        group: Group,
        mutation: Callable[[Chat, datetime.datetime], Any],
        after_commit: Callable[[Any], None] | None = None,
    ) -> Any:
        now = utcnow()

        def apply(
            transaction: Transaction, snapshots: dict[DocKey, DocumentSnapshot]
        ) -> Any:
            snapshot = snapshots[chat_key(group.id)]
            chat = read_chat(snapshot, group, now)
            result = mutation(chat, now)
            transaction.set(snapshot.reference, chat.to_dict())
            return result

        return store.run_transaction([chat_key(group.id)], apply, after_commit)

    @staticmethod
    def _read(store: DocumentStore, group: Group) -> Chat:
        snapshot = store.ref(*chat_key(group.id)).get()
        return read_chat(snapshot, group, utcnow())

    @staticmethod
    def list_messages(
        store: DocumentStore,
        user: UserProfile,
        group_id: str,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> dict[str, Any]:
        group = GroupService.get_for_member(store, user, group_id)
        chat = ChatService._read(store, group)
        messages, pagination = chat.list_messages(page, limit)
        return {
            "messages": [m.to_api() for m in messages],
            "participants": [
                {
                    "userId": p.user_id,
                    "role": p.role.value,
                    "isActive": p.is_active,
                    "online": coordinator.registry.is_online(p.user_id),
                }
                for p in chat.participants
            ],
            "pagination": pagination,
        }

    @staticmethod
    def post_message(  # noqa: PLR0913
        store: DocumentStore,
        user: UserProfile,
        group_id: str,
        content: str,
        message_type: str = MessageType.TEXT.value,
        file: FileMeta | None = None,
        reply_to: str | None = None,
    ) -> dict[str, Any]:
        """Append a message and broadcast it to the group room."""
        group = GroupService.get_for_member(store, user, group_id)
        kind = MessageType(message_type)

        message = ChatService._mutate(
            store,
            group,
            lambda chat, now: chat.post_message(
                user.id, content, now, kind, file=file, reply_to=reply_to
            ).to_api(),
            after_commit=lambda message: coordinator.broadcast_message(
                group_id, {**message, "senderName": user.display_name}
            ),
        )
        return message

    @staticmethod
    def edit_message(
        store: DocumentStore,
        user: UserProfile,
        group_id: str,
        message_id: str,
        content: str,
    ) -> dict[str, Any]:
        group = GroupService.get_for_member(store, user, group_id)
        return ChatService._mutate(
            store,
            group,
            lambda chat, now: chat.edit_message(
                message_id, user.id, content, now
            ).to_api(),
            after_commit=lambda message: coordinator.broadcast_message_edit(
                group_id, message
            ),
        )

    @staticmethod
    def react(
        store: DocumentStore,
        user: UserProfile,
        group_id: str,
        message_id: str,
        emoji: str,
    ) -> dict[str, Any]:
        group = GroupService.get_for_member(store, user, group_id)
        reaction = ChatService._mutate(
            store,
            group,
            lambda chat, now: chat.react(message_id, user.id, emoji, now),
            after_commit=lambda reaction: coordinator.broadcast_reaction(
                group_id, message_id, user.id, reaction.emoji
            ),
        )
        return {"messageId": message_id, "userId": user.id, "emoji": reaction.emoji}

    @staticmethod
    def mark_read(
        store: DocumentStore,
        user: UserProfile,
        group_id: str,
        message_ids: list[str] | None = None,
        skip_sid: str | None = None,
    ) -> list[str]:
        """Record read receipts and advance the user's cursor."""
        group = GroupService.get_for_member(store, user, group_id)
        marked = ChatService._mutate(
            store,
            group,
            lambda chat, now: chat.mark_read(message_ids or [], user.id, now),
        )
        if marked:
            coordinator.broadcast_read_receipt(
                group_id, user.id, marked, skip_sid=skip_sid
            )
        return marked

    @staticmethod
    def unread(
        store: DocumentStore, user: UserProfile, group_id: str
    ) -> dict[str, Any]:
        group = GroupService.get_for_member(store, user, group_id)
        messages = ChatService._read(store, group).unread_for(user.id)
        return {
            "unreadCount": len(messages),
            "unreadMessages": [m.to_api() for m in messages[-UNREAD_PREVIEW_LIMIT:]],
        }
