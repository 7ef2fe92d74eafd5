"""Service layer for group data access and orchestration.

Every write to a group runs inside ``DocumentStore.run_transaction``: the
group document is read, rebuilt as a :class:`Group`, mutated through the
aggregate and written back whole. Membership changes also rewrite the chat
participant list and the user's ``groups`` list in the same transaction.
Notifications and broadcasts only go out after the commit.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable

from studyhub.core.constants import (
    CHATS_COLLECTION,
    GROUPS_COLLECTION,
    USERS_COLLECTION,
)
from studyhub.directory import DirectoryService
from studyhub.errors import InvariantViolation, NotFoundError, PermissionDenied
from studyhub.extensions import coordinator
from studyhub.notification.services import NotificationService
from studyhub.utils import isoformat, utcnow

from .models import (
    Group,
    GroupSettings,
    InviteOutcome,
    timer_payload,
)

if TYPE_CHECKING:
    import datetime

    from google.cloud.firestore_v1.base_document import DocumentSnapshot
    from google.cloud.firestore_v1.transaction import Transaction

    from studyhub.chat.models import Chat
    from studyhub.core.store import DocKey, DocumentStore
    from studyhub.directory import UserProfile

logger = logging.getLogger(__name__)


def group_key(group_id: str) -> DocKey:
    return (GROUPS_COLLECTION, group_id)


def chat_key(group_id: str) -> DocKey:
    return (CHATS_COLLECTION, group_id)


def user_key(user_id: str) -> DocKey:
    return (USERS_COLLECTION, user_id)


def read_group(snapshot: DocumentSnapshot, group_id: str) -> Group:
    """Rebuild a live group from a transactional snapshot."""
    if not snapshot.exists:
        raise NotFoundError("Group not found.")
    group = Group.from_dict(group_id, snapshot.to_dict() or {})
    if not group.is_active:
        raise NotFoundError("Group not found.")
    return group


def read_chat(
    snapshot: DocumentSnapshot, group: Group, now: datetime.datetime
) -> Chat:
    """Rebuild the group's chat, creating it from the membership if missing."""
    from studyhub.chat.models import Chat

    if snapshot.exists:
        return Chat.from_dict(snapshot.to_dict() or {})
    return Chat.create(group.id, group.active_member_ids, group.creator_id, now)


def write_user_groups(
    transaction: Transaction,
    snapshot: DocumentSnapshot,
    group_id: str,
    member: bool,
) -> None:
    """Add or remove a group id on the user's ``groups`` list."""
    if not snapshot.exists:
        logger.warning("User %s has no profile document", snapshot.id)
        return
    groups = list((snapshot.to_dict() or {}).get("groups", []))
    if member and group_id not in groups:
        groups.append(group_id)
    elif not member and group_id in groups:
        groups.remove(group_id)
    else:
        return
    transaction.update(snapshot.reference, {"groups": groups})


class GroupService:
    """Service class for group-related operations."""

    # -- reads -------------------------------------------------------------

    @staticmethod
    def load(store: DocumentStore, group_id: str) -> Group | None:
        """Return the live group, or None if it is missing or deleted."""
        if not group_id:
            return None
        data = store.get(GROUPS_COLLECTION, group_id)
        if data is None or "challenge" not in data:
            return None
        group = Group.from_dict(group_id, data)
        return group if group.is_active else None

    @staticmethod
    def get_group(store: DocumentStore, group_id: str) -> Group:
        group = GroupService.load(store, group_id)
        if group is None:
            raise NotFoundError("Group not found.")
        return group

    @staticmethod
    def is_active_member(store: DocumentStore, group_id: str, user_id: str) -> bool:
        group = GroupService.load(store, group_id)
        return group is not None and group.is_active_member(user_id)

    @staticmethod
    def get_for_member(
        store: DocumentStore, user: UserProfile, group_id: str
    ) -> Group:
        """Load a group the user belongs to (admins may see any group)."""
        group = GroupService.get_group(store, group_id)
        if not (user.is_admin or group.is_active_member(user.id)):
            raise PermissionDenied("Not a member of this group.", "not_member")
        return group

    @staticmethod
    def get_visible(store: DocumentStore, user: UserProfile, group_id: str) -> Group:
        """Load a group for viewing; private groups are members-only."""
        group = GroupService.get_group(store, group_id)
        if (
            group.settings.is_private
            and not user.is_admin
            and not group.is_active_member(user.id)
            and group.pending_invitation(user.id) is None
        ):
            raise PermissionDenied("This group is private.", "not_member")
        return group

    @staticmethod
    def list_for_user(store: DocumentStore, user: UserProfile) -> list[Group]:
        """Return the live groups the user is an active member of."""
        groups = []
        for group_id in user.groups:
            group = GroupService.load(store, group_id)
            if group is not None and group.is_active_member(user.id):
                groups.append(group)
        groups.sort(
            key=lambda g: g.updated_at or g.created_at or utcnow(), reverse=True
        )
        return groups

    @staticmethod
    def timer(store: DocumentStore, user: UserProfile, group_id: str) -> dict[str, Any]:
        group = GroupService.get_for_member(store, user, group_id)
        return timer_payload(group, utcnow())

    # -- writes ------------------------------------------------------------

    @staticmethod
    def mutate(
        store: DocumentStore,
        group_id: str,
        mutation: Callable[[Group, datetime.datetime], Any],
    ) -> tuple[Group, Any]:
        """Apply ``mutation`` to a group atomically and persist it."""
        now = utcnow()

        def apply(
            transaction: Transaction, snapshots: dict[DocKey, DocumentSnapshot]
        ) -> tuple[Group, Any]:
            snapshot = snapshots[group_key(group_id)]
            group = read_group(snapshot, group_id)
            result = mutation(group, now)
            transaction.set(snapshot.reference, group.to_dict())
            return group, result

        return store.run_transaction([group_key(group_id)], apply)

    @staticmethod
    def create_group(  # noqa: PLR0913
        store: DocumentStore,
        creator: UserProfile,
        name: str,
        subject: str,
        chapter: str,
        duration_days: int,
        description: str = "",
        settings: GroupSettings | None = None,
    ) -> Group:
        """Create a group, its chat, and link it on the creator's profile."""
        from studyhub.chat.models import Chat

        now = utcnow()
        group_id = store.new_id(GROUPS_COLLECTION)
        group = Group.create(
            group_id,
            creator.id,
            name,
            subject,
            chapter,
            duration_days,
            now,
            description=description,
            settings=settings,
        )
        chat = Chat.create(group_id, [creator.id], creator.id, now)

        def apply(
            transaction: Transaction, snapshots: dict[DocKey, DocumentSnapshot]
        ) -> Group:
            transaction.set(snapshots[group_key(group_id)].reference, group.to_dict())
            transaction.set(snapshots[chat_key(group_id)].reference, chat.to_dict())
            write_user_groups(
                transaction, snapshots[user_key(creator.id)], group_id, True
            )
            return group

        store.run_transaction(
            [group_key(group_id), chat_key(group_id), user_key(creator.id)], apply
        )
        logger.info("Group %s created by %s", group_id, creator.id)
        return group

    @staticmethod
    def invite(
        store: DocumentStore, inviter: UserProfile, group_id: str, user_ids: list[str]
    ) -> list[InviteOutcome]:
        """Invite users one by one and notify every successful invitee."""
        known = DirectoryService.existing_user_ids(store, user_ids)
        group, outcomes = GroupService.mutate(
            store,
            group_id,
            lambda group, now: group.invite(inviter.id, user_ids, known, now),
        )
        for outcome in outcomes:
            if outcome.ok:
                NotificationService.group_invite(
                    store, group, outcome.user_id, inviter.display_name
                )
        return outcomes

    @staticmethod
    def list_invitations(
        store: DocumentStore, actor: UserProfile, group_id: str
    ) -> list[dict[str, Any]]:
        """Creator view of invitations; stale ones are expired and persisted."""

        def expire(group: Group, now: datetime.datetime) -> None:
            if not (actor.is_admin or group.is_creator(actor.id)):
                raise PermissionDenied("Only the group creator can view invitations.")
            group.expire_invitations(now)

        group, _ = GroupService.mutate(store, group_id, expire)
        return [
            {
                **invitation.to_dict(),
                "invitedAt": isoformat(invitation.invited_at),
                "expiresAt": isoformat(invitation.expires_at),
                "respondedAt": isoformat(invitation.responded_at),
            }
            for invitation in group.invitations
        ]

    @staticmethod
    def join(store: DocumentStore, user: UserProfile, group_id: str) -> Group:
        """Accept an invitation; mirrors the member into chat and profile."""
        now = utcnow()

        def apply(
            transaction: Transaction, snapshots: dict[DocKey, DocumentSnapshot]
        ) -> tuple[Group, InvariantViolation | None]:
            group_snapshot = snapshots[group_key(group_id)]
            group = read_group(group_snapshot, group_id)
            try:
                group.join(user.id, now)
            except InvariantViolation as e:
                if e.reason != "invitation_expired":
                    raise
                # The expiry itself must stick even though the join fails.
                transaction.set(group_snapshot.reference, group.to_dict())
                return group, e

            chat = read_chat(snapshots[chat_key(group_id)], group, now)
            chat.add_participant(user.id, now)
            transaction.set(group_snapshot.reference, group.to_dict())
            transaction.set(snapshots[chat_key(group_id)].reference, chat.to_dict())
            write_user_groups(
                transaction, snapshots[user_key(user.id)], group_id, True
            )
            return group, None

        group, error = store.run_transaction(
            [group_key(group_id), chat_key(group_id), user_key(user.id)], apply
        )
        if error is not None:
            raise error
        logger.info("User %s joined group %s", user.id, group_id)
        return group

    @staticmethod
    def decline(store: DocumentStore, user: UserProfile, group_id: str) -> Group:
        group, _ = GroupService.mutate(
            store, group_id, lambda group, now: group.decline(user.id, now)
        )
        return group

    @staticmethod
    def _end_membership(
        store: DocumentStore,
        group_id: str,
        user_id: str,
        change: Callable[[Group, datetime.datetime], Any],
    ) -> Group:
        now = utcnow()

        def apply(
            transaction: Transaction, snapshots: dict[DocKey, DocumentSnapshot]
        ) -> Group:
            group_snapshot = snapshots[group_key(group_id)]
            group = read_group(group_snapshot, group_id)
            change(group, now)
            chat = read_chat(snapshots[chat_key(group_id)], group, now)
            chat.remove_participant(user_id, now)
            transaction.set(group_snapshot.reference, group.to_dict())
            transaction.set(snapshots[chat_key(group_id)].reference, chat.to_dict())
            write_user_groups(
                transaction, snapshots[user_key(user_id)], group_id, False
            )
            return group

        return store.run_transaction(
            [group_key(group_id), chat_key(group_id), user_key(user_id)],
            apply,
            after_commit=lambda _: coordinator.evict_from_group(user_id, group_id),
        )

    @staticmethod
    def leave(store: DocumentStore, user: UserProfile, group_id: str) -> Group:
        group = GroupService._end_membership(
            store, group_id, user.id, lambda group, now: group.leave(user.id, now)
        )
        logger.info("User %s left group %s", user.id, group_id)
        return group

    @staticmethod
    def remove_member(
        store: DocumentStore, actor: UserProfile, group_id: str, user_id: str
    ) -> Group:
        group = GroupService._end_membership(
            store,
            group_id,
            user_id,
            lambda group, now: group.remove_member(actor.id, user_id, now),
        )
        logger.info("User %s removed from group %s by %s", user_id, group_id, actor.id)
        return group

    @staticmethod
    def delete(store: DocumentStore, actor: UserProfile, group_id: str) -> Group:
        group, _ = GroupService.mutate(
            store, group_id, lambda group, now: group.delete(actor.id, now)
        )
        coordinator.broadcast_challenge_update(
            group_id, {"status": group.challenge.status.value, "isActive": False}
        )
        logger.info("Group %s deleted by %s", group_id, actor.id)
        return group

    @staticmethod
    def _announce_challenge(group: Group) -> None:
        now = utcnow()
        coordinator.broadcast_timer_update(group.id, timer_payload(group, now))
        coordinator.broadcast_challenge_update(
            group.id,
            {
                "status": group.challenge.status.value,
                "startTime": isoformat(group.challenge.start_time),
                "endTime": isoformat(group.challenge.end_time),
                "examStarted": group.challenge.exam_started,
            },
        )

    @staticmethod
    def start_challenge(
        store: DocumentStore, actor: UserProfile, group_id: str
    ) -> Group:
        """Start the clock, notify the other members and update every client."""
        group, _ = GroupService.mutate(
            store, group_id, lambda group, now: group.start_challenge(actor.id, now)
        )
        NotificationService.challenge_start(store, group)
        GroupService._announce_challenge(group)
        logger.info("Challenge started for group %s", group_id)
        return group

    @staticmethod
    def complete_challenge(
        store: DocumentStore, actor: UserProfile, group_id: str
    ) -> Group:
        group, _ = GroupService.mutate(
            store, group_id, lambda group, now: group.complete(actor.id, now)
        )
        GroupService._announce_challenge(group)
        return group

    @staticmethod
    def cancel_challenge(
        store: DocumentStore, actor: UserProfile, group_id: str
    ) -> Group:
        group, _ = GroupService.mutate(
            store, group_id, lambda group, now: group.cancel(actor.id, now)
        )
        GroupService._announce_challenge(group)
        return group
