"""Tests for the chat aggregate."""

from __future__ import annotations

import datetime
import unittest

from studyhub.chat.models import (
    Chat,
    FileMeta,
    MessageType,
    ParticipantRole,
)
from studyhub.errors import NotFoundError, PermissionDenied, ValidationError

NOW = datetime.datetime(2025, 3, 1, 9, 0, tzinfo=datetime.timezone.utc)


def at(minutes: int) -> datetime.datetime:
    return NOW + datetime.timedelta(minutes=minutes)


class ChatTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.chat = Chat.create("g1", ["alice", "bob"], "alice", NOW)

    def test_create_mirrors_members(self) -> None:
        self.assertEqual(self.chat.active_participant_ids, ["alice", "bob"])
        self.assertEqual(self.chat.participant("alice").role, ParticipantRole.ADMIN)
        self.assertEqual(self.chat.participant("bob").role, ParticipantRole.MEMBER)

    def test_messages_get_increasing_sequence_numbers(self) -> None:
        first = self.chat.post_message("alice", "hello", at(1))
        second = self.chat.post_message("bob", "hi", at(2))
        self.assertEqual((first.seq, second.seq), (1, 2))
        self.assertEqual([m.id for m in self.chat.messages], [first.id, second.id])

    def test_post_requires_active_participant(self) -> None:
        self.chat.remove_participant("bob", at(1))
        with self.assertRaises(PermissionDenied) as ctx:
            self.chat.post_message("bob", "still here?", at(2))
        self.assertEqual(ctx.exception.reason, "not_participant")
        with self.assertRaises(PermissionDenied):
            self.chat.post_message("mallory", "hey", at(2))

    def test_post_validates_content(self) -> None:
        with self.assertRaises(ValidationError):
            self.chat.post_message("alice", "   ", at(1))
        with self.assertRaises(ValidationError):
            self.chat.post_message("alice", "x" * 1001, at(1))
        self.chat.post_message("alice", "x" * 1000, at(1))
        self.assertEqual(len(self.chat.messages), 1)

    def test_attachments(self) -> None:
        with self.assertRaises(ValidationError):
            self.chat.post_message("alice", "pic", at(1), MessageType.IMAGE)

        self.chat.settings.allow_image_sharing = False
        with self.assertRaises(PermissionDenied):
            self.chat.post_message(
                "alice", "pic", at(1), MessageType.IMAGE, FileMeta("https://i/1.png")
            )

        too_big = FileMeta("https://f/1.pdf", "notes.pdf", 11 * 1024 * 1024)
        with self.assertRaises(ValidationError):
            self.chat.post_message("alice", "notes", at(1), MessageType.FILE, too_big)

        ok = FileMeta("https://f/1.pdf", "notes.pdf", 2048)
        message = self.chat.post_message("alice", "notes", at(1), MessageType.FILE, ok)
        self.assertEqual(message.file_name, "notes.pdf")

    def test_reply_to_unknown_message(self) -> None:
        with self.assertRaises(NotFoundError):
            self.chat.post_message("alice", "re", at(1), reply_to="missing")

    def test_unread_uses_last_seen_cursor(self) -> None:
        self.chat.post_message("alice", "one", at(1))
        self.chat.post_message("alice", "two", at(2))
        unread = [m.content for m in self.chat.unread_for("bob")]
        self.assertEqual(unread, ["one", "two"])
        self.assertEqual(self.chat.unread_for("alice"), [])

        self.chat.update_last_seen("bob", at(2))
        self.assertEqual(self.chat.unread_for("bob"), [])

        self.chat.update_last_seen("bob", at(0))
        self.assertEqual(self.chat.participant("bob").last_seen, at(2))

    def test_mark_read_is_idempotent(self) -> None:
        message = self.chat.post_message("alice", "read me", at(1))
        marked = self.chat.mark_read([message.id, "nope"], "bob", at(2))
        self.assertEqual(marked, [message.id])
        self.assertEqual(self.chat.mark_read([message.id], "bob", at(3)), [])
        self.assertEqual(len(message.read_by), 1)

    def test_reaction_replaces_previous(self) -> None:
        message = self.chat.post_message("alice", "nice", at(1))
        self.chat.react(message.id, "bob", "👍", at(2))
        self.chat.react(message.id, "bob", "🎉", at(3))
        self.assertEqual([r.emoji for r in message.reactions], ["🎉"])
        with self.assertRaises(NotFoundError):
            self.chat.react("missing", "bob", "👍", at(3))

    def test_edit_is_sender_only(self) -> None:
        message = self.chat.post_message("alice", "typo", at(1))
        with self.assertRaises(PermissionDenied):
            self.chat.edit_message(message.id, "bob", "fixed", at(2))
        edited = self.chat.edit_message(message.id, "alice", "fixed", at(2))
        self.assertTrue(edited.is_edited)
        self.assertEqual(edited.seq, 1)

    def test_rejoin_reactivates_participant(self) -> None:
        self.chat.remove_participant("bob", at(1))
        self.chat.add_participant("bob", at(2))
        self.assertEqual(len(self.chat.participants), 2)
        self.assertTrue(self.chat.participant("bob").is_active)

    def test_list_messages_pages_from_newest(self) -> None:
        for i in range(5):
            self.chat.post_message("alice", f"m{i}", at(i + 1))
        page, pagination = self.chat.list_messages(page=1, limit=2)
        self.assertEqual([m.content for m in page], ["m3", "m4"])
        self.assertTrue(pagination["hasMore"])
        page, pagination = self.chat.list_messages(page=3, limit=2)
        self.assertEqual([m.content for m in page], ["m0"])
        self.assertFalse(pagination["hasMore"])

    def test_round_trip(self) -> None:
        message = self.chat.post_message("alice", "persist me", at(1))
        self.chat.react(message.id, "bob", "👍", at(2))
        restored = Chat.from_dict(self.chat.to_dict())
        self.assertEqual(restored.messages[0].reactions[0].emoji, "👍")
        self.assertEqual(restored.participant("alice").last_seen, at(1))


if __name__ == "__main__":
    unittest.main()
