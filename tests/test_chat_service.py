"""Tests for chat services and their broadcasts."""

from __future__ import annotations

import datetime
import threading
import unittest
from unittest.mock import patch

from studyhub.chat.services import ChatService
from studyhub.errors import PermissionDenied
from studyhub.group.services import GroupService
from studyhub.realtime.coordinator import group_room
from studyhub.utils import utcnow
from tests.helpers import StoreTestCase


class ChatServiceTestCase(StoreTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.creator = self.create_user("creator", display_name="Casey")
        self.bob = self.create_user("bob", display_name="Bob")
        self.outsider = self.create_user("eve")
        group = GroupService.create_group(
            self.store,
            self.creator,
            name="Essay Club",
            subject="English",
            chapter="Poetry",
            duration_days=5,
        )
        self.group_id = group.id
        GroupService.invite(self.store, self.creator, self.group_id, ["bob"])
        GroupService.join(self.store, self.bob, self.group_id)

    def test_post_broadcasts_in_order_with_sender_name(self) -> None:
        for text in ("one", "two", "three"):
            ChatService.post_message(self.store, self.bob, self.group_id, text)

        broadcasts = self.transport.events("new_message")
        self.assertEqual(
            [b["payload"]["message"]["content"] for b in broadcasts],
            ["one", "two", "three"],
        )
        self.assertEqual(
            [b["payload"]["message"]["seq"] for b in broadcasts], [1, 2, 3]
        )
        self.assertTrue(
            all(b["to"] == group_room(self.group_id) for b in broadcasts)
        )
        self.assertEqual(broadcasts[0]["payload"]["message"]["senderName"], "Bob")
        self.assertIsNone(broadcasts[0]["skip_sid"])

    def test_concurrent_senders_get_dense_ordered_seq(self) -> None:
        barrier = threading.Barrier(20)

        def send(n: int) -> None:
            sender = self.bob if n % 2 else self.creator
            barrier.wait()
            ChatService.post_message(self.store, sender, self.group_id, f"m{n}")

        threads = [threading.Thread(target=send, args=(n,)) for n in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        stored = [m["seq"] for m in self.chat_doc(self.group_id)["messages"]]
        self.assertEqual(sorted(stored), list(range(1, 21)))
        broadcast = [
            b["payload"]["message"]["seq"]
            for b in self.transport.events("new_message")
        ]
        self.assertEqual(broadcast, list(range(1, 21)))

    def test_outsider_cannot_post(self) -> None:
        with self.assertRaises(PermissionDenied):
            ChatService.post_message(self.store, self.outsider, self.group_id, "hi")
        self.assertEqual(self.transport.events("new_message"), [])
        self.assertEqual(self.chat_doc(self.group_id)["messages"], [])

    def test_list_messages_pages_from_newest(self) -> None:
        for i in range(5):
            ChatService.post_message(self.store, self.bob, self.group_id, f"m{i}")
        listing = ChatService.list_messages(
            self.store, self.creator, self.group_id, page=1, limit=2
        )
        self.assertEqual([m["content"] for m in listing["messages"]], ["m3", "m4"])
        self.assertTrue(listing["pagination"]["hasMore"])
        roles = {p["userId"]: p["role"] for p in listing["participants"]}
        self.assertEqual(roles, {"creator": "admin", "bob": "member"})

    def test_mark_read_skips_originating_session(self) -> None:
        message = ChatService.post_message(
            self.store, self.bob, self.group_id, "read me"
        )
        marked = ChatService.mark_read(
            self.store, self.creator, self.group_id, [message["id"]], skip_sid="s1"
        )
        self.assertEqual(marked, [message["id"]])
        receipt = self.transport.events("messages_read")[0]
        self.assertEqual(receipt["skip_sid"], "s1")
        self.assertEqual(receipt["payload"]["userId"], "creator")

        again = ChatService.mark_read(
            self.store, self.creator, self.group_id, [message["id"]]
        )
        self.assertEqual(again, [])
        self.assertEqual(len(self.transport.events("messages_read")), 1)

    def test_unread_counts_messages_after_cursor(self) -> None:
        later = utcnow() + datetime.timedelta(minutes=5)
        with patch("studyhub.chat.services.utcnow", return_value=later):
            ChatService.post_message(self.store, self.bob, self.group_id, "ping")
        unread = ChatService.unread(self.store, self.creator, self.group_id)
        self.assertEqual(unread["unreadCount"], 1)
        self.assertEqual(unread["unreadMessages"][0]["content"], "ping")
        self.assertEqual(
            ChatService.unread(self.store, self.bob, self.group_id)["unreadCount"], 0
        )

    def test_edit_and_react_broadcast(self) -> None:
        message = ChatService.post_message(self.store, self.bob, self.group_id, "tpyo")
        ChatService.edit_message(
            self.store, self.bob, self.group_id, message["id"], "typo"
        )
        edited = self.transport.events("message_edited")[0]["payload"]
        self.assertEqual(edited["content"], "typo")

        with self.assertRaises(PermissionDenied):
            ChatService.edit_message(
                self.store, self.creator, self.group_id, message["id"], "nope"
            )

        for emoji in ("👍", "🎉"):
            ChatService.react(
                self.store, self.creator, self.group_id, message["id"], emoji
            )
        stored = self.chat_doc(self.group_id)["messages"][0]
        self.assertEqual([r["emoji"] for r in stored["reactions"]], ["🎉"])
        self.assertEqual(len(self.transport.events("message_reaction")), 2)


if __name__ == "__main__":
    unittest.main()
