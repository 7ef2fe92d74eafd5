"""Tests for the live session registry."""

from __future__ import annotations

import threading
import unittest

from studyhub.realtime.registry import SessionRegistry


class SessionRegistryTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.registry = SessionRegistry()

    def test_join_requires_registered_session(self) -> None:
        self.assertFalse(self.registry.join("ghost", "group_g1"))
        self.registry.register("s1", "alice")
        self.assertTrue(self.registry.join("s1", "group_g1"))
        self.assertEqual(self.registry.members("group_g1"), {"s1"})
        self.assertEqual(self.registry.users_in("group_g1"), {"alice"})

    def test_unregister_clears_rooms_and_presence(self) -> None:
        self.registry.register("s1", "alice")
        self.registry.join("s1", "group_g1")
        self.registry.set_status("alice", "busy")

        user_id, rooms = self.registry.unregister("s1")

        self.assertEqual(user_id, "alice")
        self.assertEqual(rooms, {"group_g1"})
        self.assertEqual(self.registry.members("group_g1"), set())
        self.assertFalse(self.registry.is_online("alice"))
        self.assertEqual(self.registry.status_of("alice"), "offline")

    def test_user_stays_online_while_any_session_remains(self) -> None:
        self.registry.register("s1", "alice")
        self.registry.register("s2", "alice")
        self.registry.unregister("s1")
        self.assertTrue(self.registry.is_online("alice"))
        self.assertEqual(self.registry.sessions_for("alice"), {"s2"})

    def test_evict_removes_every_session_of_the_user(self) -> None:
        for sid in ("s1", "s2"):
            self.registry.register(sid, "alice")
            self.registry.join(sid, "group_g1")
        self.registry.register("s3", "bob")
        self.registry.join("s3", "group_g1")

        evicted = self.registry.evict("alice", "group_g1")

        self.assertEqual(sorted(evicted), ["s1", "s2"])
        self.assertEqual(self.registry.members("group_g1"), {"s3"})
        self.assertEqual(self.registry.rooms_for("s1"), set())

    def test_leave_is_idempotent(self) -> None:
        self.registry.register("s1", "alice")
        self.registry.join("s1", "group_g1")
        self.assertTrue(self.registry.leave("s1", "group_g1"))
        self.assertFalse(self.registry.leave("s1", "group_g1"))

    def test_rooms_for_user_spans_sessions(self) -> None:
        self.registry.register("s1", "alice")
        self.registry.register("s2", "alice")
        self.registry.join("s1", "group_g1")
        self.registry.join("s2", "user_alice")
        self.assertEqual(
            self.registry.rooms_for_user("alice"), {"group_g1", "user_alice"}
        )

    def test_concurrent_connects_and_disconnects(self) -> None:
        def churn(index: int) -> None:
            sid = f"s{index}"
            self.registry.register(sid, f"user{index % 5}")
            self.registry.join(sid, "group_g1")
            if index % 2:
                self.registry.unregister(sid)

        threads = [threading.Thread(target=churn, args=(i,)) for i in range(50)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        expected = {f"s{i}" for i in range(50) if i % 2 == 0}
        self.assertEqual(self.registry.members("group_g1"), expected)


if __name__ == "__main__":
    unittest.main()
