"""Shared base classes for service and route tests."""

from __future__ import annotations

import unittest
from typing import Any
from unittest.mock import MagicMock, patch

from studyhub import create_app
from studyhub.directory import UserProfile
from studyhub.extensions import coordinator, store
from tests.mock_utils import MockFirestoreBuilder, RecordingTransport

TOKEN_PREFIX = "token-"


def decode_test_token(token: str) -> dict[str, Any]:
    """Tokens in tests are ``token-<uid>``; anything else is rejected."""
    if not token.startswith(TOKEN_PREFIX):
        raise ValueError("Malformed token")
    return {"uid": token[len(TOKEN_PREFIX) :]}


class StoreTestCase(unittest.TestCase):
    """Runs services against MockFirestore with buffered transactions."""

    def setUp(self) -> None:
        self.db = MockFirestoreBuilder.build_db()
        store.use(self.db)
        self.store = store

        transactional = MockFirestoreBuilder.patch_transactional()
        transactional.start()
        self.addCleanup(transactional.stop)

        self.transport = RecordingTransport()
        coordinator.reset(transport=self.transport)

    def patch_tokens(self) -> MagicMock:
        """Make ``verify_id_token`` accept ``token-<uid>`` strings."""
        verify = patch(
            "firebase_admin.auth.verify_id_token", side_effect=decode_test_token
        )
        mock_verify = verify.start()
        self.addCleanup(verify.stop)
        return mock_verify

    def create_user(self, user_id: str, **fields: Any) -> UserProfile:
        """Store a user document and return its profile."""
        data = {
            "displayName": fields.pop("display_name", user_id.title()),
            "isActive": True,
            "isAdmin": False,
            "groups": [],
        }
        data.update(fields)
        self.db.collection("users").document(user_id).set(data)
        return UserProfile.from_document(user_id, data)

    def profile(self, user_id: str) -> UserProfile:
        """Reload a profile so its groups list is current."""
        data = self.db.collection("users").document(user_id).get().to_dict()
        return UserProfile.from_document(user_id, data)

    def group_doc(self, group_id: str) -> dict[str, Any]:
        return self.db.collection("groups").document(group_id).get().to_dict()

    def chat_doc(self, group_id: str) -> dict[str, Any]:
        return self.db.collection("chats").document(group_id).get().to_dict()

    def notifications_for(self, user_id: str) -> list[dict[str, Any]]:
        return [
            snapshot.to_dict()
            for snapshot in self.db.collection("notifications")
            .where("recipientId", "==", user_id)
            .stream()
        ]


class AppTestCase(StoreTestCase):
    """A testing app wired to MockFirestore and a recording transport."""

    def setUp(self) -> None:
        self.app = create_app({"TESTING": True, "SECRET_KEY": "test"})
        # create_app binds the Socket.IO transport; the base class swaps it out.
        super().setUp()
        self.client = self.app.test_client()
        self.app_context = self.app.app_context()
        self.app_context.push()
        self.addCleanup(self.app_context.pop)
        self.patch_tokens()

    @staticmethod
    def auth(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {TOKEN_PREFIX}{user_id}"}
