"""Tests for the application factory and app-wide handlers."""

from __future__ import annotations

import os
import unittest
from unittest.mock import MagicMock, patch

from studyhub import _cors_origins, create_app, init_firebase
from tests.helpers import AppTestCase


class AppHandlerTestCase(AppTestCase):
    def test_404_error_handler(self) -> None:
        response = self.client.get("/non_existent_page")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(
            response.get_json(),
            {"success": False, "message": "Resource not found.", "reason": "not_found"},
        )

    def test_405_error_handler(self) -> None:
        response = self.client.patch("/health")
        self.assertEqual(response.status_code, 405)
        self.assertEqual(response.get_json()["reason"], "method_not_allowed")

    def test_payload_too_large(self) -> None:
        self.create_user("creator")
        self.app.config["MAX_CONTENT_LENGTH"] = 10
        response = self.client.post(
            "/api/groups",
            data="x" * 100,
            content_type="application/json",
            headers=self.auth("creator"),
        )
        self.assertEqual(response.status_code, 413)

    def test_health_reports_online_users(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.get_json(), {"status": "ok", "onlineUsers": 0})

    def test_non_object_body_is_rejected(self) -> None:
        self.create_user("creator")
        response = self.client.post(
            "/api/groups", json=["not", "an", "object"], headers=self.auth("creator")
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["reason"], "validation_failed")


class ConfigTestCase(unittest.TestCase):
    def test_cors_origins_parsing(self) -> None:
        self.assertEqual(_cors_origins(None), "*")
        self.assertEqual(_cors_origins("*"), "*")
        self.assertEqual(
            _cors_origins("https://a.example, https://b.example,"),
            ["https://a.example", "https://b.example"],
        )

    def test_environment_overrides(self) -> None:
        env = {"MAX_ANSWER_SHEETS": "3", "LOG_LEVEL": "debug"}
        with patch.dict(os.environ, env):
            app = create_app({"TESTING": True})
        self.assertEqual(app.config["MAX_ANSWER_SHEETS"], 3)
        self.assertEqual(app.config["LOG_LEVEL"], "DEBUG")

    @patch("studyhub.firebase_admin")
    def test_firebase_skipped_when_testing(self, mock_firebase) -> None:
        create_app({"TESTING": True})
        mock_firebase.initialize_app.assert_not_called()

    @patch("studyhub.credentials")
    @patch("studyhub.firebase_admin")
    def test_init_firebase_from_json(self, mock_firebase, mock_credentials) -> None:
        mock_firebase._apps = {}
        app = MagicMock()
        app.config = {
            "FIREBASE_CREDENTIALS_JSON": '{"project_id": "demo-study"}',
            "FIREBASE_PROJECT_ID": None,
            "FIREBASE_STORAGE_BUCKET": None,
        }
        init_firebase(app)
        mock_credentials.Certificate.assert_called_once_with(
            {"project_id": "demo-study"}
        )
        _, options = mock_firebase.initialize_app.call_args[0]
        self.assertEqual(options["projectId"], "demo-study")
        self.assertEqual(options["storageBucket"], "demo-study.firebasestorage.app")


if __name__ == "__main__":
    unittest.main()
