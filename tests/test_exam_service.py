"""Tests for the exam, submission and grading services."""

from __future__ import annotations

import threading
import unittest

from studyhub.errors import InvariantViolation, NotFoundError, PermissionDenied
from studyhub.exam.services import ExamService
from studyhub.group.services import GroupService
from tests.helpers import StoreTestCase


class ExamServiceTestCase(StoreTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.creator = self.create_user("creator", display_name="Casey")
        self.bob = self.create_user("bob")
        self.admin = self.create_user("admin", isAdmin=True)
        group = GroupService.create_group(
            self.store,
            self.creator,
            name="Algebra Week",
            subject="Mathematics",
            chapter="Quadratics",
            duration_days=5,
        )
        self.group_id = group.id
        GroupService.invite(self.store, self.creator, self.group_id, ["bob"])
        GroupService.join(self.store, self.bob, self.group_id)
        GroupService.start_challenge(self.store, self.creator, self.group_id)

    def _start_exam(self) -> None:
        ExamService.set_exam(
            self.store,
            self.creator,
            self.group_id,
            paper_url="https://example.com/paper.pdf",
            duration_minutes=90,
        )
        ExamService.start_exam(self.store, self.creator, self.group_id)

    def test_paper_hidden_from_members_until_exam_starts(self) -> None:
        ExamService.set_exam(
            self.store,
            self.creator,
            self.group_id,
            paper_url="https://example.com/paper.pdf",
        )
        hidden = ExamService.get_exam(self.store, self.bob, self.group_id)
        self.assertIsNone(hidden["exam"]["paperUrl"])
        shown = ExamService.get_exam(self.store, self.creator, self.group_id)
        self.assertEqual(shown["exam"]["paperUrl"], "https://example.com/paper.pdf")

        ExamService.start_exam(self.store, self.creator, self.group_id)
        started = ExamService.get_exam(self.store, self.bob, self.group_id)
        self.assertTrue(started["examStarted"])
        self.assertEqual(
            started["exam"]["paperUrl"], "https://example.com/paper.pdf"
        )

    def test_start_exam_notifies_members(self) -> None:
        self._start_exam()
        types = [n["type"] for n in self.notifications_for("bob")]
        self.assertIn("exam_time", types)
        update = self.transport.events("challenge_update")[-1]["payload"]
        self.assertTrue(update["examStarted"])
        self.assertEqual(update["durationMinutes"], 90)

    def test_member_cannot_start_exam(self) -> None:
        with self.assertRaises(PermissionDenied):
            ExamService.start_exam(self.store, self.bob, self.group_id)

    def test_submit_grade_and_publish(self) -> None:
        """Member submits two sheets once, creator grades, stats follow."""
        self._start_exam()
        sheets = ["https://x/1.png", "https://x/2.png"]
        ExamService.submit(self.store, self.bob, self.group_id, sheets)
        with self.assertRaises(InvariantViolation) as ctx:
            ExamService.submit(self.store, self.bob, self.group_id, sheets)
        self.assertEqual(ctx.exception.reason, "already_submitted")

        pending = ExamService.pending_grading(self.store, self.admin)
        self.assertEqual(len(pending), 1)
        self.assertEqual(pending[0]["pending"][0]["userId"], "bob")

        submission = ExamService.grade(
            self.store, self.creator, self.group_id, "bob", 78, "Well done"
        )
        self.assertEqual(submission.marks, 78)

        stats = self.group_doc(self.group_id)["stats"]
        self.assertEqual(stats["averageMarks"], 78)
        self.assertEqual(stats["highestMarks"], 78)
        self.assertEqual(stats["completionRate"], 50)
        self.assertFalse(self.group_doc(self.group_id)["hasPendingGrading"])

        user_stats = self.db.collection("users").document("bob").get().to_dict()
        self.assertEqual(user_stats["stats"]["totalExams"], 1)
        self.assertEqual(user_stats["stats"]["averageScore"], 78)

        published = [
            n for n in self.notifications_for("bob") if n["type"] == "marks_published"
        ]
        self.assertEqual(len(published), 1)
        self.assertEqual(published[0]["data"]["marks"], 78)

        results = ExamService.results(self.store, self.bob, self.group_id)
        self.assertEqual(results["marks"], 78)
        self.assertEqual(results["feedback"], "Well done")
        self.assertEqual(results["leaderboard"], [{"userId": "bob", "marks": 78}])
        self.assertEqual(ExamService.pending_grading(self.store, self.admin), [])

    def test_concurrent_submissions_keep_one(self) -> None:
        self._start_exam()
        barrier = threading.Barrier(12)
        results = []

        def attempt(n: int) -> None:
            barrier.wait()
            try:
                ExamService.submit(
                    self.store, self.bob, self.group_id, [f"https://x/{n}.png"]
                )
                results.append("ok")
            except InvariantViolation as e:
                results.append(e.reason)

        threads = [threading.Thread(target=attempt, args=(n,)) for n in range(12)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(results.count("ok"), 1)
        self.assertEqual(results.count("already_submitted"), 11)
        group = self.group_doc(self.group_id)
        self.assertEqual(len(group["submissions"]), 1)
        self.assertEqual(group["stats"]["totalSubmissions"], 1)

    def test_regrade_leaves_user_stats_alone(self) -> None:
        self._start_exam()
        ExamService.submit(self.store, self.bob, self.group_id, ["https://x/1.png"])
        ExamService.grade(self.store, self.creator, self.group_id, "bob", 40)
        with self.assertRaises(InvariantViolation) as ctx:
            ExamService.grade(self.store, self.admin, self.group_id, "bob", 90)
        self.assertEqual(ctx.exception.reason, "already_graded")
        user_stats = self.db.collection("users").document("bob").get().to_dict()
        self.assertEqual(user_stats["stats"]["totalExams"], 1)

    def test_results_before_grading(self) -> None:
        self._start_exam()
        with self.assertRaises(NotFoundError):
            ExamService.results(self.store, self.bob, self.group_id)
        ExamService.submit(self.store, self.bob, self.group_id, ["https://x/1.png"])
        with self.assertRaises(InvariantViolation) as ctx:
            ExamService.results(self.store, self.bob, self.group_id)
        self.assertEqual(ctx.exception.reason, "results_pending")

    def test_submissions_are_restricted(self) -> None:
        self._start_exam()
        ExamService.submit(self.store, self.bob, self.group_id, ["https://x/1.png"])
        with self.assertRaises(PermissionDenied):
            ExamService.list_submissions(self.store, self.bob, self.group_id)
        listed = ExamService.list_submissions(self.store, self.admin, self.group_id)
        self.assertEqual([s["userId"] for s in listed], ["bob"])

    def test_pending_grading_requires_admin(self) -> None:
        with self.assertRaises(PermissionDenied):
            ExamService.pending_grading(self.store, self.creator)


if __name__ == "__main__":
    unittest.main()
