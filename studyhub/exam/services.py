"""Service layer for the exam, submission and grading workflow."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from studyhub.core.constants import GROUPS_COLLECTION
from studyhub.errors import InvariantViolation, NotFoundError, PermissionDenied
from studyhub.extensions import coordinator
from studyhub.group.models import Group, Submission
from studyhub.group.services import GroupService, group_key, read_group, user_key
from studyhub.notification.services import NotificationService
from studyhub.utils import isoformat, utcnow

if TYPE_CHECKING:
    from google.cloud.firestore_v1.base_document import DocumentSnapshot
    from google.cloud.firestore_v1.transaction import Transaction

    from studyhub.core.store import DocKey, DocumentStore
    from studyhub.directory import UserProfile

logger = logging.getLogger(__name__)


def updated_user_stats(user_data: dict[str, Any], marks: float) -> dict[str, Any]:
    """Fold one graded exam into a user's running totals."""
    stats = dict(user_data.get("stats") or {})
    total_exams = int(stats.get("totalExams", 0)) + 1
    total_marks = float(stats.get("totalMarks", 0)) + marks
    stats["totalExams"] = total_exams
    stats["totalMarks"] = total_marks
    stats["averageScore"] = round(total_marks / total_exams, 2)
    return stats


class ExamService:
    """Service class for exam-related operations."""

    @staticmethod
    def get_exam(
        store: DocumentStore, user: UserProfile, group_id: str
    ) -> dict[str, Any]:
        """Exam details for a member; the paper is hidden until the exam starts."""
        group = GroupService.get_for_member(store, user, group_id)
        manager = user.is_admin or group.is_creator(user.id)
        exam = group.exam.to_dict()
        exam["paperUploadedAt"] = isoformat(group.exam.paper_uploaded_at)
        if not (manager or group.challenge.exam_started):
            exam["paperUrl"] = None
        own = group.submission(user.id)
        return {
            "groupId": group.id,
            "exam": exam,
            "examStarted": group.challenge.exam_started,
            "examStartedAt": isoformat(group.challenge.exam_started_at),
            "endTime": isoformat(group.challenge.end_time),
            "hasSubmitted": own is not None,
            "submission": own.to_api() if own else None,
        }

    @staticmethod
    def set_exam(  # noqa: PLR0913
        store: DocumentStore,
        actor: UserProfile,
        group_id: str,
        paper_url: str | None = None,
        max_marks: int | None = None,
        duration_minutes: int | None = None,
        instructions: str | None = None,
    ) -> Group:
        group, _ = GroupService.mutate(
            store,
            group_id,
            lambda group, now: group.set_exam(
                actor.id,
                actor.is_admin,
                now,
                paper_url=paper_url,
                max_marks=max_marks,
                duration_minutes=duration_minutes,
                instructions=instructions,
            ),
        )
        return group

    @staticmethod
    def start_exam(store: DocumentStore, actor: UserProfile, group_id: str) -> Group:
        """Open the exam and tell every member it is time."""
        group, _ = GroupService.mutate(
            store,
            group_id,
            lambda group, now: group.start_exam(actor.id, actor.is_admin, now),
        )
        NotificationService.exam_time(store, group, actor.id)
        coordinator.broadcast_challenge_update(
            group_id,
            {
                "status": group.challenge.status.value,
                "examStarted": True,
                "examStartedAt": isoformat(group.challenge.exam_started_at),
                "durationMinutes": group.exam.duration_minutes,
            },
        )
        logger.info("Exam started for group %s by %s", group_id, actor.id)
        return group

    @staticmethod
    def submit(
        store: DocumentStore,
        user: UserProfile,
        group_id: str,
        answer_sheets: list[str],
    ) -> Submission:
        """Record the user's single submission."""
        group, submission = GroupService.mutate(
            store,
            group_id,
            lambda group, now: group.submit(user.id, answer_sheets, now),
        )
        coordinator.broadcast_challenge_update(
            group_id,
            {
                "status": group.challenge.status.value,
                "totalSubmissions": group.stats.total_submissions,
            },
        )
        logger.info("User %s submitted answers for group %s", user.id, group_id)
        return submission

    @staticmethod
    def grade(  # noqa: PLR0913
        store: DocumentStore,
        grader: UserProfile,
        group_id: str,
        user_id: str,
        marks: float,
        feedback: str = "",
    ) -> Submission:
        """Grade once, recompute stats and update the user's totals together."""
        now = utcnow()

        def apply(
            transaction: Transaction, snapshots: dict[DocKey, DocumentSnapshot]
        ) -> tuple[Group, Submission]:
            group_snapshot = snapshots[group_key(group_id)]
            group = read_group(group_snapshot, group_id)
            submission = group.grade(
                user_id, marks, feedback, grader.id, grader.is_admin, now
            )
            transaction.set(group_snapshot.reference, group.to_dict())

            user_snapshot = snapshots[user_key(user_id)]
            if user_snapshot.exists:
                transaction.update(
                    user_snapshot.reference,
                    {
                        "stats": updated_user_stats(
                            user_snapshot.to_dict() or {}, marks
                        )
                    },
                )
            return group, submission

        group, submission = store.run_transaction(
            [group_key(group_id), user_key(user_id)], apply
        )
        NotificationService.marks_published(store, group, user_id, marks, grader.id)
        logger.info("Submission of %s in group %s graded", user_id, group_id)
        return submission

    @staticmethod
    def results(
        store: DocumentStore, user: UserProfile, group_id: str
    ) -> dict[str, Any]:
        """The user's own marks and the group's statistics once graded."""
        group = GroupService.get_for_member(store, user, group_id)
        submission = group.submission(user.id)
        if submission is None:
            raise NotFoundError("No submission found.", "submission_not_found")
        if not submission.is_graded:
            raise InvariantViolation(
                "Results are not available yet.", "results_pending"
            )
        data: dict[str, Any] = {
            "marks": submission.marks,
            "maxMarks": group.exam.max_marks,
            "feedback": submission.feedback,
            "gradedAt": isoformat(submission.graded_at),
            "groupStats": group.stats.to_dict(),
        }
        if group.settings.show_leaderboard:
            graded = sorted(
                (s for s in group.submissions if s.is_graded),
                key=lambda s: s.marks,
                reverse=True,
            )
            data["leaderboard"] = [
                {"userId": s.user_id, "marks": s.marks} for s in graded
            ]
        return data

    @staticmethod
    def list_submissions(
        store: DocumentStore, actor: UserProfile, group_id: str
    ) -> list[dict[str, Any]]:
        group = GroupService.get_group(store, group_id)
        if not (actor.is_admin or group.is_creator(actor.id)):
            raise PermissionDenied(
                "Only the group creator or an admin can view submissions."
            )
        return [s.to_api() for s in group.submissions]

    @staticmethod
    def pending_grading(
        store: DocumentStore, actor: UserProfile
    ) -> list[dict[str, Any]]:
        """Admin queue of ungraded submissions across all live groups."""
        if not actor.is_admin:
            raise PermissionDenied("Admin access required.")
        query = store.db.collection(GROUPS_COLLECTION).where(
            "hasPendingGrading", "==", True
        )
        queue = []
        for snapshot in query.stream():
            if not snapshot.exists:
                continue
            group = Group.from_dict(snapshot.id, snapshot.to_dict() or {})
            if not group.is_active:
                continue
            pending = [s for s in group.submissions if not s.is_graded]
            queue.append(
                {
                    "groupId": group.id,
                    "groupName": group.name,
                    "maxMarks": group.exam.max_marks,
                    "pending": [
                        {
                            "userId": s.user_id,
                            "submittedAt": isoformat(s.submitted_at),
                            "answerSheets": s.answer_sheets,
                            "isLate": s.is_late,
                        }
                        for s in pending
                    ],
                }
            )
        return queue
