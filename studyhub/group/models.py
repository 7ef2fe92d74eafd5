"""Data models for the group blueprint.

A ``Group`` document is the consistency boundary for its members,
invitations, challenge, exam and submissions. Every mutation goes through a
method on :class:`Group`; each method validates everything it needs before
touching any field, so a raised error always leaves the aggregate unchanged.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from studyhub.core import constants
from studyhub.errors import (
    InvariantViolation,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from studyhub.utils import as_utc, isoformat, to_millis


class Subject(str, Enum):
    """Subjects a group can study."""

    MATHEMATICS = "Mathematics"
    PHYSICS = "Physics"
    CHEMISTRY = "Chemistry"
    BIOLOGY = "Biology"
    COMPUTER_SCIENCE = "Computer Science"
    ENGLISH = "English"
    HISTORY = "History"
    GEOGRAPHY = "Geography"
    ECONOMICS = "Economics"
    BUSINESS_STUDIES = "Business Studies"
    ACCOUNTING = "Accounting"
    OTHER = "Other"


class MemberRole(str, Enum):
    CREATOR = "creator"
    MEMBER = "member"


class MemberStatus(str, Enum):
    ACTIVE = "active"
    LEFT = "left"
    REMOVED = "removed"


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"


class ChallengeStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass
class Member:
    """Represents a group member."""

    user_id: str
    role: MemberRole = MemberRole.MEMBER
    status: MemberStatus = MemberStatus.ACTIVE
    joined_at: Optional[datetime.datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status is MemberStatus.ACTIVE

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "role": self.role.value,
            "status": self.status.value,
            "joinedAt": self.joined_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Member:
        return cls(
            user_id=data["userId"],
            role=MemberRole(data.get("role", MemberRole.MEMBER.value)),
            status=MemberStatus(data.get("status", MemberStatus.ACTIVE.value)),
            joined_at=as_utc(data.get("joinedAt")),
        )


@dataclass
class Invitation:
    """An invitation for a user to join the group."""

    user_id: str
    invited_by: str
    invited_at: datetime.datetime
    expires_at: datetime.datetime
    status: InvitationStatus = InvitationStatus.PENDING
    responded_at: Optional[datetime.datetime] = None

    @property
    def is_pending(self) -> bool:
        return self.status is InvitationStatus.PENDING

    def is_stale(self, now: datetime.datetime) -> bool:
        """Return True if the invitation is still pending past its expiry."""
        return self.is_pending and now >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "invitedBy": self.invited_by,
            "invitedAt": self.invited_at,
            "expiresAt": self.expires_at,
            "status": self.status.value,
            "respondedAt": self.responded_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Invitation:
        return cls(
            user_id=data["userId"],
            invited_by=data["invitedBy"],
            invited_at=as_utc(data["invitedAt"]),
            expires_at=as_utc(data["expiresAt"]),
            status=InvitationStatus(data.get("status", "pending")),
            responded_at=as_utc(data.get("respondedAt")),
        )


@dataclass
class Challenge:
    """The timed study period of a group."""

    duration_days: int
    status: ChallengeStatus = ChallengeStatus.PENDING
    start_time: Optional[datetime.datetime] = None
    end_time: Optional[datetime.datetime] = None
    exam_started: bool = False
    exam_started_at: Optional[datetime.datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "durationDays": self.duration_days,
            "status": self.status.value,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "examStarted": self.exam_started,
            "examStartedAt": self.exam_started_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Challenge:
        return cls(
            duration_days=int(data["durationDays"]),
            status=ChallengeStatus(data.get("status", "pending")),
            start_time=as_utc(data.get("startTime")),
            end_time=as_utc(data.get("endTime")),
            exam_started=bool(data.get("examStarted", False)),
            exam_started_at=as_utc(data.get("examStartedAt")),
        )


@dataclass
class Exam:
    """Exam paper and marking scheme for the challenge."""

    paper_url: Optional[str] = None
    paper_uploaded_at: Optional[datetime.datetime] = None
    max_marks: int = constants.DEFAULT_MAX_MARKS
    duration_minutes: int = constants.DEFAULT_EXAM_MINUTES
    instructions: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "paperUrl": self.paper_url,
            "paperUploadedAt": self.paper_uploaded_at,
            "maxMarks": self.max_marks,
            "durationMinutes": self.duration_minutes,
            "instructions": self.instructions,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Exam:
        return cls(
            paper_url=data.get("paperUrl"),
            paper_uploaded_at=as_utc(data.get("paperUploadedAt")),
            max_marks=int(data.get("maxMarks", constants.DEFAULT_MAX_MARKS)),
            duration_minutes=int(
                data.get("durationMinutes", constants.DEFAULT_EXAM_MINUTES)
            ),
            instructions=data.get("instructions", ""),
        )


@dataclass
class Submission:
    """One member's answer sheets and, once graded, their marks."""

    user_id: str
    answer_sheets: list[str]
    submitted_at: datetime.datetime
    is_late: bool = False
    marks: Optional[float] = None
    feedback: str = ""
    graded_at: Optional[datetime.datetime] = None
    graded_by: Optional[str] = None

    @property
    def is_graded(self) -> bool:
        return self.marks is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "answerSheets": list(self.answer_sheets),
            "submittedAt": self.submitted_at,
            "isLate": self.is_late,
            "marks": self.marks,
            "feedback": self.feedback,
            "gradedAt": self.graded_at,
            "gradedBy": self.graded_by,
        }

    def to_api(self) -> dict[str, Any]:
        data = self.to_dict()
        data["submittedAt"] = isoformat(self.submitted_at)
        data["gradedAt"] = isoformat(self.graded_at)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Submission:
        return cls(
            user_id=data["userId"],
            answer_sheets=list(data.get("answerSheets", [])),
            submitted_at=as_utc(data["submittedAt"]),
            is_late=bool(data.get("isLate", False)),
            marks=data.get("marks"),
            feedback=data.get("feedback", ""),
            graded_at=as_utc(data.get("gradedAt")),
            graded_by=data.get("gradedBy"),
        )


@dataclass
class GroupStats:
    """Derived statistics, always recomputed from the submission set."""

    total_submissions: int = 0
    average_marks: float = 0.0
    highest_marks: float = 0.0
    completion_rate: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalSubmissions": self.total_submissions,
            "averageMarks": self.average_marks,
            "highestMarks": self.highest_marks,
            "completionRate": self.completion_rate,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GroupStats:
        return cls(
            total_submissions=int(data.get("totalSubmissions", 0)),
            average_marks=float(data.get("averageMarks", 0.0)),
            highest_marks=float(data.get("highestMarks", 0.0)),
            completion_rate=float(data.get("completionRate", 0.0)),
        )


@dataclass
class GroupSettings:
    """Per-group policy switches."""

    is_private: bool = True
    allow_late_submissions: bool = False
    show_leaderboard: bool = True
    max_members: int = constants.DEFAULT_MAX_MEMBERS

    def validate(self) -> None:
        """Check that the member cap is within bounds."""
        if not (
            constants.MIN_MAX_MEMBERS <= self.max_members <= constants.MAX_MAX_MEMBERS
        ):
            raise ValidationError(
                errors=[
                    {
                        "field": "maxMembers",
                        "message": (
                            f"Max members must be between {constants.MIN_MAX_MEMBERS}"
                            f" and {constants.MAX_MAX_MEMBERS}."
                        ),
                    }
                ]
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "isPrivate": self.is_private,
            "allowLateSubmissions": self.allow_late_submissions,
            "showLeaderboard": self.show_leaderboard,
            "maxMembers": self.max_members,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GroupSettings:
        return cls(
            is_private=bool(data.get("isPrivate", True)),
            allow_late_submissions=bool(data.get("allowLateSubmissions", False)),
            show_leaderboard=bool(data.get("showLeaderboard", True)),
            max_members=int(data.get("maxMembers", constants.DEFAULT_MAX_MEMBERS)),
        )


@dataclass
class InviteOutcome:
    """Result of inviting one user."""

    user_id: str
    ok: bool
    reason: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {"userId": self.user_id, "ok": self.ok, "reason": self.reason}


@dataclass
class Group:
    """A study group and its challenge."""

    id: str
    name: str
    subject: Subject
    chapter: str
    creator_id: str
    challenge: Challenge
    description: str = ""
    members: list[Member] = field(default_factory=list)
    invitations: list[Invitation] = field(default_factory=list)
    exam: Exam = field(default_factory=Exam)
    submissions: list[Submission] = field(default_factory=list)
    stats: GroupStats = field(default_factory=GroupStats)
    settings: GroupSettings = field(default_factory=GroupSettings)
    is_active: bool = True
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None

    @classmethod
    def create(  # noqa: PLR0913
        cls,
        group_id: str,
        creator_id: str,
        name: str,
        subject: Subject | str,
        chapter: str,
        duration_days: int,
        now: datetime.datetime,
        description: str = "",
        settings: GroupSettings | None = None,
    ) -> Group:
        """Create a group in the pending state with its creator as sole member."""
        errors = []
        name = (name or "").strip()
        chapter = (chapter or "").strip()
        if not (
            constants.GROUP_NAME_MIN_LENGTH
            <= len(name)
            <= constants.GROUP_NAME_MAX_LENGTH
        ):
            errors.append({"field": "name", "message": "Invalid group name length."})
        if not (
            constants.CHAPTER_MIN_LENGTH <= len(chapter) <= constants.CHAPTER_MAX_LENGTH
        ):
            errors.append({"field": "chapter", "message": "Invalid chapter length."})
        if len(description or "") > constants.GROUP_DESCRIPTION_MAX_LENGTH:
            errors.append(
                {"field": "description", "message": "Description is too long."}
            )
        if not (
            constants.MIN_CHALLENGE_DAYS
            <= duration_days
            <= constants.MAX_CHALLENGE_DAYS
        ):
            errors.append(
                {
                    "field": "duration",
                    "message": (
                        f"Duration must be between {constants.MIN_CHALLENGE_DAYS}"
                        f" and {constants.MAX_CHALLENGE_DAYS} days."
                    ),
                }
            )
        try:
            subject = Subject(subject)
        except ValueError:
            errors.append({"field": "subject", "message": "Unknown subject."})
        if errors:
            raise ValidationError(errors=errors)

        settings = settings or GroupSettings()
        settings.validate()

        return cls(
            id=group_id,
            name=name,
            subject=subject,
            chapter=chapter,
            creator_id=creator_id,
            challenge=Challenge(duration_days=duration_days),
            description=description or "",
            members=[
                Member(
                    user_id=creator_id,
                    role=MemberRole.CREATOR,
                    status=MemberStatus.ACTIVE,
                    joined_at=now,
                )
            ],
            settings=settings,
            created_at=now,
            updated_at=now,
        )

    # -- queries -----------------------------------------------------------

    def member(self, user_id: str) -> Member | None:
        for member in self.members:
            if member.user_id == user_id:
                return member
        return None

    def is_active_member(self, user_id: str) -> bool:
        member = self.member(user_id)
        return member is not None and member.is_active

    def is_creator(self, user_id: str) -> bool:
        return user_id == self.creator_id

    @property
    def active_members(self) -> list[Member]:
        return [m for m in self.members if m.is_active]

    @property
    def active_member_ids(self) -> list[str]:
        return [m.user_id for m in self.active_members]

    @property
    def active_member_count(self) -> int:
        return len(self.active_members)

    def pending_invitation(self, user_id: str) -> Invitation | None:
        for invitation in self.invitations:
            if invitation.user_id == user_id and invitation.is_pending:
                return invitation
        return None

    def latest_invitation(self, user_id: str) -> Invitation | None:
        for invitation in reversed(self.invitations):
            if invitation.user_id == user_id:
                return invitation
        return None

    def pending_invitation_count(self, now: datetime.datetime) -> int:
        return sum(
            1 for i in self.invitations if i.is_pending and not i.is_stale(now)
        )

    def submission(self, user_id: str) -> Submission | None:
        for submission in self.submissions:
            if submission.user_id == user_id:
                return submission
        return None

    @property
    def has_pending_grading(self) -> bool:
        return any(not s.is_graded for s in self.submissions)

    # -- guards ------------------------------------------------------------

    def _require_creator(self, actor_id: str, action: str) -> None:
        if not self.is_creator(actor_id):
            raise PermissionDenied(f"Only the group creator can {action}.")

    def _require_manager(self, actor_id: str, is_admin: bool, action: str) -> None:
        if not (is_admin or self.is_creator(actor_id)):
            raise PermissionDenied(f"Only the group creator or an admin can {action}.")

    def _touch(self, now: datetime.datetime) -> None:
        self.updated_at = now

    # -- invitations and membership ----------------------------------------

    def expire_invitations(self, now: datetime.datetime) -> list[Invitation]:
        """Flip every stale pending invitation to expired."""
        expired = []
        for invitation in self.invitations:
            if invitation.is_stale(now):
                invitation.status = InvitationStatus.EXPIRED
                invitation.responded_at = now
                expired.append(invitation)
        if expired:
            self._touch(now)
        return expired

    def invite(
        self,
        inviter_id: str,
        invitee_ids: list[str],
        known_user_ids: set[str],
        now: datetime.datetime,
    ) -> list[InviteOutcome]:
        """Invite several users, reporting an outcome for each one.

        A failure for one invitee never affects the others.
        """
        self._require_creator(inviter_id, "invite members")
        self.expire_invitations(now)

        outcomes = []
        for user_id in invitee_ids:
            if user_id not in known_user_ids:
                outcomes.append(InviteOutcome(user_id, False, "user_not_found"))
            elif self.is_active_member(user_id):
                outcomes.append(InviteOutcome(user_id, False, "already_member"))
            elif self.pending_invitation(user_id) is not None:
                outcomes.append(InviteOutcome(user_id, False, "invitation_pending"))
            else:
                self.invitations.append(
                    Invitation(
                        user_id=user_id,
                        invited_by=inviter_id,
                        invited_at=now,
                        expires_at=now
                        + datetime.timedelta(days=constants.INVITATION_TTL_DAYS),
                    )
                )
                outcomes.append(InviteOutcome(user_id, True))
        self._touch(now)
        return outcomes

    def join(self, user_id: str, now: datetime.datetime) -> Member:
        """Accept the user's pending invitation and make them an active member.

        Stale invitations are expired first. If the caller's own invitation
        was among them the join fails, but the expiry remains applied so the
        caller may still persist it.
        """
        if self.is_active_member(user_id):
            raise InvariantViolation("You are already a member.", "already_member")

        self.expire_invitations(now)
        invitation = self.pending_invitation(user_id)
        if invitation is None:
            latest = self.latest_invitation(user_id)
            if latest is not None and latest.status is InvitationStatus.EXPIRED:
                raise InvariantViolation(
                    "Your invitation has expired.", "invitation_expired"
                )
            raise InvariantViolation(
                "You do not have a pending invitation.", "no_pending_invitation"
            )

        if self.active_member_count >= self.settings.max_members:
            raise InvariantViolation("The group is full.", "capacity_exceeded")

        invitation.status = InvitationStatus.ACCEPTED
        invitation.responded_at = now

        member = self.member(user_id)
        if member is None:
            member = Member(user_id=user_id, joined_at=now)
            self.members.append(member)
        else:
            member.status = MemberStatus.ACTIVE
            member.joined_at = now
        self._touch(now)
        return member

    def decline(self, user_id: str, now: datetime.datetime) -> Invitation:
        """Decline the user's pending invitation."""
        self.expire_invitations(now)
        invitation = self.pending_invitation(user_id)
        if invitation is None:
            raise InvariantViolation(
                "You do not have a pending invitation.", "no_pending_invitation"
            )
        invitation.status = InvitationStatus.DECLINED
        invitation.responded_at = now
        self._touch(now)
        return invitation

    def leave(self, user_id: str, now: datetime.datetime) -> Member:
        if self.is_creator(user_id):
            raise InvariantViolation(
                "The group creator cannot leave the group.", "creator_cannot_leave"
            )
        member = self.member(user_id)
        if member is None or not member.is_active:
            raise NotFoundError("You are not a member of this group.", "not_member")
        member.status = MemberStatus.LEFT
        self.recompute_stats()
        self._touch(now)
        return member

    def remove_member(
        self, actor_id: str, user_id: str, now: datetime.datetime
    ) -> Member:
        self._require_creator(actor_id, "remove members")
        if self.is_creator(user_id):
            raise InvariantViolation(
                "The group creator cannot be removed.", "creator_cannot_be_removed"
            )
        member = self.member(user_id)
        if member is None or not member.is_active:
            raise NotFoundError("User is not a member of this group.", "not_member")
        member.status = MemberStatus.REMOVED
        self.recompute_stats()
        self._touch(now)
        return member

    def delete(self, actor_id: str, now: datetime.datetime) -> None:
        """Soft-delete the group; chat and notifications are kept."""
        self._require_creator(actor_id, "delete the group")
        self.is_active = False
        self._touch(now)

    # -- challenge state machine ---------------------------------------------

    def start_challenge(self, actor_id: str, now: datetime.datetime) -> Challenge:
        self._require_creator(actor_id, "start the challenge")
        if self.challenge.status is not ChallengeStatus.PENDING:
            raise InvariantViolation(
                "The challenge has already been started.", "already_started"
            )
        self.challenge.status = ChallengeStatus.ACTIVE
        self.challenge.start_time = now
        self.challenge.end_time = now + datetime.timedelta(
            days=self.challenge.duration_days
        )
        self._touch(now)
        return self.challenge

    def start_exam(
        self, actor_id: str, is_admin: bool, now: datetime.datetime
    ) -> Challenge:
        self._require_manager(actor_id, is_admin, "start the exam")
        if self.challenge.status is not ChallengeStatus.ACTIVE:
            raise InvariantViolation(
                "The challenge is not active.", "challenge_not_active"
            )
        if self.challenge.exam_started:
            raise InvariantViolation(
                "The exam has already started.", "exam_already_started"
            )
        self.challenge.exam_started = True
        self.challenge.exam_started_at = now
        self._touch(now)
        return self.challenge

    def complete(self, actor_id: str, now: datetime.datetime) -> Challenge:
        self._require_creator(actor_id, "complete the challenge")
        if self.challenge.status is not ChallengeStatus.ACTIVE:
            raise InvariantViolation(
                "The challenge is not active.", "challenge_not_active"
            )
        self.challenge.status = ChallengeStatus.COMPLETED
        self._touch(now)
        return self.challenge

    def cancel(self, actor_id: str, now: datetime.datetime) -> Challenge:
        self._require_creator(actor_id, "cancel the challenge")
        if self.challenge.status not in (
            ChallengeStatus.PENDING,
            ChallengeStatus.ACTIVE,
        ):
            raise InvariantViolation(
                "The challenge has already finished.", "challenge_finished"
            )
        self.challenge.status = ChallengeStatus.CANCELLED
        self._touch(now)
        return self.challenge

    # -- exam and submissions ----------------------------------------------

    def set_exam(  # noqa: PLR0913
        self,
        actor_id: str,
        is_admin: bool,
        now: datetime.datetime,
        paper_url: str | None = None,
        max_marks: int | None = None,
        duration_minutes: int | None = None,
        instructions: str | None = None,
    ) -> Exam:
        self._require_manager(actor_id, is_admin, "set the exam")
        if self.submissions:
            raise InvariantViolation(
                "The exam cannot change once submissions exist.", "exam_locked"
            )
        if paper_url is not None:
            self.exam.paper_url = paper_url
            self.exam.paper_uploaded_at = now
        if max_marks is not None:
            self.exam.max_marks = max_marks
        if duration_minutes is not None:
            self.exam.duration_minutes = duration_minutes
        if instructions is not None:
            self.exam.instructions = instructions
        self._touch(now)
        return self.exam

    def submit(
        self, user_id: str, answer_sheets: list[str], now: datetime.datetime
    ) -> Submission:
        """Append the user's submission; at most one per member."""
        if not self.is_active_member(user_id):
            raise PermissionDenied(
                "Only active members can submit answers.", "not_member"
            )
        if not self.challenge.exam_started:
            raise InvariantViolation("The exam has not started.", "exam_not_started")
        if self.submission(user_id) is not None:
            raise InvariantViolation(
                "You have already submitted your answers.", "already_submitted"
            )
        if not answer_sheets:
            raise InvariantViolation(
                "At least one answer sheet is required.", "no_answer_sheets"
            )
        is_late = self.challenge.end_time is not None and now > self.challenge.end_time
        if is_late and not self.settings.allow_late_submissions:
            raise InvariantViolation(
                "The submission deadline has passed.", "submission_deadline_passed"
            )

        submission = Submission(
            user_id=user_id,
            answer_sheets=list(answer_sheets),
            submitted_at=now,
            is_late=is_late,
        )
        self.submissions.append(submission)
        self.recompute_stats()
        self._touch(now)
        return submission

    def grade(  # noqa: PLR0913
        self,
        user_id: str,
        marks: float,
        feedback: str,
        grader_id: str,
        grader_is_admin: bool,
        now: datetime.datetime,
    ) -> Submission:
        """Grade a submission exactly once and recompute the group stats."""
        self._require_manager(grader_id, grader_is_admin, "grade submissions")
        if grader_id == user_id:
            raise PermissionDenied(
                "You cannot grade your own submission.", "self_grading"
            )
        submission = self.submission(user_id)
        if submission is None:
            raise NotFoundError("Submission not found.", "submission_not_found")
        if marks < 0 or marks > self.exam.max_marks:
            raise ValidationError(
                errors=[
                    {
                        "field": "marks",
                        "message": (
                            f"Marks must be between 0 and {self.exam.max_marks}."
                        ),
                    }
                ]
            )
        if submission.is_graded:
            raise InvariantViolation(
                "This submission has already been graded.", "already_graded"
            )

        submission.marks = marks
        submission.feedback = feedback or ""
        submission.graded_at = now
        submission.graded_by = grader_id
        self.recompute_stats()
        self._touch(now)
        return submission

    def recompute_stats(self) -> GroupStats:
        self.stats = compute_stats(self.submissions, self.active_member_ids)
        return self.stats

    # -- persistence -------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Serialize for Firestore."""
        return {
            "name": self.name,
            "description": self.description,
            "subject": self.subject.value,
            "chapter": self.chapter,
            "creatorId": self.creator_id,
            "members": [m.to_dict() for m in self.members],
            "invitations": [i.to_dict() for i in self.invitations],
            "challenge": self.challenge.to_dict(),
            "exam": self.exam.to_dict(),
            "submissions": [s.to_dict() for s in self.submissions],
            "stats": self.stats.to_dict(),
            "settings": self.settings.to_dict(),
            "isActive": self.is_active,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            # Denormalized for queries
            "activeMemberIds": self.active_member_ids,
            "hasPendingGrading": self.has_pending_grading,
        }

    @classmethod
    def from_dict(cls, group_id: str, data: dict[str, Any]) -> Group:
        return cls(
            id=group_id,
            name=data["name"],
            description=data.get("description", ""),
            subject=Subject(data["subject"]),
            chapter=data["chapter"],
            creator_id=data["creatorId"],
            members=[Member.from_dict(m) for m in data.get("members", [])],
            invitations=[Invitation.from_dict(i) for i in data.get("invitations", [])],
            challenge=Challenge.from_dict(data["challenge"]),
            exam=Exam.from_dict(data.get("exam", {})),
            submissions=[Submission.from_dict(s) for s in data.get("submissions", [])],
            stats=GroupStats.from_dict(data.get("stats", {})),
            settings=GroupSettings.from_dict(data.get("settings", {})),
            is_active=bool(data.get("isActive", True)),
            created_at=as_utc(data.get("createdAt")),
            updated_at=as_utc(data.get("updatedAt")),
        )

    def to_api(self, now: datetime.datetime) -> dict[str, Any]:
        """Serialize for JSON responses; submissions are served separately."""
        challenge = self.challenge.to_dict()
        for key in ("startTime", "endTime", "examStartedAt"):
            challenge[key] = isoformat(challenge[key])
        challenge["timeRemaining"] = time_remaining(self, now)
        challenge["progress"] = challenge_progress(self, now)

        exam = self.exam.to_dict()
        exam["paperUploadedAt"] = isoformat(self.exam.paper_uploaded_at)

        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "subject": self.subject.value,
            "chapter": self.chapter,
            "creatorId": self.creator_id,
            "members": [
                {**m.to_dict(), "joinedAt": isoformat(m.joined_at)}
                for m in self.members
                if m.is_active
            ],
            "memberCount": self.active_member_count,
            "pendingInvitations": self.pending_invitation_count(now),
            "challenge": challenge,
            "exam": exam,
            "stats": self.stats.to_dict(),
            "settings": self.settings.to_dict(),
            "isActive": self.is_active,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }


def time_remaining(group: Group, now: datetime.datetime) -> int:
    """Milliseconds left in the challenge, or 0 when not running."""
    challenge = group.challenge
    if challenge.status is not ChallengeStatus.ACTIVE or challenge.end_time is None:
        return 0
    return max(0, to_millis(challenge.end_time - now))


def challenge_progress(group: Group, now: datetime.datetime) -> float:
    """Percentage of the challenge window that has elapsed."""
    challenge = group.challenge
    if challenge.start_time is None or challenge.end_time is None:
        return 0.0
    if challenge.status is ChallengeStatus.COMPLETED:
        return 100.0
    total = to_millis(challenge.end_time - challenge.start_time)
    if total <= 0:
        return 100.0
    elapsed = to_millis(now - challenge.start_time)
    return round(min(100.0, max(0.0, elapsed / total * 100)), 2)


def compute_stats(
    submissions: list[Submission], active_member_ids: list[str]
) -> GroupStats:
    """Recompute group statistics from the full submission set.

    Completion only counts submissions from members who are still active.
    """
    graded = [s.marks for s in submissions if s.marks is not None]
    average = round(sum(graded) / len(graded), 2) if graded else 0.0
    highest = float(max(graded)) if graded else 0.0
    active = set(active_member_ids)
    if active:
        completed = sum(1 for s in submissions if s.user_id in active)
        completion = round(completed / len(active) * 100, 2)
    else:
        completion = 0.0
    return GroupStats(
        total_submissions=len(submissions),
        average_marks=average,
        highest_marks=highest,
        completion_rate=completion,
    )


def timer_payload(group: Group, now: datetime.datetime) -> dict[str, Any]:
    """Minimal timer state broadcast to a group room."""
    return {
        "groupId": group.id,
        "status": group.challenge.status.value,
        "timeRemaining": time_remaining(group, now),
        "progress": challenge_progress(group, now),
        "endTime": isoformat(group.challenge.end_time),
        "examStarted": group.challenge.exam_started,
    }
