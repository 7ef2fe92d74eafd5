"""Routes for the exam blueprint."""

from __future__ import annotations

from typing import TYPE_CHECKING

from flask import current_app, g, request

from studyhub.auth.decorators import login_required
from studyhub.core.uploads import upload_image
from studyhub.errors import ValidationError
from studyhub.extensions import store
from studyhub.group.services import GroupService
from studyhub.utils import api_response, isoformat, utcnow, validate_form

from . import bp
from .forms import ExamForm, GradeForm, SubmissionForm
from .services import ExamService

if TYPE_CHECKING:
    from flask import Response


def _payload() -> dict:
    """Return the request body from JSON or multipart form fields."""
    if request.is_json:
        return request.get_json(silent=True)
    return request.form.to_dict()


@bp.route("/pending", methods=["GET"])
@login_required(admin_required=True)
def pending_grading() -> Response:
    """Admin queue of submissions that still need marks."""
    queue = ExamService.pending_grading(store, g.user)
    return api_response(data={"groups": queue})


@bp.route("/<string:group_id>", methods=["GET"])
@login_required
def view_exam(group_id: str) -> Response:
    return api_response(data=ExamService.get_exam(store, g.user, group_id))


@bp.route("/<string:group_id>", methods=["PUT"])
@login_required
def set_exam(group_id: str) -> Response:
    """Set the exam paper and marking scheme.

    The paper may be sent as a URL in the body or uploaded as ``paper``.
    """
    form = validate_form(ExamForm, _payload())
    paper_url = form.paper_url.data or None
    paper = request.files.get("paper")
    if paper is not None:
        GroupService.get_for_member(store, g.user, group_id)
        paper_url = upload_image(f"exam_papers/{group_id}", paper)

    group = ExamService.set_exam(
        store,
        g.user,
        group_id,
        paper_url=paper_url,
        max_marks=form.max_marks.data,
        duration_minutes=form.duration_minutes.data,
        instructions=form.instructions.data,
    )
    exam = group.exam.to_dict()
    exam["paperUploadedAt"] = isoformat(group.exam.paper_uploaded_at)
    return api_response("Exam updated.", {"exam": exam})


@bp.route("/<string:group_id>/start", methods=["POST"])
@login_required
def start_exam(group_id: str) -> Response:
    group = ExamService.start_exam(store, g.user, group_id)
    return api_response("Exam started.", {"group": group.to_api(utcnow())})


@bp.route("/<string:group_id>/submit", methods=["POST"])
@login_required
def submit_answers(group_id: str) -> Response:
    """Submit answer sheets as uploaded images or already-stored URLs."""
    files = [f for f in request.files.getlist("answerSheets") if f and f.filename]
    if files:
        limit = current_app.config["MAX_ANSWER_SHEETS"]
        if len(files) > limit:
            raise ValidationError(
                errors=[
                    {
                        "field": "answerSheets",
                        "message": f"At most {limit} answer sheets allowed.",
                    }
                ]
            )
        # Membership is checked before anything is written to storage.
        GroupService.get_for_member(store, g.user, group_id)
        sheets = [
            upload_image(f"answer_sheets/{group_id}/{g.user.id}", f) for f in files
        ]
    else:
        form = validate_form(SubmissionForm, _payload())
        sheets = form.answer_sheets.data

    submission = ExamService.submit(store, g.user, group_id, sheets)
    return api_response(
        "Answers submitted successfully.", {"submission": submission.to_api()}, 201
    )


@bp.route("/<string:group_id>/submissions", methods=["GET"])
@login_required
def list_submissions(group_id: str) -> Response:
    submissions = ExamService.list_submissions(store, g.user, group_id)
    return api_response(data={"submissions": submissions})


@bp.route("/<string:group_id>/grade", methods=["POST"])
@login_required
def grade_submission(group_id: str) -> Response:
    form = validate_form(GradeForm, request.get_json(silent=True))
    submission = ExamService.grade(
        store,
        g.user,
        group_id,
        form.user_id.data,
        form.marks.data,
        feedback=form.feedback.data or "",
    )
    return api_response("Marks published.", {"submission": submission.to_api()})


@bp.route("/<string:group_id>/results", methods=["GET"])
@login_required
def view_results(group_id: str) -> Response:
    return api_response(data=ExamService.results(store, g.user, group_id))
