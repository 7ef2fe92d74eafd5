"""Routes for the group blueprint."""

from __future__ import annotations

from typing import TYPE_CHECKING

from flask import g, request

from studyhub.auth.decorators import login_required
from studyhub.core.constants import DEFAULT_MAX_MEMBERS
from studyhub.extensions import store
from studyhub.utils import api_response, utcnow, validate_form

from . import bp
from .forms import GroupForm, InviteForm
from .models import GroupSettings
from .services import GroupService

if TYPE_CHECKING:
    from flask import Response


@bp.route("", methods=["GET"])
@login_required
def list_groups() -> Response:
    """List the groups the current user is an active member of."""
    now = utcnow()
    groups = GroupService.list_for_user(store, g.user)
    return api_response(data={"groups": [group.to_api(now) for group in groups]})


@bp.route("", methods=["POST"])
@login_required
def create_group() -> Response:
    """Create a group with the current user as its creator."""
    form = validate_form(GroupForm, request.get_json(silent=True))
    settings = GroupSettings(
        is_private=form.is_private.data,
        allow_late_submissions=form.allow_late_submissions.data,
        show_leaderboard=form.show_leaderboard.data,
        max_members=form.max_members.data or DEFAULT_MAX_MEMBERS,
    )
    group = GroupService.create_group(
        store,
        g.user,
        name=form.name.data,
        subject=form.subject.data,
        chapter=form.chapter.data,
        duration_days=form.duration.data,
        description=form.description.data or "",
        settings=settings,
    )
    return api_response(
        "Group created successfully.", {"group": group.to_api(utcnow())}, 201
    )


@bp.route("/<string:group_id>", methods=["GET"])
@login_required
def view_group(group_id: str) -> Response:
    group = GroupService.get_visible(store, g.user, group_id)
    return api_response(data={"group": group.to_api(utcnow())})


@bp.route("/<string:group_id>", methods=["DELETE"])
@login_required
def delete_group(group_id: str) -> Response:
    GroupService.delete(store, g.user, group_id)
    return api_response("Group deleted successfully.")


@bp.route("/<string:group_id>/invite", methods=["POST"])
@login_required
def invite_members(group_id: str) -> Response:
    """Invite users; each invitee gets its own outcome."""
    form = validate_form(InviteForm, request.get_json(silent=True))
    outcomes = GroupService.invite(store, g.user, group_id, form.user_ids.data)
    invited = sum(1 for outcome in outcomes if outcome.ok)
    return api_response(
        f"{invited} invitation(s) sent.",
        {"results": [outcome.to_dict() for outcome in outcomes]},
    )


@bp.route("/<string:group_id>/invitations", methods=["GET"])
@login_required
def list_invitations(group_id: str) -> Response:
    invitations = GroupService.list_invitations(store, g.user, group_id)
    return api_response(data={"invitations": invitations})


@bp.route("/<string:group_id>/join", methods=["POST"])
@login_required
def join_group(group_id: str) -> Response:
    group = GroupService.join(store, g.user, group_id)
    return api_response(
        "Joined group successfully.", {"group": group.to_api(utcnow())}
    )


@bp.route("/<string:group_id>/decline", methods=["POST"])
@login_required
def decline_invitation(group_id: str) -> Response:
    GroupService.decline(store, g.user, group_id)
    return api_response("Invitation declined.")


@bp.route("/<string:group_id>/leave", methods=["POST"])
@login_required
def leave_group(group_id: str) -> Response:
    GroupService.leave(store, g.user, group_id)
    return api_response("Left group successfully.")


@bp.route("/<string:group_id>/members/<string:user_id>", methods=["DELETE"])
@login_required
def remove_member(group_id: str, user_id: str) -> Response:
    """Remove a member; only the creator may do this."""
    group = GroupService.remove_member(store, g.user, group_id, user_id)
    return api_response("Member removed.", {"memberCount": group.active_member_count})


@bp.route("/<string:group_id>/start", methods=["POST"])
@login_required
def start_challenge(group_id: str) -> Response:
    group = GroupService.start_challenge(store, g.user, group_id)
    return api_response("Challenge started.", {"group": group.to_api(utcnow())})


@bp.route("/<string:group_id>/complete", methods=["POST"])
@login_required
def complete_challenge(group_id: str) -> Response:
    group = GroupService.complete_challenge(store, g.user, group_id)
    return api_response("Challenge completed.", {"group": group.to_api(utcnow())})


@bp.route("/<string:group_id>/cancel", methods=["POST"])
@login_required
def cancel_challenge(group_id: str) -> Response:
    group = GroupService.cancel_challenge(store, g.user, group_id)
    return api_response("Challenge cancelled.", {"group": group.to_api(utcnow())})


@bp.route("/<string:group_id>/timer", methods=["GET"])
@login_required
def challenge_timer(group_id: str) -> Response:
    return api_response(data=GroupService.timer(store, g.user, group_id))
