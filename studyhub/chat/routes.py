"""Routes for the chat blueprint."""

from __future__ import annotations

from typing import TYPE_CHECKING

from flask import g, request

from studyhub.auth.decorators import login_required
from studyhub.core.constants import DEFAULT_PAGE_SIZE
from studyhub.extensions import store
from studyhub.utils import api_response, validate_form

from . import bp
from .forms import EditMessageForm, MessageForm, ReactionForm, ReadForm
from .models import FileMeta
from .services import ChatService

if TYPE_CHECKING:
    from flask import Response


@bp.route("/<string:group_id>/messages", methods=["GET"])
@login_required
def list_messages(group_id: str) -> Response:
    """Return a page of messages, counted back from the newest."""
    page = request.args.get("page", 1, type=int)
    limit = request.args.get("limit", DEFAULT_PAGE_SIZE, type=int)
    return api_response(
        data=ChatService.list_messages(store, g.user, group_id, page, limit)
    )


@bp.route("/<string:group_id>/messages", methods=["POST"])
@login_required
def post_message(group_id: str) -> Response:
    form = validate_form(MessageForm, request.get_json(silent=True))
    file = None
    if form.file_url.data:
        file = FileMeta(
            url=form.file_url.data,
            name=form.file_name.data or None,
            size=form.file_size.data,
        )
    message = ChatService.post_message(
        store,
        g.user,
        group_id,
        form.content.data,
        message_type=form.message_type.data,
        file=file,
        reply_to=form.reply_to.data or None,
    )
    return api_response("Message sent.", {"message": message}, 201)


@bp.route("/<string:group_id>/messages/<string:message_id>", methods=["PUT"])
@login_required
def edit_message(group_id: str, message_id: str) -> Response:
    form = validate_form(EditMessageForm, request.get_json(silent=True))
    message = ChatService.edit_message(
        store, g.user, group_id, message_id, form.content.data
    )
    return api_response("Message updated.", {"message": message})


@bp.route(
    "/<string:group_id>/messages/<string:message_id>/reactions", methods=["POST"]
)
@login_required
def add_reaction(group_id: str, message_id: str) -> Response:
    """Set the current user's reaction, replacing any earlier one."""
    form = validate_form(ReactionForm, request.get_json(silent=True))
    reaction = ChatService.react(store, g.user, group_id, message_id, form.emoji.data)
    return api_response("Reaction added.", reaction)


@bp.route("/<string:group_id>/read", methods=["POST"])
@login_required
def mark_read(group_id: str) -> Response:
    form = validate_form(ReadForm, request.get_json(silent=True))
    marked = ChatService.mark_read(store, g.user, group_id, form.message_ids.data)
    return api_response("Messages marked as read.", {"messageIds": marked})


@bp.route("/<string:group_id>/unread", methods=["GET"])
@login_required
def unread(group_id: str) -> Response:
    return api_response(data=ChatService.unread(store, g.user, group_id))
