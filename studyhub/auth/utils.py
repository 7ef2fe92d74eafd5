"""Utility functions for request authentication."""

from __future__ import annotations

from typing import TYPE_CHECKING

from flask import current_app, g, request

from studyhub.directory import DirectoryService
from studyhub.errors import AuthenticationError

if TYPE_CHECKING:
    from studyhub.core.store import DocumentStore


def bearer_token() -> str | None:
    """Return the token from an ``Authorization: Bearer`` header, if any."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def load_request_user(store: DocumentStore) -> None:
    """Resolve the request's bearer token into ``g.user``.

    Anonymous requests continue with ``g.user = None``; a rejected token is
    kept on ``g.auth_error`` so protected views can report why.
    """
    g.user = None
    g.auth_error = None
    token = bearer_token()
    if token is None:
        return
    try:
        g.user = DirectoryService.authenticate(store, token)
    except AuthenticationError as e:
        current_app.logger.warning(f"Rejected bearer token: {e.message}")
        g.auth_error = e
