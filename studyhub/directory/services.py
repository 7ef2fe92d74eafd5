"""Service layer for user lookups and token verification."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from firebase_admin import auth, exceptions

from studyhub.core.constants import USERS_COLLECTION
from studyhub.errors import AuthenticationError
from studyhub.utils import utcnow

from .models import UserProfile

if TYPE_CHECKING:
    from studyhub.core.store import DocumentStore

logger = logging.getLogger(__name__)


class DirectoryService:
    """Read-mostly access to the users collection."""

    @staticmethod
    def lookup_user(store: DocumentStore, user_id: str) -> UserProfile | None:
        """Return the user's profile, or None if there is no such user."""
        if not user_id:
            return None
        data = store.get(USERS_COLLECTION, user_id)
        if data is None:
            return None
        return UserProfile.from_document(user_id, data)

    @staticmethod
    def existing_user_ids(store: DocumentStore, user_ids: list[str]) -> set[str]:
        """Return the subset of ids that belong to active users."""
        found = set()
        for user_id in set(user_ids):
            profile = DirectoryService.lookup_user(store, user_id)
            if profile is not None and profile.is_active:
                found.add(user_id)
        return found

    @staticmethod
    def verify_credential(token: str) -> str:
        """Map an ID token to a user id or raise AuthenticationError."""
        if not token:
            raise AuthenticationError("No token provided.")
        try:
            decoded: dict[str, Any] = auth.verify_id_token(token)
        except (ValueError, exceptions.FirebaseError) as e:
            logger.info("Rejected ID token: %s", e)
            raise AuthenticationError("Invalid or expired token.") from e
        user_id = decoded.get("uid")
        if not user_id:
            raise AuthenticationError("Invalid or expired token.")
        return str(user_id)

    @staticmethod
    def authenticate(store: DocumentStore, token: str) -> UserProfile:
        """Verify a token and load the active user it belongs to."""
        user_id = DirectoryService.verify_credential(token)
        profile = DirectoryService.lookup_user(store, user_id)
        if profile is None:
            raise AuthenticationError("User not found.", "user_not_found")
        if not profile.is_active:
            raise AuthenticationError("Account is deactivated.", "account_inactive")
        return profile

    @staticmethod
    def touch_last_active(store: DocumentStore, user_id: str) -> None:
        """Record the user's last activity; failures are logged only."""
        try:
            ref = store.ref(USERS_COLLECTION, user_id)
            if ref.get().exists:
                ref.update({"lastActive": utcnow()})
        except Exception:
            logger.warning("Could not update lastActive for %s", user_id, exc_info=True)
