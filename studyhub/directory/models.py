"""Data models for the user directory."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class UserProfile:
    """The slice of a user record this application relies on."""

    id: str
    display_name: str
    is_active: bool = True
    is_admin: bool = False
    groups: list[str] = field(default_factory=list)

    @classmethod
    def from_document(cls, user_id: str, data: dict[str, Any]) -> UserProfile:
        display_name = (
            data.get("displayName")
            or data.get("fullName")
            or data.get("username")
            or user_id
        )
        return cls(
            id=user_id,
            display_name=display_name,
            is_active=bool(data.get("isActive", True)),
            is_admin=bool(data.get("isAdmin")) or data.get("role") == "admin",
            groups=list(data.get("groups", [])),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "displayName": self.display_name,
            "isAdmin": self.is_admin,
        }
