"""User directory lookups and credential verification."""

from .models import UserProfile
from .services import DirectoryService

__all__ = ["DirectoryService", "UserProfile"]
