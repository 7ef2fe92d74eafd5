"""Realtime session tracking and Socket.IO event handlers."""

from .coordinator import RealtimeCoordinator, group_room, user_room
from .registry import SessionRegistry

__all__ = ["RealtimeCoordinator", "SessionRegistry", "group_room", "user_room"]
