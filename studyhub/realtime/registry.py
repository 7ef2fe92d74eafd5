"""Process-wide registry of live socket sessions and their rooms."""

from __future__ import annotations

import threading


class SessionRegistry:
    """Maps session ids to users and rooms to sessions.

    Every mutation and every read happens under one lock, so concurrent
    connects, disconnects, joins and leaves cannot lose each other's
    updates. Reads return copies.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._users: dict[str, str] = {}
        self._sessions: dict[str, set[str]] = {}
        self._rooms: dict[str, set[str]] = {}
        self._joined: dict[str, set[str]] = {}
        self._status: dict[str, str] = {}

    def register(self, sid: str, user_id: str) -> None:
        with self._lock:
            self._users[sid] = user_id
            self._sessions.setdefault(user_id, set()).add(sid)
            self._joined.setdefault(sid, set())
            self._status.setdefault(user_id, "online")

    def unregister(self, sid: str) -> tuple[str | None, set[str]]:
        """Forget a session; return its user and the rooms it was in."""
        with self._lock:
            user_id = self._users.pop(sid, None)
            rooms = self._joined.pop(sid, set())
            for room in rooms:
                members = self._rooms.get(room)
                if members is not None:
                    members.discard(sid)
                    if not members:
                        del self._rooms[room]
            if user_id is not None:
                sessions = self._sessions.get(user_id)
                if sessions is not None:
                    sessions.discard(sid)
                    if not sessions:
                        del self._sessions[user_id]
                        self._status.pop(user_id, None)
            return user_id, rooms

    def join(self, sid: str, room: str) -> bool:
        """Add a registered session to a room."""
        with self._lock:
            if sid not in self._users:
                return False
            self._rooms.setdefault(room, set()).add(sid)
            self._joined[sid].add(room)
            return True

    def leave(self, sid: str, room: str) -> bool:
        """Remove a session from a room; return True if it was there."""
        with self._lock:
            members = self._rooms.get(room)
            if members is None or sid not in members:
                return False
            members.discard(sid)
            if not members:
                del self._rooms[room]
            self._joined.get(sid, set()).discard(room)
            return True

    def evict(self, user_id: str, room: str) -> list[str]:
        """Remove every session of a user from a room."""
        with self._lock:
            return [
                sid
                for sid in list(self._sessions.get(user_id, ()))
                if self.leave(sid, room)
            ]

    def user_for(self, sid: str) -> str | None:
        with self._lock:
            return self._users.get(sid)

    def sessions_for(self, user_id: str) -> set[str]:
        with self._lock:
            return set(self._sessions.get(user_id, ()))

    def members(self, room: str) -> set[str]:
        with self._lock:
            return set(self._rooms.get(room, ()))

    def users_in(self, room: str) -> set[str]:
        with self._lock:
            return {self._users[sid] for sid in self._rooms.get(room, ())}

    def rooms_for(self, sid: str) -> set[str]:
        with self._lock:
            return set(self._joined.get(sid, ()))

    def rooms_for_user(self, user_id: str) -> set[str]:
        with self._lock:
            rooms: set[str] = set()
            for sid in self._sessions.get(user_id, ()):
                rooms |= self._joined.get(sid, set())
            return rooms

    def is_online(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._sessions

    def online_users(self) -> set[str]:
        with self._lock:
            return set(self._sessions)

    def set_status(self, user_id: str, status: str) -> None:
        with self._lock:
            if user_id in self._sessions:
                self._status[user_id] = status

    def status_of(self, user_id: str) -> str:
        with self._lock:
            return self._status.get(user_id, "offline")
