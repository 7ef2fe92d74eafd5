"""Mock utilities for Firestore, transactions and the realtime transport."""

from __future__ import annotations

import threading
import unittest.mock
from typing import Any, Callable, Optional

from mockfirestore import CollectionReference, MockFirestore, Query
from mockfirestore.document import DocumentReference


class BufferedTransaction:
    """Collects writes and applies them all at once on commit.

    A function that raises before commit leaves the database untouched,
    which is what a real Firestore transaction guarantees.
    """

    def __init__(self) -> None:
        self.writes: list[tuple[str, Any, Any]] = []
        self.committed = False

    def set(self, ref: Any, data: Any, merge: bool = False) -> None:
        self.writes.append(("set", ref, data))

    def update(self, ref: Any, data: Any) -> None:
        self.writes.append(("update", ref, data))

    def delete(self, ref: Any) -> None:
        self.writes.append(("delete", ref, None))

    def commit(self) -> None:
        for op, ref, data in self.writes:
            if op == "set":
                ref.set(data)
            elif op == "update":
                ref.update(data)
            else:
                ref.delete()
        self.committed = True


def fake_transactional(fn: Callable[[Any], Any]) -> Callable[[Any], Any]:
    """Stand-in for ``firestore.transactional``: run once, then commit."""

    def wrapper(transaction: Any) -> Any:
        result = fn(transaction)
        transaction.commit()
        return result

    return wrapper


class RecordingTransport:
    """Captures what the coordinator would send over Socket.IO."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.emitted: list[dict[str, Any]] = []
        self.rooms: dict[str, set[str]] = {}

    def emit(
        self, event: str, payload: Any, to: str, skip_sid: Optional[str] = None
    ) -> None:
        with self._lock:
            self.emitted.append(
                {"event": event, "payload": payload, "to": to, "skip_sid": skip_sid}
            )

    def enter_room(self, sid: str, room: str) -> None:
        with self._lock:
            self.rooms.setdefault(room, set()).add(sid)

    def leave_room(self, sid: str, room: str) -> None:
        with self._lock:
            self.rooms.get(room, set()).discard(sid)

    def events(self, name: str) -> list[dict[str, Any]]:
        with self._lock:
            return [e for e in self.emitted if e["event"] == name]


class MockFirestoreBuilder:
    """Builder to modularize mockfirestore and firebase_admin patching."""

    @staticmethod
    def patch_db_read() -> None:
        """Accept FieldFilter queries and transactional reads."""

        def collection_where(
            self: Any,
            field_path: Optional[str] = None,
            op_string: Optional[str] = None,
            value: Any = None,
            filter: Any = None,
        ) -> Any:
            if filter:
                return self._where(filter.field_path, filter.op_string, filter.value)
            return self._where(field_path, op_string, value)

        if not hasattr(CollectionReference, "_where"):
            CollectionReference._where = CollectionReference.where
            CollectionReference.where = collection_where

        def query_where(
            self: Any,
            field_path: Optional[str] = None,
            op_string: Optional[str] = None,
            value: Any = None,
            filter: Any = None,
        ) -> Any:
            if filter:
                return self._where(filter.field_path, filter.op_string, filter.value)
            return self._where(field_path, op_string, value)

        if not hasattr(Query, "_where"):
            Query._where = Query.where
            Query.where = query_where

        # Patch DocumentReference.get to handle transaction argument
        if not hasattr(DocumentReference, "_orig_get"):
            DocumentReference._orig_get = DocumentReference.get

            def doc_ref_get(self: Any, transaction: Any = None) -> Any:
                """Handle transaction argument in get."""
                return self._orig_get()

            DocumentReference.get = doc_ref_get

    @staticmethod
    def build_db() -> MockFirestore:
        """Return a MockFirestore whose transactions buffer their writes."""
        db = MockFirestore()
        db.transaction = unittest.mock.MagicMock(side_effect=BufferedTransaction)
        return db

    @staticmethod
    def patch_transactional() -> Any:
        """Patch ``firestore.transactional`` for the duration of a test."""
        return unittest.mock.patch(
            "firebase_admin.firestore.transactional", new=fake_transactional
        )


def patch_mockfirestore() -> None:
    """Apply monkeypatches to mockfirestore."""
    MockFirestoreBuilder.patch_db_read()
