"""Transactional Firestore access for aggregate documents.

Each Group or Chat document is a consistency boundary. Writes to one
document are serialized twice over: an in-process lock per document key
(so concurrent requests in one worker never race), and a Firestore
transaction (so concurrent workers retry on contention instead of losing
updates).
"""

from __future__ import annotations

import contextlib
import logging
import threading
import weakref
from collections.abc import Callable, Iterable, Iterator
from typing import TYPE_CHECKING, Any

from firebase_admin import firestore

if TYPE_CHECKING:
    from flask import Flask
    from google.cloud.firestore_v1.base_document import DocumentSnapshot
    from google.cloud.firestore_v1.client import Client
    from google.cloud.firestore_v1.document import DocumentReference
    from google.cloud.firestore_v1.transaction import Transaction

logger = logging.getLogger(__name__)

DocKey = tuple[str, str]


def key_path(key: DocKey) -> str:
    """Return the 'collection/document' path for a key."""
    return f"{key[0]}/{key[1]}"


class LockRegistry:
    """Hands out one re-entrant lock per document path.

    Locks are held weakly; an entry disappears once no caller holds or
    waits on it.
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._guard = threading.Lock()
        self._locks: weakref.WeakValueDictionary[str, Any] = (
            weakref.WeakValueDictionary()
        )

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def lock_for(self, path: str) -> Any:
        """Return the lock guarding a document path, creating it on demand."""
        with self._guard:
            lock = self._locks.get(path)
            if lock is None:
                lock = threading.RLock()
                self._locks[path] = lock
            return lock

    @contextlib.contextmanager
    def hold(self, paths: Iterable[str]) -> Iterator[None]:
        """Acquire the locks for several paths in sorted order."""
        acquired = []
        try:
            for path in sorted(set(paths)):
                lock = self.lock_for(path)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


class DocumentStore:
    """Flask extension wrapping the Firestore client."""

    def __init__(self, db: Client | None = None) -> None:
        """Initialize the store, optionally with an explicit client."""
        self._db = db
        self.locks = LockRegistry()

    def init_app(self, app: Flask) -> None:
        """Register the store on an application."""
        app.extensions["document_store"] = self

    def use(self, db: Any) -> None:
        """Swap the underlying client (used by tests and scripts)."""
        self._db = db
        self.locks = LockRegistry()

    @property
    def db(self) -> Client:
        """Return the Firestore client, creating it on first use."""
        if self._db is None:
            self._db = firestore.client()
        return self._db

    def ref(self, collection: str, doc_id: str) -> DocumentReference:
        """Return a document reference."""
        return self.db.collection(collection).document(doc_id)

    def new_id(self, collection: str) -> str:
        """Allocate an id for a new document in a collection."""
        return str(self.db.collection(collection).document().id)

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Read a document outside any transaction."""
        snapshot = self.ref(collection, doc_id).get()
        if not snapshot.exists:
            return None
        data = snapshot.to_dict() or {}
        data["id"] = snapshot.id
        return data

    def run_transaction(
        self,
        keys: list[DocKey],
        fn: Callable[[Transaction, dict[DocKey, DocumentSnapshot]], Any],
        after_commit: Callable[[Any], None] | None = None,
    ) -> Any:
        """Run ``fn(transaction, snapshots)`` atomically over the given documents.

        ``snapshots`` maps each key to its snapshot read inside the
        transaction. ``fn`` must only write through ``transaction``; it may
        be re-run when Firestore retries. ``after_commit`` runs with the
        result while the document locks are still held, so follow-up
        broadcasts leave in commit order.
        """
        refs = {key: self.ref(*key) for key in keys}

        with self.locks.hold(key_path(key) for key in keys):
            transaction = self.db.transaction()

            @firestore.transactional
            def apply(transaction: Transaction) -> Any:
                snapshots = {
                    key: ref.get(transaction=transaction) for key, ref in refs.items()
                }
                return fn(transaction, snapshots)

            result = apply(transaction)
            if after_commit is not None:
                try:
                    after_commit(result)
                except Exception:
                    logger.exception(
                        "Post-commit hook failed for %s",
                        ", ".join(key_path(key) for key in keys),
                    )
            return result
