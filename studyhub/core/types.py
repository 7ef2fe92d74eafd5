"""Core data types for the studyhub application."""

from typing import Any, Dict, List, Optional, TypedDict  # noqa: UP035


class _FirestoreDocumentBase(TypedDict):
    id: str
    createdAt: Any


class FirestoreDocument(_FirestoreDocumentBase, total=False):
    """Generic Firestore document structure."""

    path: str
    updatedAt: Any


class FieldError(TypedDict):
    """A single field-level validation failure."""

    field: str
    message: str


class APIResponse(TypedDict, total=False):
    """Generic API response structure."""

    success: bool
    message: str
    data: Optional[Dict[str, Any]]  # noqa: UP006
    reason: str
    errors: List[FieldError]  # noqa: UP006
