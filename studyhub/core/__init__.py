"""Core module for the studyhub application."""

from .types import APIResponse, FieldError, FirestoreDocument

__all__ = ["APIResponse", "FieldError", "FirestoreDocument"]
