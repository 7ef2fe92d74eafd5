"""Utility functions for the application."""

from __future__ import annotations

import datetime
import re
from typing import Any

from flask import jsonify

from .core.types import APIResponse, FieldError
from .errors import ValidationError


def utcnow() -> datetime.datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.datetime.now(datetime.timezone.utc)


def as_utc(value: Any) -> datetime.datetime | None:
    """Normalize a stored timestamp to an aware UTC datetime."""
    if value is None:
        return None
    if hasattr(value, "to_datetime"):
        value = value.to_datetime()
    if isinstance(value, str):
        value = datetime.datetime.fromisoformat(value)
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


def isoformat(value: datetime.datetime | None) -> str | None:
    """Render a timestamp for JSON payloads."""
    if value is None:
        return None
    return value.isoformat()


def to_millis(delta: datetime.timedelta) -> int:
    """Convert a timedelta to whole milliseconds."""
    return int(delta.total_seconds() * 1000)


def snake_case(key: str) -> str:
    """Convert a camelCase payload key to a form field name."""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


def camel_case(name: str) -> str:
    """Convert a form field name back to the camelCase wire name."""
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def form_errors(form: Any) -> list[FieldError]:
    """Flatten WTForms errors into a field-indexed list."""
    errors: list[FieldError] = []
    for field, messages in form.errors.items():
        for message in messages:
            errors.append({"field": camel_case(field), "message": message})
    return errors


def validate_form(form_class: Any, payload: dict[str, Any] | None) -> Any:
    """Bind a JSON payload to a form and raise ValidationError on failure."""
    if payload is not None and not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object.")
    data = {snake_case(key): value for key, value in (payload or {}).items()}
    form = form_class(formdata=None, data=data)
    if not form.validate():
        raise ValidationError("Validation failed", errors=form_errors(form))
    return form


def api_response(
    message: str = "", data: dict[str, Any] | None = None, status: int = 200
) -> Any:
    """Build the standard success envelope."""
    body: APIResponse = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    return jsonify(body), status
