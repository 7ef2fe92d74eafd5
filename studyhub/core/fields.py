"""WTForms helpers for forms bound to JSON payloads."""

from __future__ import annotations

from typing import Any

from wtforms import Field
from wtforms.validators import StopValidation, ValidationError


class StringListField(Field):
    """A field holding a list of non-empty strings."""

    def process_data(self, value: Any) -> None:
        if value is None or value == "":
            self.data = []
            return
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple)):
            self.data = []
            raise ValueError(self.gettext("Must be a list of strings."))
        self.data = [str(item).strip() for item in value if str(item).strip()]

    def _value(self) -> str:
        return ",".join(self.data or [])


class OptionalData:
    """Stop the validation chain when a JSON-bound field has no value.

    ``wtforms.validators.Optional`` inspects ``raw_data``, which is always
    empty when a form is bound with ``formdata=None``.
    """

    field_flags = {"optional": True}

    def __call__(self, form: Any, field: Any) -> None:
        data = field.data
        if data is None or data == [] or (isinstance(data, str) and not data.strip()):
            field.errors[:] = []
            raise StopValidation()


class ListLength:
    """Bound the number of items in a StringListField."""

    def __init__(self, min: int = 0, max: int | None = None) -> None:  # noqa: A002
        self.min = min
        self.max = max

    def __call__(self, form: Any, field: Any) -> None:
        count = len(field.data or [])
        if count < self.min:
            raise ValidationError(f"At least {self.min} item(s) required.")
        if self.max is not None and count > self.max:
            raise ValidationError(f"At most {self.max} item(s) allowed.")
