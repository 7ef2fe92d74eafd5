"""Tests for shared helpers."""

from __future__ import annotations

import datetime
import unittest

from flask_wtf import FlaskForm

from studyhub import create_app
from studyhub.core.fields import ListLength, OptionalData, StringListField
from studyhub.errors import InvariantViolation, ValidationError
from studyhub.group.forms import InviteForm
from studyhub.utils import (
    api_response,
    as_utc,
    camel_case,
    isoformat,
    snake_case,
    to_millis,
    validate_form,
)


class TimeHelpersTestCase(unittest.TestCase):
    def test_as_utc_normalizes_naive_and_offset_values(self) -> None:
        naive = datetime.datetime(2024, 5, 1, 12, 0)
        self.assertEqual(as_utc(naive).tzinfo, datetime.timezone.utc)

        offset = datetime.datetime(
            2024, 5, 1, 14, 0, tzinfo=datetime.timezone(datetime.timedelta(hours=2))
        )
        self.assertEqual(as_utc(offset).hour, 12)
        self.assertEqual(as_utc("2024-05-01T12:00:00+00:00").hour, 12)
        self.assertIsNone(as_utc(None))

    def test_isoformat_and_millis(self) -> None:
        self.assertIsNone(isoformat(None))
        self.assertEqual(to_millis(datetime.timedelta(days=1)), 86_400_000)


class CaseConversionTestCase(unittest.TestCase):
    def test_snake_and_camel_case(self) -> None:
        self.assertEqual(snake_case("maxMembers"), "max_members")
        self.assertEqual(snake_case("name"), "name")
        self.assertEqual(camel_case("allow_late_submissions"), "allowLateSubmissions")


class FormHelpersTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.app = create_app({"TESTING": True})
        self.ctx = self.app.test_request_context()
        self.ctx.push()
        self.addCleanup(self.ctx.pop)

    def test_validate_form_maps_camel_case_keys(self) -> None:
        form = validate_form(InviteForm, {"userIds": ["a", " b ", ""]})
        self.assertEqual(form.user_ids.data, ["a", "b"])

    def test_validate_form_reports_camel_case_fields(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            validate_form(InviteForm, {"userIds": []})
        self.assertEqual(ctx.exception.errors[0]["field"], "userIds")

    def test_validate_form_rejects_non_objects(self) -> None:
        with self.assertRaises(ValidationError):
            validate_form(InviteForm, ["a"])

    def test_api_response_envelope(self) -> None:
        response, status = api_response("Done.", {"x": 1}, 201)
        self.assertEqual(status, 201)
        self.assertEqual(
            response.get_json(), {"success": True, "message": "Done.", "data": {"x": 1}}
        )
        response, _ = api_response("Done.")
        self.assertNotIn("data", response.get_json())


class TagsForm(FlaskForm):
    class Meta:
        csrf = False

    tags = StringListField(validators=[OptionalData(), ListLength(max=2)])


class FieldsTestCase(unittest.TestCase):
    def test_list_length_and_optional_data(self) -> None:
        app = create_app({"TESTING": True})
        with app.test_request_context():
            self.assertTrue(TagsForm(formdata=None, data={}).validate())
            self.assertFalse(
                TagsForm(formdata=None, data={"tags": ["a", "b", "c"]}).validate()
            )
            form = TagsForm(formdata=None, data={"tags": "solo"})
            self.assertEqual(form.tags.data, ["solo"])


class ErrorDefaultsTestCase(unittest.TestCase):
    def test_invariant_violation_defaults(self) -> None:
        error = InvariantViolation()
        self.assertEqual(error.status_code, 409)
        self.assertEqual(
            error.to_dict(),
            {
                "message": "Operation conflicts with current state.",
                "reason": "conflict",
            },
        )
