"""Forms for the group blueprint."""

from flask_wtf import FlaskForm
from wtforms import BooleanField, IntegerField, SelectField, StringField, TextAreaField
from wtforms.validators import DataRequired, Length, NumberRange

from studyhub.core import constants
from studyhub.core.fields import ListLength, OptionalData, StringListField

from .models import Subject


class GroupForm(FlaskForm):
    """Form for creating a new group."""

    class Meta:
        csrf = False

    name = StringField(
        "Group Name",
        validators=[
            DataRequired(),
            Length(
                min=constants.GROUP_NAME_MIN_LENGTH,
                max=constants.GROUP_NAME_MAX_LENGTH,
            ),
        ],
    )
    description = TextAreaField(
        "Description",
        validators=[
            OptionalData(),
            Length(max=constants.GROUP_DESCRIPTION_MAX_LENGTH),
        ],
    )
    subject = SelectField(
        "Subject",
        choices=[(s.value, s.value) for s in Subject],
        validators=[DataRequired()],
    )
    chapter = StringField(
        "Chapter",
        validators=[
            DataRequired(),
            Length(min=constants.CHAPTER_MIN_LENGTH, max=constants.CHAPTER_MAX_LENGTH),
        ],
    )
    duration = IntegerField(
        "Challenge Duration (days)",
        validators=[
            DataRequired(),
            NumberRange(
                min=constants.MIN_CHALLENGE_DAYS, max=constants.MAX_CHALLENGE_DAYS
            ),
        ],
    )
    max_members = IntegerField(
        "Max Members",
        default=constants.DEFAULT_MAX_MEMBERS,
        validators=[
            OptionalData(),
            NumberRange(min=constants.MIN_MAX_MEMBERS, max=constants.MAX_MAX_MEMBERS),
        ],
    )
    is_private = BooleanField("Private Group", default=True)
    allow_late_submissions = BooleanField("Allow Late Submissions", default=False)
    show_leaderboard = BooleanField("Show Leaderboard", default=True)


class InviteForm(FlaskForm):
    """Form for inviting users to a group."""

    class Meta:
        csrf = False

    user_ids = StringListField("Users", validators=[ListLength(min=1, max=20)])
