"""Forms for the exam blueprint."""

from flask_wtf import FlaskForm
from wtforms import FloatField, IntegerField, StringField, TextAreaField
from wtforms.validators import URL, DataRequired, Length, NumberRange

from studyhub.core import constants
from studyhub.core.fields import ListLength, OptionalData, StringListField


class ExamForm(FlaskForm):
    """Form for setting the exam paper and marking scheme."""

    class Meta:
        csrf = False

    paper_url = StringField("Exam Paper URL", validators=[OptionalData(), URL()])
    max_marks = IntegerField(
        "Max Marks", validators=[OptionalData(), NumberRange(min=1, max=1000)]
    )
    duration_minutes = IntegerField(
        "Duration (minutes)", validators=[OptionalData(), NumberRange(min=1, max=600)]
    )
    instructions = TextAreaField(
        "Instructions", validators=[OptionalData(), Length(max=2000)]
    )


class SubmissionForm(FlaskForm):
    """Answer sheets that are already stored and referenced by URL."""

    class Meta:
        csrf = False

    answer_sheets = StringListField(
        "Answer Sheets", validators=[ListLength(max=constants.MAX_ANSWER_SHEETS)]
    )


class GradeForm(FlaskForm):
    """Form for grading one member's submission."""

    class Meta:
        csrf = False

    user_id = StringField("User", validators=[DataRequired()])
    marks = FloatField("Marks", validators=[NumberRange(min=0)])
    feedback = TextAreaField("Feedback", validators=[OptionalData(), Length(max=1000)])
