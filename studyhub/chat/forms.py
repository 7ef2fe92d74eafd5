"""Forms for the chat blueprint."""

from flask_wtf import FlaskForm
from wtforms import IntegerField, SelectField, StringField, TextAreaField
from wtforms.validators import URL, DataRequired, Length, NumberRange

from studyhub.core import constants
from studyhub.core.fields import OptionalData, StringListField

from .models import MessageType


class MessageForm(FlaskForm):
    """Form for posting a chat message."""

    class Meta:
        csrf = False

    content = TextAreaField(
        "Message",
        validators=[DataRequired(), Length(max=constants.MAX_MESSAGE_LENGTH)],
    )
    message_type = SelectField(
        "Type",
        default=MessageType.TEXT.value,
        choices=[
            (t.value, t.value) for t in MessageType if t is not MessageType.SYSTEM
        ],
    )
    file_url = StringField("File URL", validators=[OptionalData(), URL()])
    file_name = StringField("File Name", validators=[OptionalData(), Length(max=255)])
    file_size = IntegerField(
        "File Size", validators=[OptionalData(), NumberRange(min=0)]
    )
    reply_to = StringField("Reply To", validators=[OptionalData(), Length(max=64)])


class EditMessageForm(FlaskForm):
    class Meta:
        csrf = False

    content = TextAreaField(
        "Message",
        validators=[DataRequired(), Length(max=constants.MAX_MESSAGE_LENGTH)],
    )


class ReactionForm(FlaskForm):
    class Meta:
        csrf = False

    emoji = StringField(
        "Emoji", validators=[DataRequired(), Length(max=constants.MAX_EMOJI_LENGTH)]
    )


class ReadForm(FlaskForm):
    """Message ids to mark as read; empty just advances the read cursor."""

    class Meta:
        csrf = False

    message_ids = StringListField("Messages")
