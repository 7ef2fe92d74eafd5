"""Forms for the notification blueprint."""

from flask_wtf import FlaskForm

from studyhub.core.fields import StringListField


class MarkReadForm(FlaskForm):
    """Notification ids to mark read; empty marks all of them."""

    class Meta:
        csrf = False

    notification_ids = StringListField("Notifications")
