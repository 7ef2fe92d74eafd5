"""The exam blueprint."""

from flask import Blueprint

bp = Blueprint("exam", __name__, url_prefix="/api/exams")

from . import routes  # noqa: E402

__all__ = ["routes"]
