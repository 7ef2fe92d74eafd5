"""Bearer-token authentication for the JSON API."""

from .decorators import login_required
from .utils import bearer_token, load_request_user

__all__ = ["bearer_token", "load_request_user", "login_required"]
