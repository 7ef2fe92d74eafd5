"""Decorators for protected API views."""

from functools import wraps

from flask import g

from studyhub.errors import AuthenticationError, PermissionDenied


def login_required(f=None, admin_required=False):
    """Reject the request unless a user was authenticated for it.

    Usage:
    @login_required
    def protected_view():
        ...

    @login_required(admin_required=True)
    def admin_view():
        ...
    """

    def decorator(func):
        @wraps(func)
        def decorated_function(*args, **kwargs):
            if g.get("user") is None:
                raise g.get("auth_error") or AuthenticationError()
            if admin_required and not g.user.is_admin:
                raise PermissionDenied("Admin access required.")
            return func(*args, **kwargs)

        return decorated_function

    if f:
        return decorator(f)
    return decorator
