from functools import wraps
from flask import current_app
from flask_login import current_user

from .api_utils import api_error


def role_required(*roles):
    """
    Decorator to ensure the current operator has one of the allowed roles.
    Must be placed *after* @login_required.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            if not current_user.is_authenticated:
                return current_app.login_manager.unauthorized()

            user_role = (getattr(current_user, "role", "") or "").strip().lower()
            allowed = {r.strip().lower() for r in roles}

            if user_role not in allowed:
                current_app.logger.warning(
                    "Operator %s (%s) denied access to %s", current_user.username, user_role, func.__name__
                )
                return api_error("forbidden", "You do not have permission to access this resource.", 403)

            return func(*args, **kwargs)
        return wrapper
    return decorator


def super_admin_required(func):
    return role_required("super_admin")(func)
