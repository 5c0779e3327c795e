from flask import current_app
from flask_login import current_user

from . import db
from .models import AuditLog


def _actor_name():
    if getattr(current_user, "is_authenticated", False):
        return current_user.username
    return "system"


def record_action(action, target, details=None, actor=None):
    """Append an audit entry after a privileged mutation.

    Best-effort: call only after the mutation itself is committed. A failure
    here is logged and never reaches the caller.
    """
    try:
        entry = AuditLog(
            action=action,
            actor=actor or _actor_name(),
            target=str(target) if target is not None else None,
            details=details,
        )
        db.session.add(entry)
        db.session.commit()
        return entry
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to write audit log entry: %s %s", action, target)
        return None
