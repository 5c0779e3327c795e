"""Operator authentication and session tokens.

The authenticated operator is always taken from the current request
(``flask_login.current_user``): either the signed session cookie or a bearer
token issued by :func:`issue_session_token`.
"""
import hashlib

from flask import current_app
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired
from sqlalchemy import select
from werkzeug.security import check_password_hash, generate_password_hash

from . import db
from .models import TeamMember

TOKEN_SALT = "portal-session"


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def authenticate(username: str, password: str):
    """Return the active operator for these credentials, else ``None``."""
    username = (username or "").strip()
    if not username or not password:
        return None
    member = db.session.execute(select(TeamMember).filter_by(username=username)).scalars().first()
    if not member or not member.is_active or not member.password_hash:
        return None
    if not check_password_hash(member.password_hash, password):
        return None
    return member


def _serializer():
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def password_fingerprint(member) -> str:
    """Short digest of the stored hash; changes whenever the password does."""
    return hashlib.sha256((member.password_hash or "").encode("utf-8")).hexdigest()[:16]


def issue_session_token(member) -> str:
    # Tokens stop validating once the password changes
    return _serializer().dumps({"uid": member.id, "pw": password_fingerprint(member)})


def load_session_token(token: str):
    if not token:
        return None
    max_age = current_app.config.get("SESSION_TOKEN_TTL") or None
    try:
        claims = _serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        current_app.logger.info("Rejected expired session token")
        return None
    except BadSignature:
        current_app.logger.warning("Rejected session token with bad signature")
        return None
    try:
        member = db.session.get(TeamMember, int(claims.get("uid")))
    except (TypeError, ValueError):
        return None
    if member is None or not member.is_active:
        return None
    if password_fingerprint(member) != claims.get("pw"):
        return None
    return member
