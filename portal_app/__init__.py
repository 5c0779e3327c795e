import os
import secrets
import time
from datetime import timedelta
from functools import wraps

from flask import Flask, session, request, current_app
from flask_caching import Cache
from flask_limiter import Limiter
from flask_limiter.errors import RateLimitExceeded
from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

# Global extensions
db = SQLAlchemy()
login_manager = LoginManager()
migrate = Migrate()


def _rate_key():
    try:
        ip = (request.headers.get("X-Forwarded-For") or request.remote_addr or "local")
        token = (session.get("rlid") or "")
        path = (getattr(request, "path", "/") or "/")
        return f"{ip}|{token}|{path}"
    except Exception:
        return "local"


limiter = Limiter(key_func=_rate_key)
cache = Cache()


def _env_flag(name, default):
    return os.environ.get(name, default).strip().lower() == "true"


def create_app():
    app = Flask(__name__)
    app.config["SECRET_KEY"] = os.environ.get("SECRET_KEY", "dev-secret-key")
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(days=7)

    REDIS_URL = os.environ.get("REDIS_URL")
    if REDIS_URL:
        app.config["CACHE_TYPE"] = "RedisCache"
        app.config["CACHE_REDIS_URL"] = REDIS_URL
        app.config["RATELIMIT_STORAGE_URI"] = REDIS_URL
    else:
        app.config["CACHE_TYPE"] = "SimpleCache"

    # Whole-request cap; single decoded files are capped by UPLOAD_MAX_BYTES
    app.config["MAX_CONTENT_LENGTH"] = int(os.environ.get("MAX_CONTENT_LENGTH", str(32 * 1024 * 1024)))
    app.config["UPLOAD_MAX_BYTES"] = int(os.environ.get("UPLOAD_MAX_BYTES", str(5 * 1024 * 1024)))
    app.config["UPLOAD_FOLDER"] = os.environ.get(
        "UPLOAD_FOLDER", os.path.join(os.path.dirname(__file__), "static", "uploads")
    )
    app.config["PUBLIC_UPLOAD_BASE_URL"] = os.environ.get("PUBLIC_UPLOAD_BASE_URL")

    app.config["SESSION_TOKEN_TTL"] = int(os.environ.get("SESSION_TOKEN_TTL", str(7 * 24 * 3600)))
    app.config["CSRF_TOKEN_TTL"] = int(os.environ.get("CSRF_TOKEN_TTL", "7200"))
    app.config["CSRF_ENABLED"] = _env_flag("CSRF_ENABLED", "true")

    # Collection limits
    app.config["MAX_CAMPUS_IMAGES"] = 5
    app.config["MAX_MEMORY_IMAGES"] = 15
    app.config["DEFAULT_INTAKE"] = os.environ.get("DEFAULT_INTAKE", "Fall 2024")

    app.logger.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())

    # Database configuration: use DATABASE_URL if provided, else sqlite file
    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        db_path = os.path.join(os.path.dirname(__file__), "..", "portal.db")
        database_url = f"sqlite:///{os.path.abspath(db_path)}"

    app.config["SQLALCHEMY_DATABASE_URI"] = database_url
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

    app.config.setdefault("RATELIMIT_STORAGE_URI", "memory://")
    db.init_app(app)
    migrate.init_app(app, db)

    # Must run before the limiter computes its key
    @app.before_request
    def ensure_rate_key():
        if not session.get("rlid"):
            session["rlid"] = secrets.token_urlsafe(16)

    limiter.init_app(app)
    cache.init_app(app)

    login_manager.init_app(app)

    # Import models so they are registered with SQLAlchemy
    from . import models  # noqa: F401

    @login_manager.user_loader
    def load_user(user_id: str):
        try:
            from .models import TeamMember
            member = db.session.get(TeamMember, int(user_id))
        except (TypeError, ValueError):
            return None
        if member is None or not member.is_active:
            return None
        return member

    @login_manager.request_loader
    def load_user_from_request(req):
        auth = req.headers.get("Authorization") or ""
        if not auth.lower().startswith("bearer "):
            return None
        from .identity import load_session_token
        return load_session_token(auth.split(" ", 1)[1].strip())

    @login_manager.unauthorized_handler
    def handle_unauthorized():
        from .api_utils import api_error
        return api_error("unauthorized", "Login required", 401)

    # Blueprints
    from .main.routes import main_bp
    app.register_blueprint(main_bp)

    from .admin import admin_bp
    app.register_blueprint(admin_bp, url_prefix="/api/admin")

    from .errors import PortalError

    @app.errorhandler(PortalError)
    def handle_portal_error(e):
        from .api_utils import api_error
        return api_error(e.code, e.message, e.status)

    @app.errorhandler(RequestEntityTooLarge)
    def handle_large_upload(e):
        from .api_utils import api_error
        limit_bytes = app.config.get("MAX_CONTENT_LENGTH") or (32 * 1024 * 1024)
        limit_mb = max(1, int(limit_bytes / (1024 * 1024)))
        return api_error("too_large", f"Upload exceeds the global size limit (max {limit_mb} MB).", 413)

    @app.errorhandler(RateLimitExceeded)
    def handle_rate_limit(e):
        from .api_utils import api_error
        return api_error("rate_limited", "Too many requests", 429)

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        from .api_utils import api_error
        return api_error(str(e.code), e.description or "", e.code)

    # Create tables on first run (dev convenience)
    with app.app_context():
        db.create_all()

    return app


def issue_csrf_token():
    """Return the session CSRF token, rotating it when missing or expired."""
    token = session.get("csrf_token")
    issued_at = session.get("csrf_token_issued_at")
    ttl = current_app.config.get("CSRF_TOKEN_TTL", 7200)
    now = int(time.time())
    if (not token) or (not issued_at) or (ttl > 0 and (now - int(issued_at)) > ttl):
        token = secrets.token_urlsafe(32)
        session["csrf_token"] = token
        session["csrf_token_issued_at"] = now
    return token


def csrf_required(view_func):
    @wraps(view_func)
    def _wrapped(*args, **kwargs):
        if not current_app.config.get("CSRF_ENABLED", True):
            return view_func(*args, **kwargs)
        method = (request.method or "GET").upper()
        if method not in ("POST", "PUT", "PATCH", "DELETE"):
            return view_func(*args, **kwargs)
        # Bearer tokens are not sent ambiently by browsers
        if (request.headers.get("Authorization") or "").lower().startswith("bearer "):
            return view_func(*args, **kwargs)

        from .api_utils import api_error
        token = (request.headers.get("X-CSRF-Token") or request.form.get("csrf_token") or "").strip()
        sess_token = (session.get("csrf_token") or "")
        issued_at = session.get("csrf_token_issued_at")
        ttl = current_app.config.get("CSRF_TOKEN_TTL", 7200)
        now = int(time.time())
        # Expired token
        if not issued_at or (ttl > 0 and (now - int(issued_at)) > ttl):
            return api_error("csrf_expired", "Refresh the page or login again", 400)
        # Missing token in request
        if not token:
            return api_error("csrf_missing", "Refresh the page or login again", 400)
        # Mismatch
        if not secrets.compare_digest(token, sess_token):
            return api_error("csrf_mismatch", "Refresh the page or login again", 400)
        return view_func(*args, **kwargs)
    return _wrapped
