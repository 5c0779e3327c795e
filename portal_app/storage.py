"""Storage gateway for user-supplied files.

Raw payloads (``data:`` URLs or uploaded multipart files) are written under
``UPLOAD_FOLDER`` as ``{folder}/{epoch_millis}_{random}[.ext]`` and replaced
by a public URL. Strings that are not data URLs are treated as durable
references and returned unchanged.
"""
import base64
import binascii
import mimetypes
import os
import re
import secrets
import time
from urllib.parse import unquote_to_bytes

from flask import current_app, url_for
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from .api_utils import dict_items
from .errors import StorageError, ValidationFailed

FOLDERS = {
    "avatars", "gallery", "resources", "notices", "slideshow",
    "assets", "certificates", "achievements", "memories",
}

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[^;,]*)(?P<params>[^,]*?),(?P<data>.*)$", re.S)

# Extensions mimetypes picks oddly for common upload types
_PREFERRED_EXTS = {"image/jpeg": ".jpg", "text/plain": ".txt"}


def is_raw_payload(value) -> bool:
    if isinstance(value, FileStorage):
        return True
    return isinstance(value, str) and value.startswith("data:")


def decode_data_url(value: str):
    """Return ``(bytes, mime)`` for a ``data:`` URL."""
    m = _DATA_URL_RE.match(value)
    if not m:
        raise StorageError("Invalid data url")
    mime = m.group("mime") or "application/octet-stream"
    raw = m.group("data")
    if m.group("params").endswith(";base64"):
        try:
            blob = base64.b64decode(raw, validate=True)
        except (binascii.Error, ValueError) as e:
            raise StorageError("Invalid base64 payload in data url") from e
    else:
        blob = unquote_to_bytes(raw)
    return blob, mime


def _extension_for(mime):
    ext = _PREFERRED_EXTS.get(mime) or mimetypes.guess_extension(mime or "") or ""
    return ext


def _object_key(folder, ext=""):
    stamp = int(time.time() * 1000)
    suffix = secrets.token_hex(4)
    return f"{folder}/{stamp}_{suffix}{ext}"


def _object_path(key):
    root = os.path.abspath(current_app.config["UPLOAD_FOLDER"])
    path = os.path.abspath(os.path.join(root, key))
    if not path.startswith(root + os.sep):
        raise StorageError(f"Object key escapes upload folder: {key}")
    return path


def public_url(key):
    base = current_app.config.get("PUBLIC_UPLOAD_BASE_URL")
    if base:
        return f"{base.rstrip('/')}/{key}"
    return url_for("main.uploaded_file", key=key)


def _read_payload(payload):
    """Return ``(bytes, ext)`` for a raw payload."""
    if isinstance(payload, FileStorage):
        filename = secure_filename(payload.filename or "")
        ext = ""
        if "." in filename:
            ext = "." + filename.rsplit(".", 1)[-1].lower()
        elif payload.mimetype:
            ext = _extension_for(payload.mimetype)
        try:
            blob = payload.read()
        except OSError as e:
            raise StorageError("Failed to read uploaded file") from e
        return blob, ext
    blob, mime = decode_data_url(payload)
    return blob, _extension_for(mime)


def put_object(payload, folder):
    """Write a raw payload and return its object key."""
    if folder not in FOLDERS:
        raise StorageError(f"Unknown storage folder: {folder}")
    blob, ext = _read_payload(payload)
    max_bytes = current_app.config.get("UPLOAD_MAX_BYTES") or 0
    if max_bytes and len(blob) > max_bytes:
        limit_mb = max(1, int(max_bytes / (1024 * 1024)))
        raise StorageError(f"File too large. Max {limit_mb} MB allowed.")
    key = _object_key(folder, ext)
    path = _object_path(key)
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as fh:
            fh.write(blob)
    except OSError as e:
        raise StorageError(f"Failed to write object {key}") from e
    return key


def delete_object(key):
    path = _object_path(key)
    if os.path.exists(path):
        os.remove(path)


def upload(payload, folder="assets"):
    """Return a durable reference for ``payload``.

    Durable strings pass through, empty values give ``None`` and raw payloads
    are stored under ``folder``.
    """
    if payload is None or payload == "":
        return None
    if not is_raw_payload(payload):
        if isinstance(payload, str):
            return payload
        raise ValidationFailed(f"Unsupported file value: {type(payload).__name__}")
    return public_url(put_object(payload, folder))


class UploadBatch:
    """Track every object written during one logical operation.

    Used as a context manager: if the block raises, the objects written so
    far are deleted before the exception propagates.
    """

    def __init__(self):
        self.keys = []

    def upload(self, payload, folder):
        if payload is None or payload == "" or not is_raw_payload(payload):
            return upload(payload, folder)
        key = put_object(payload, folder)
        self.keys.append(key)
        return public_url(key)

    def discard(self):
        for key in self.keys:
            try:
                delete_object(key)
            except (OSError, StorageError):
                current_app.logger.warning("Failed to remove orphaned upload %s", key)
        self.keys = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is not None:
            if self.keys:
                current_app.logger.info("Discarding %d upload(s) after failed operation", len(self.keys))
            self.discard()
        return False


def _as_list(value):
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def store_profile_files(fields, batch):
    """Upload every nested file field of a profile/resource payload.

    Returns a copy of ``fields`` in which raw payloads are replaced by their
    durable references. Each field is uploaded independently; the first
    failure raises and leaves cleanup to ``batch``.
    """
    data = dict(fields)
    if "avatar_url" in data:
        data["avatar_url"] = batch.upload(data.get("avatar_url"), "avatars")
    if "gallery_images" in data:
        data["gallery_images"] = [
            batch.upload(img, "gallery") for img in _as_list(data.get("gallery_images"))
            if not (isinstance(img, str) and not img.strip())
        ]
    if "courses" in data:
        courses = []
        for course in dict_items(data.get("courses"), "courses"):
            course = dict(course)
            if course.get("certificate_url"):
                course["certificate_url"] = batch.upload(course["certificate_url"], "certificates")
            courses.append(course)
        data["courses"] = courses
    if "achievements" in data:
        achievements = []
        for achievement in dict_items(data.get("achievements"), "achievements"):
            achievement = dict(achievement)
            if achievement.get("attachment_url"):
                achievement["attachment_url"] = batch.upload(achievement["attachment_url"], "achievements")
            achievements.append(achievement)
        data["achievements"] = achievements
    if "download_url" in data:
        data["download_url"] = batch.upload(data.get("download_url"), "resources")
    return data
