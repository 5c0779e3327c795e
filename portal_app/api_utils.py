from flask import jsonify

from .errors import ValidationFailed


def api_success(data=None, meta=None, status=200):
    body = {"success": True, "data": data if data is not None else {}, "meta": meta or {}}
    return jsonify(body), status


def api_error(code="error", message="", status=400):
    body = {"success": False, "error": {"code": code, "message": message}}
    return jsonify(body), status


def json_body():
    """Return the request JSON object, falling back to form fields and files.

    Multipart uploads land next to the form fields: a single file under its
    field name, repeated fields (e.g. gallery images) as a list.
    """
    from flask import request
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    data = request.form.to_dict()
    for key in request.files:
        files = [f for f in request.files.getlist(key) if f and f.filename]
        if len(files) == 1:
            data[key] = files[0]
        elif files:
            data[key] = files
    return data


def as_bool(value):
    """Coerce JSON booleans and form strings ("true", "0", "on") to ``bool``."""
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def dict_items(value, field):
    """Return ``value`` as a list of dicts, rejecting any other shape."""
    if value is None or value == "":
        return []
    if not isinstance(value, (list, tuple)) or not all(isinstance(item, dict) for item in value):
        raise ValidationFailed(f"{field} must be a list of objects")
    return list(value)
