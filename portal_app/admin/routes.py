from flask import request, current_app
from flask_login import login_required, login_user, logout_user, current_user

from . import admin_bp
from .. import limiter, issue_csrf_token, csrf_required
from ..api_utils import api_success, api_error, json_body
from ..content import services as content
from ..decorators import super_admin_required
from ..directory import services as directory
from ..identity import authenticate, issue_session_token
from ..models import AuditLog, Submission
from ..records import list_records
from ..submissions import services as submissions
from ..team import services as team


def _limit_arg(default=None):
    try:
        value = int(request.args.get("limit", default or 0))
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


# ==========================================
# SESSION
# ==========================================

@admin_bp.route("/login", methods=["POST"])
@limiter.limit("5 per minute", methods=["POST"])
def login():
    data = json_body()
    username = (data.get("username") or "").strip()
    password = data.get("password") or ""
    if not username or not password:
        return api_error("validation_error", "Username and password are required.", 400)
    member = authenticate(username, password)
    if member is None:
        current_app.logger.warning("Failed login for %s", username)
        return api_error("invalid_credentials", "Invalid credentials.", 401)
    login_user(member)
    current_app.logger.info("Operator %s logged in", member.username)
    return api_success({
        "member": team.member_to_dict(member),
        "token": issue_session_token(member),
        "csrf_token": issue_csrf_token(),
    })


@admin_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    username = current_user.username
    logout_user()
    current_app.logger.info("Operator %s logged out", username)
    return api_success({"logged_out": True})


@admin_bp.route("/csrf-token", methods=["GET"])
@login_required
def csrf_token():
    return api_success({"csrf_token": issue_csrf_token()})


@admin_bp.route("/me", methods=["GET"])
@login_required
def me():
    return api_success(team.member_to_dict(current_user))


@admin_bp.route("/me", methods=["PUT"])
@login_required
@csrf_required
def update_me():
    member = team.update_own_profile(current_user._get_current_object(), json_body())
    return api_success(team.member_to_dict(member))


@admin_bp.route("/stats", methods=["GET"])
@login_required
def stats():
    return api_success(content.dashboard_stats())


# ==========================================
# SUBMISSIONS
# ==========================================

@admin_bp.route("/submissions", methods=["GET"])
@login_required
def list_submissions():
    status = (request.args.get("status") or "").strip().lower() or None
    if status and status not in Submission.STATUSES:
        return api_error("validation_error", f"Unknown status: {status}", 400)
    rows = submissions.list_submissions(status)
    return api_success({"items": [s.to_dict() for s in rows], "total": len(rows)})


@admin_bp.route("/submissions/<int:submission_id>/review", methods=["POST"])
@login_required
@csrf_required
def review_submission(submission_id):
    decision = (json_body().get("decision") or "").strip().lower()
    sub, created = submissions.review(submission_id, decision)
    return api_success({
        "submission": sub.to_dict(),
        "created": created.to_dict() if created is not None else None,
    })


# ==========================================
# STUDENTS
# ==========================================

@admin_bp.route("/students", methods=["GET"])
@login_required
def list_students():
    rows = directory.list_students_for_admin()
    return api_success({"items": [s.to_dict() for s in rows], "total": len(rows)})


@admin_bp.route("/students/<int:student_id>", methods=["PUT"])
@login_required
@csrf_required
def update_student(student_id):
    student = directory.admin_update_student(student_id, json_body())
    return api_success(student.to_dict())


@admin_bp.route("/students/<int:student_id>", methods=["DELETE"])
@login_required
@csrf_required
def delete_student(student_id):
    directory.delete_student(student_id)
    return api_success({"deleted": student_id})


@admin_bp.route("/students/<int:student_id>/toggle-lock", methods=["POST"])
@login_required
@csrf_required
def toggle_student_lock(student_id):
    return api_success({"id": student_id, "is_locked": directory.toggle_lock(student_id)})


@admin_bp.route("/students/<int:student_id>/toggle-status", methods=["POST"])
@login_required
@csrf_required
def toggle_student_status(student_id):
    return api_success({"id": student_id, "status": directory.toggle_status(student_id)})


@admin_bp.route("/students/<int:student_id>/toggle-featured", methods=["POST"])
@login_required
@csrf_required
def toggle_student_featured(student_id):
    return api_success({"id": student_id, "is_featured": directory.toggle_featured(student_id)})


# ==========================================
# NOTICES
# ==========================================

@admin_bp.route("/notices", methods=["GET"])
@login_required
def list_notices():
    rows = content.list_notices()
    return api_success({"items": [n.to_dict() for n in rows], "total": len(rows)})


@admin_bp.route("/notices", methods=["POST"])
@login_required
@csrf_required
def create_notice():
    return api_success(content.create_notice(json_body()).to_dict(), status=201)


@admin_bp.route("/notices/<int:notice_id>", methods=["PUT"])
@login_required
@csrf_required
def update_notice(notice_id):
    return api_success(content.update_notice(notice_id, json_body()).to_dict())


@admin_bp.route("/notices/<int:notice_id>/toggle-pin", methods=["POST"])
@login_required
@csrf_required
def toggle_notice_pin(notice_id):
    return api_success({"id": notice_id, "is_pinned": content.toggle_notice_pin(notice_id)})


@admin_bp.route("/notices/<int:notice_id>", methods=["DELETE"])
@login_required
@csrf_required
def delete_notice(notice_id):
    content.delete_notice(notice_id)
    return api_success({"deleted": notice_id})


# ==========================================
# RESOURCES
# ==========================================

@admin_bp.route("/resources", methods=["GET"])
@login_required
def list_resources():
    rows = content.list_resources()
    return api_success({"items": [r.to_dict() for r in rows], "total": len(rows)})


@admin_bp.route("/resources", methods=["POST"])
@login_required
@csrf_required
def create_resource():
    return api_success(content.create_resource(json_body()).to_dict(), status=201)


@admin_bp.route("/resources/<int:resource_id>", methods=["PUT"])
@login_required
@csrf_required
def update_resource(resource_id):
    return api_success(content.update_resource(resource_id, json_body()).to_dict())


@admin_bp.route("/resources/<int:resource_id>", methods=["DELETE"])
@login_required
@csrf_required
def delete_resource(resource_id):
    content.delete_resource(resource_id)
    return api_success({"deleted": resource_id})


# ==========================================
# CAMPUS IMAGES
# ==========================================

@admin_bp.route("/campus-images", methods=["GET"])
@login_required
def list_campus_images():
    rows = content.list_campus_images()
    return api_success({
        "items": [i.to_dict() for i in rows],
        "total": len(rows),
        "max": current_app.config.get("MAX_CAMPUS_IMAGES", 5),
    })


@admin_bp.route("/campus-images", methods=["POST"])
@login_required
@csrf_required
def add_campus_image():
    data = json_body()
    payload = data.get("image") or data.get("url")
    return api_success(content.add_campus_image(payload).to_dict(), status=201)


@admin_bp.route("/campus-images/<int:image_id>", methods=["DELETE"])
@login_required
@csrf_required
def delete_campus_image(image_id):
    content.delete_campus_image(image_id)
    return api_success({"deleted": image_id})


# ==========================================
# MEMORIES
# ==========================================

@admin_bp.route("/memories", methods=["GET"])
@login_required
def list_memories():
    rows = content.list_memories()
    return api_success({"items": [m.to_dict() for m in rows], "total": len(rows)})


@admin_bp.route("/memories", methods=["POST"])
@login_required
@csrf_required
def create_memory():
    return api_success(content.create_memory(json_body()).to_dict(), status=201)


@admin_bp.route("/memories/<int:memory_id>", methods=["PUT"])
@login_required
@csrf_required
def update_memory(memory_id):
    return api_success(content.update_memory(memory_id, json_body()).to_dict())


@admin_bp.route("/memories/<int:memory_id>", methods=["DELETE"])
@login_required
@csrf_required
def delete_memory(memory_id):
    content.delete_memory(memory_id)
    return api_success({"deleted": memory_id})


# ==========================================
# SITE CONFIG
# ==========================================

@admin_bp.route("/site-config", methods=["GET"])
@login_required
def get_site_config():
    return api_success(content.get_site_config())


@admin_bp.route("/site-config", methods=["PUT"])
@login_required
@csrf_required
def update_site_config():
    data = json_body()
    if "contact" not in data:
        # Flat form fields
        contact = {k: data[k] for k in ("address", "email", "phone") if k in data}
        if contact:
            data = dict(data, contact=contact)
    return api_success(content.update_site_config(data))


# ==========================================
# TEAM (super admin)
# ==========================================

@admin_bp.route("/team", methods=["GET"])
@login_required
def list_team():
    return api_success({"items": team.team_directory()})


@admin_bp.route("/team", methods=["POST"])
@login_required
@super_admin_required
@csrf_required
def create_team_member():
    member = team.create_team_member(json_body())
    return api_success(team.member_to_dict(member), status=201)


@admin_bp.route("/team/<int:member_id>", methods=["DELETE"])
@login_required
@super_admin_required
@csrf_required
def delete_team_member(member_id):
    team.delete_team_member(member_id, current_user._get_current_object())
    return api_success({"deleted": member_id})


# ==========================================
# AUDIT LOG
# ==========================================

@admin_bp.route("/audit-logs", methods=["GET"])
@login_required
def audit_logs():
    rows = list_records(AuditLog, order_by=AuditLog.timestamp.desc(), limit=_limit_arg(100))
    return api_success({"items": [r.to_dict() for r in rows], "total": len(rows)})

