import os

from flask import Blueprint, request, redirect, current_app, send_from_directory, abort

from .. import limiter
from ..api_utils import api_success, json_body
from ..content import services as content
from ..directory import services as directory
from ..submissions.services import submit
from ..team.services import team_directory

main_bp = Blueprint("main", __name__)


# ==========================================
# LANDING
# ==========================================

@main_bp.route("/api/home", methods=["GET"])
def home():
    return api_success({
        "featured_students": [s.to_dict() for s in directory.featured_students(3)],
        "latest_notices": [n.to_dict() for n in content.list_notices(limit=3)],
        "team": team_directory(limit=4),
        "slides": content.public_slides(),
        "site_config": content.public_site_config(),
    })


@main_bp.route("/api/site-config", methods=["GET"])
def site_config():
    return api_success(content.public_site_config())


@main_bp.route("/api/slides", methods=["GET"])
def slides():
    return api_success({"items": content.public_slides()})


@main_bp.route("/api/team", methods=["GET"])
def team():
    return api_success({"items": team_directory()})


# ==========================================
# DIRECTORY / PROFILES
# ==========================================

@main_bp.route("/api/students", methods=["GET"])
def student_directory():
    department = (request.args.get("department") or "").strip() or None
    intake = (request.args.get("intake") or "").strip() or None
    search = (request.args.get("search") or "").strip() or None
    rows = directory.search_students(department=department, intake=intake, search=search)
    return api_success(
        {"items": [s.to_dict() for s in rows], "total": len(rows)},
        {"department": department, "intake": intake, "search": search},
    )


@main_bp.route("/api/students/<slug>", methods=["GET"])
def student_profile(slug):
    student = directory.get_public_profile(slug)
    directory.record_profile_view(student.id)
    return api_success(student.to_dict())


@main_bp.route("/api/students/<slug>/edit", methods=["GET"])
def student_edit_form(slug):
    student = directory.load_for_self_edit(slug)
    return api_success(student.to_dict())


@main_bp.route("/api/students/<slug>/edit", methods=["POST", "PUT"])
@limiter.limit("10 per hour", methods=["POST", "PUT"])
def student_self_edit(slug):
    student = directory.self_edit(slug, json_body())
    return api_success(student.to_dict(), {"message": "Profile updated successfully! It is now secured."})


# ==========================================
# NOTICES / RESOURCES / MEMORIES
# ==========================================

@main_bp.route("/api/notices", methods=["GET"])
def notices():
    rows = content.list_notices()
    return api_success({"items": [n.to_dict() for n in rows], "total": len(rows)})


@main_bp.route("/api/resources", methods=["GET"])
def resources():
    rows = content.list_resources(
        department=(request.args.get("department") or "").strip() or None,
        subject=(request.args.get("subject") or "").strip() or None,
        resource_type=(request.args.get("type") or "").strip() or None,
    )
    return api_success({"items": [r.to_dict() for r in rows], "total": len(rows)})


@main_bp.route("/api/resources/<int:resource_id>/download", methods=["GET"])
def resource_download(resource_id):
    return redirect(content.record_download(resource_id))


@main_bp.route("/api/memories", methods=["GET"])
def memories():
    groups = content.memories_by_year()
    return api_success({
        "years": [
            {"year": g["year"], "memories": [m.to_dict() for m in g["memories"]]}
            for g in groups
        ]
    })


# ==========================================
# SUBMISSIONS
# ==========================================

@main_bp.route("/api/submissions", methods=["POST"])
@limiter.limit("20 per hour", methods=["POST"])
def create_submission():
    sub = submit(json_body())
    return api_success(
        sub.to_dict(),
        {"message": "Your submission has been sent to the admin team for review."},
        status=201,
    )


# ==========================================
# UPLOADED FILES
# ==========================================

@main_bp.route("/uploads/<path:key>", methods=["GET"])
def uploaded_file(key):
    root = os.path.abspath(current_app.config["UPLOAD_FOLDER"])
    if not os.path.isfile(os.path.join(root, key)):
        abort(404)
    return send_from_directory(root, key)
