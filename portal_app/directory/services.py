import re
import secrets

from flask import current_app
from sqlalchemy import update, case, not_

from .. import db
from ..api_utils import as_bool, dict_items
from ..audit import record_action
from ..errors import ProfileLocked, RecordNotFound, ValidationFailed
from ..models import Student
from ..records import get_record, get_record_by, list_records, update_record, delete_record
from ..storage import UploadBatch, store_profile_files


def slugify(name: str) -> str:
    s = (name or "").strip().lower()
    s = re.sub(r"[^a-z0-9\s-]", "", s)
    s = re.sub(r"[\s-]+", " ", s).strip()
    return s.replace(" ", "-")


def generate_student_slug(full_name: str) -> str:
    """Return ``slugify(full_name)`` plus a random suffix not used by any student."""
    base = slugify(full_name) or "student"
    for _ in range(10):
        candidate = f"{base}-{secrets.token_hex(2)}"
        if get_record_by(Student, slug=candidate) is None:
            return candidate
    return f"{base}-{secrets.token_hex(6)}"


def rank_score(student) -> float:
    """Directory rank: average GPA * 25 + achievements * 10 + views * 0.05."""
    gpas = []
    for entry in (student.cgpa or []):
        try:
            gpas.append(float(entry.get("gpa")))
        except (TypeError, ValueError, AttributeError):
            continue
    avg_gpa = sum(gpas) / len(gpas) if gpas else 0.0
    return avg_gpa * 25 + len(student.achievements or []) * 10 + (student.views or 0) * 0.05


def search_students(department=None, intake=None, search=None, include_suspended=False):
    """Directory listing with AND-combined filters.

    ``department`` matches exactly ("All" means no filter), ``intake`` and
    ``search`` (full name) match as case-insensitive substrings. Results are
    alphabetical by name; equal names fall back to rank score.
    """
    filters = []
    if department and department != "All":
        filters.append(Student.department == department)
    if intake and intake != "All":
        filters.append(Student.intake.ilike(f"%{intake}%"))
    if search:
        filters.append(Student.full_name.ilike(f"%{search.strip()}%"))
    if not include_suspended:
        filters.append(Student.status != "suspended")
    rows = list_records(Student, filters)
    return sorted(rows, key=lambda s: ((s.full_name or "").upper(), -rank_score(s)))


def featured_students(limit=3):
    return list_records(
        Student,
        [Student.is_featured.is_(True), Student.status != "suspended"],
        order_by=Student.full_name.asc(),
        limit=limit,
    )


def get_public_profile(slug):
    student = get_record_by(Student, slug=slug)
    if student is None or student.status == "suspended":
        raise RecordNotFound(f"No student profile at {slug}")
    return student


def record_profile_view(student_id):
    db.session.execute(
        update(Student).where(Student.id == student_id).values(views=Student.views + 1)
    )
    db.session.commit()


def load_for_self_edit(slug):
    """Return the profile for the self-edit form, refusing locked profiles."""
    student = get_public_profile(slug)
    if student.is_locked:
        raise ProfileLocked()
    return student


def _clean_profile_fields(fields):
    data = {k: v for k, v in fields.items() if k in Student.self_editable_fields}
    if "full_name" in data and not (data["full_name"] or "").strip():
        raise ValidationFailed("Full name is required")
    for key in ("courses", "cgpa"):
        if key in data:
            data[key] = dict_items(data[key], key)
    if "social_links" in data:
        data["social_links"] = [
            s for s in dict_items(data["social_links"], "social_links") if str(s.get("url") or "").strip()
        ]
    if "achievements" in data:
        data["achievements"] = [
            a for a in dict_items(data["achievements"], "achievements") if str(a.get("title") or "").strip()
        ]
    return data


def self_edit(slug, fields):
    """One-shot visitor edit of an unlocked profile.

    Files are uploaded first, then the row is written with a conditional
    UPDATE that only matches while ``is_locked`` is false and sets it to
    true in the same statement. A profile locked after the form was loaded
    therefore stays untouched.
    """
    student = load_for_self_edit(slug)
    data = _clean_profile_fields(fields)
    with UploadBatch() as batch:
        data = store_profile_files(data, batch)
        try:
            result = db.session.execute(
                update(Student)
                .where(Student.id == student.id, Student.is_locked.is_(False))
                .values(is_locked=True, **data)
            )
            if result.rowcount == 0:
                raise ProfileLocked()
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
    current_app.logger.info("Self edit applied to %s; profile locked", slug)
    return get_record_by(Student, slug=slug)


def _toggle(student_id, column_values):
    result = db.session.execute(
        update(Student).where(Student.id == student_id).values(**column_values)
    )
    if result.rowcount == 0:
        db.session.rollback()
        raise RecordNotFound(f"Student {student_id} not found")
    db.session.commit()
    return get_record(Student, student_id)


def toggle_lock(student_id):
    """Flip ``is_locked`` in one UPDATE; returns the new value."""
    student = _toggle(student_id, {"is_locked": not_(Student.is_locked)})
    record_action("Toggled Lock", student_id, "locked" if student.is_locked else "unlocked")
    return student.is_locked


def toggle_status(student_id):
    """Suspend an active/graduated student or reinstate a suspended one."""
    new_status = case((Student.status == "suspended", "active"), else_="suspended")
    student = _toggle(student_id, {"status": new_status})
    record_action("Toggled Status", student_id, student.status)
    return student.status


def toggle_featured(student_id):
    student = _toggle(student_id, {"is_featured": not_(Student.is_featured)})
    record_action("Toggled Featured", student_id, "featured" if student.is_featured else "unfeatured")
    return student.is_featured


def admin_update_student(student_id, fields):
    if "status" in fields and fields["status"] not in Student.STATUSES:
        raise ValidationFailed(f"Unknown status: {fields['status']}")
    data = _clean_profile_fields(fields)
    if "status" in fields:
        data["status"] = fields["status"]
    for key in ("is_featured", "is_locked"):
        if key in fields:
            data[key] = as_bool(fields[key])
    with UploadBatch() as batch:
        data = store_profile_files(data, batch)
        student = update_record(Student, student_id, data)
    record_action("Updated Student", student_id)
    return student


def delete_student(student_id):
    delete_record(Student, student_id)
    record_action("Deleted Student", student_id)


def list_students_for_admin():
    return list_records(Student, order_by=Student.created_at.desc())

