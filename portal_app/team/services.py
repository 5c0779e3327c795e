from flask import current_app
from sqlalchemy import select, func

from .. import db
from ..audit import record_action
from ..errors import ValidationFailed
from ..identity import hash_password
from ..models import TeamMember, AuditLog, Student
from ..records import get_record, get_record_by, list_records
from ..storage import UploadBatch


def activity_scores():
    """Map of operator username -> number of audit entries they produced."""
    rows = db.session.execute(
        select(AuditLog.actor, func.count(AuditLog.id)).group_by(AuditLog.actor)
    ).all()
    return {actor: count for actor, count in rows}


def resolve_linked_student(member):
    """Follow the weak ``linked_student_slug`` reference; ``None`` if it dangles."""
    slug = member.linked_student_slug
    if not slug:
        return None
    student = get_record_by(Student, slug=slug)
    if student is None or student.status == "suspended":
        return None
    return {"slug": student.slug, "full_name": student.full_name, "avatar_url": student.avatar_url}


def rank_name(score):
    if score > 1000:
        return "Legend"
    if score > 500:
        return "Guardian"
    if score > 100:
        return "Contributor"
    return "Observer"


def member_to_dict(member, scores=None):
    scores = scores if scores is not None else activity_scores()
    score = scores.get(member.username, 0)
    return {
        "id": member.id,
        "username": member.username,
        "full_name": member.full_name or "",
        "title": member.title or "",
        "avatar_url": member.avatar_url,
        "role": member.role,
        "activity_score": score,
        "rank": rank_name(score),
        "linked_student_slug": member.linked_student_slug,
        "linked_student": resolve_linked_student(member),
    }


def list_team_members(limit=None):
    return list_records(
        TeamMember, [TeamMember.is_active.is_(True)], order_by=TeamMember.created_at.asc(), limit=limit
    )


def team_directory(limit=None):
    scores = activity_scores()
    return [member_to_dict(m, scores) for m in list_team_members(limit)]


def create_team_member(fields):
    username = (fields.get("username") or "").strip()
    password = fields.get("password") or ""
    role = (fields.get("role") or "moderator").strip().lower()
    if not username or not password:
        raise ValidationFailed("Username and password are required.")
    if role not in TeamMember.ROLES:
        raise ValidationFailed(f"Role must be one of: {', '.join(TeamMember.ROLES)}")
    if get_record_by(TeamMember, username=username) is not None:
        raise ValidationFailed("Username is already taken.")
    with UploadBatch() as batch:
        member = TeamMember(
            username=username,
            password_hash=hash_password(password),
            role=role,
            full_name=(fields.get("full_name") or "").strip(),
            title=(fields.get("title") or "").strip(),
            avatar_url=batch.upload(fields.get("avatar_url"), "avatars"),
            linked_student_slug=(fields.get("linked_student_slug") or "").strip() or None,
        )
        db.session.add(member)
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
    record_action("Created Team Member", username, role)
    return member


def delete_team_member(member_id, acting_member):
    member = get_record(TeamMember, member_id)
    if member.id == acting_member.id:
        raise ValidationFailed("You cannot delete your own account.")
    username = member.username
    db.session.delete(member)
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    record_action("Deleted Team Member", username)


def update_own_profile(member, fields):
    """Let an operator edit their public card and, optionally, their password."""
    new_password = fields.get("new_password")
    if new_password and len(new_password) < 8:
        raise ValidationFailed("New password must be at least 8 characters.")
    with UploadBatch() as batch:
        for key in TeamMember.profile_fields:
            if key not in fields:
                continue
            value = fields[key]
            if key == "avatar_url":
                value = batch.upload(value, "avatars")
            elif key == "linked_student_slug":
                value = (value or "").strip() or None
            setattr(member, key, value)
        if new_password:
            member.password_hash = hash_password(new_password)
            current_app.logger.info("Operator %s changed their password", member.username)
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
    record_action("Updated Profile", member.username)
    return member
