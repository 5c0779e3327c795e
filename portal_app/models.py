from datetime import datetime, timezone

from flask_login import UserMixin
from sqlalchemy import event
from sqlalchemy.orm import validates

from . import db


def utc_now():
    return datetime.now(timezone.utc)


# ==========================================
# DIRECTORY
# ==========================================

class Student(db.Model):
    __tablename__ = "students"
    id = db.Column(db.Integer, primary_key=True)
    slug = db.Column(db.String(160), unique=True, nullable=False, index=True)
    full_name = db.Column(db.String(128), nullable=False)
    department = db.Column(db.String(128), index=True)
    intake = db.Column(db.String(64))  # e.g. "Batch 25", "Fall 2024"
    bio = db.Column(db.Text, default="")
    contact_email = db.Column(db.String(128))

    avatar_url = db.Column(db.String(512))
    gallery_images = db.Column(db.JSON, default=list)

    # Structured sub-records
    achievements = db.Column(db.JSON, default=list)  # [{title, date, description, attachment_url}]
    courses = db.Column(db.JSON, default=list)  # [{name, certificate_url}]
    cgpa = db.Column(db.JSON, default=list)  # [{semester, gpa}]
    social_links = db.Column(db.JSON, default=list)  # [{platform, url}]

    views = db.Column(db.Integer, default=0, nullable=False)
    is_featured = db.Column(db.Boolean, default=False, nullable=False)
    is_locked = db.Column(db.Boolean, default=False, nullable=False)
    status = db.Column(db.String(16), default="active", nullable=False)  # active, graduated, suspended
    created_at = db.Column(db.DateTime, default=utc_now)

    STATUSES = ("active", "graduated", "suspended")

    # Fields the owning visitor may change through the one-shot self edit
    self_editable_fields = (
        "full_name", "department", "intake", "bio", "contact_email",
        "avatar_url", "gallery_images", "achievements", "courses", "cgpa", "social_links",
    )
    editable_fields = self_editable_fields + ("status", "is_featured", "is_locked")

    @validates("slug")
    def _slug_is_immutable(self, key, value):
        if self.slug is not None and value != self.slug:
            raise ValueError("Student slug cannot be changed once assigned")
        return value

    def to_dict(self):
        return {
            "id": self.id,
            "slug": self.slug,
            "full_name": self.full_name,
            "department": self.department,
            "intake": self.intake,
            "bio": self.bio or "",
            "contact_email": self.contact_email,
            "avatar_url": self.avatar_url,
            "gallery_images": self.gallery_images or [],
            "achievements": self.achievements or [],
            "courses": self.courses or [],
            "cgpa": self.cgpa or [],
            "social_links": self.social_links or [],
            "views": self.views or 0,
            "is_featured": bool(self.is_featured),
            "is_locked": bool(self.is_locked),
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# ==========================================
# MODERATION
# ==========================================

class Submission(db.Model):
    __tablename__ = "submissions"
    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(16), nullable=False)  # biography, resource
    student_name = db.Column(db.String(128), nullable=False)
    department = db.Column(db.String(128))
    # Shape depends on type; file fields hold durable references only
    content = db.Column(db.JSON, default=dict)
    status = db.Column(db.String(16), default="pending", nullable=False, index=True)  # pending, approved, rejected
    submitted_at = db.Column(db.DateTime, default=utc_now)

    TYPES = ("biography", "resource")
    STATUSES = ("pending", "approved", "rejected")
    DECISIONS = ("approved", "rejected")

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.type,
            "student_name": self.student_name,
            "department": self.department,
            "content": self.content or {},
            "status": self.status,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
        }


# ==========================================
# CONTENT
# ==========================================

class Notice(db.Model):
    __tablename__ = "notices"
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    content = db.Column(db.Text, default="")
    type = db.Column(db.String(16), default="campus")  # campus, exam, event, course
    is_pinned = db.Column(db.Boolean, default=False, nullable=False)
    # Advisory only; nothing archives or expires notices automatically
    is_archived = db.Column(db.Boolean, default=False, nullable=False)
    posted_at = db.Column(db.DateTime, default=utc_now)
    expires_at = db.Column(db.DateTime)
    attachment_url = db.Column(db.String(512))

    TYPES = ("campus", "exam", "event", "course")
    editable_fields = ("title", "content", "type", "is_pinned", "is_archived", "expires_at", "attachment_url")

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content or "",
            "type": self.type,
            "is_pinned": bool(self.is_pinned),
            "is_archived": bool(self.is_archived),
            "posted_at": self.posted_at.isoformat() if self.posted_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "attachment_url": self.attachment_url,
        }


class Resource(db.Model):
    __tablename__ = "resources"
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    type = db.Column(db.String(16), default="note")  # note, thesis, paper
    department = db.Column(db.String(128), index=True)
    intake = db.Column(db.String(64))
    subject = db.Column(db.String(128))
    author_name = db.Column(db.String(128))
    download_url = db.Column(db.String(512), nullable=False)
    upload_date = db.Column(db.DateTime, default=utc_now)
    downloads = db.Column(db.Integer, default=0, nullable=False)
    version = db.Column(db.Integer, default=1, nullable=False)

    TYPES = ("note", "thesis", "paper")
    editable_fields = (
        "title", "description", "type", "department", "intake", "subject", "author_name", "version", "download_url",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "type": self.type,
            "department": self.department,
            "intake": self.intake,
            "subject": self.subject,
            "author_name": self.author_name,
            "download_url": self.download_url,
            "upload_date": self.upload_date.isoformat() if self.upload_date else None,
            "downloads": self.downloads or 0,
            "version": self.version or 1,
        }


class CampusImage(db.Model):
    __tablename__ = "campus_images"
    id = db.Column(db.Integer, primary_key=True)
    url = db.Column(db.String(512), nullable=False)
    uploaded_at = db.Column(db.DateTime, default=utc_now)

    def to_dict(self):
        return {
            "id": self.id,
            "url": self.url,
            "uploaded_at": self.uploaded_at.isoformat() if self.uploaded_at else None,
        }


class CampusMemory(db.Model):
    __tablename__ = "campus_memories"
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    date = db.Column(db.Date, nullable=False)
    year = db.Column(db.Integer, nullable=False, index=True)
    images = db.Column(db.JSON, default=list)
    created_at = db.Column(db.DateTime, default=utc_now)

    editable_fields = ("title", "description", "date", "images")

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "date": self.date.isoformat() if self.date else None,
            "year": self.year,
            "images": self.images or [],
        }


class SiteConfig(db.Model):
    __tablename__ = "site_config"
    SINGLETON_ID = 1

    id = db.Column(db.Integer, primary_key=True)
    logo_url = db.Column(db.String(512))
    contact_address = db.Column(db.Text, default="")
    contact_email = db.Column(db.String(128), default="")
    contact_phone = db.Column(db.String(32), default="")
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    def to_dict(self):
        return {
            "logo_url": self.logo_url,
            "contact": {
                "address": self.contact_address or "",
                "email": self.contact_email or "",
                "phone": self.contact_phone or "",
            },
        }


# ==========================================
# OPERATORS / AUDIT
# ==========================================

class TeamMember(UserMixin, db.Model):
    __tablename__ = "team_members"
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(128), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    full_name = db.Column(db.String(128), default="")
    title = db.Column(db.String(128), default="")  # e.g. "Senior Moderator"
    avatar_url = db.Column(db.String(512))
    role = db.Column(db.String(32), default="moderator", nullable=False)  # moderator, super_admin
    # Weak reference to students.slug; resolved at read time, never enforced
    linked_student_slug = db.Column(db.String(160))
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utc_now)

    ROLES = ("moderator", "super_admin")
    profile_fields = ("full_name", "title", "avatar_url", "linked_student_slug")

    def get_id(self):
        return str(self.id)

    @property
    def is_super_admin(self):
        return self.role == "super_admin"


class AuditLog(db.Model):
    __tablename__ = "audit_logs"
    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(128), nullable=False)
    actor = db.Column(db.String(128), nullable=False, index=True)
    target = db.Column(db.String(255))
    details = db.Column(db.Text)
    timestamp = db.Column(db.DateTime, default=utc_now, index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "action": self.action,
            "actor": self.actor,
            "target": self.target,
            "details": self.details,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


@event.listens_for(AuditLog, "before_update")
def _audit_log_is_append_only(mapper, connection, target):
    raise ValueError("Audit log entries are immutable")


@event.listens_for(AuditLog, "before_delete")
def _audit_log_is_not_deletable(mapper, connection, target):
    raise ValueError("Audit log entries are immutable")
