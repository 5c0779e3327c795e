from flask import current_app
from sqlalchemy import update

from .. import db
from ..api_utils import dict_items
from ..audit import record_action
from ..directory.services import generate_student_slug
from ..errors import RecordNotFound, SubmissionAlreadyReviewed, ValidationFailed
from ..models import Submission, Student, Resource
from ..records import get_record, list_records
from ..storage import UploadBatch, store_profile_files

BIOGRAPHY_FIELDS = (
    "bio", "intake", "avatar_url", "gallery_images", "social_links",
    "achievements", "courses", "cgpa", "contact_email",
)
RESOURCE_FIELDS = ("title", "description", "download_url", "subject", "resource_type", "intake")


def submit(draft):
    """
    Stage a visitor-authored draft as a pending submission.
    Every nested file in ``content`` is uploaded before the row is written;
    if anything fails, files already stored for this draft are removed.
    No duplicate check: the same person may submit any number of drafts.
    """
    sub_type = (draft.get("type") or "").strip().lower()
    student_name = (draft.get("student_name") or "").strip()
    department = (draft.get("department") or "").strip()
    if sub_type not in Submission.TYPES:
        raise ValidationFailed("Submission type must be 'biography' or 'resource'.")
    if not student_name:
        raise ValidationFailed("Full name is required.")
    if not department:
        raise ValidationFailed("Department is required.")

    allowed = BIOGRAPHY_FIELDS if sub_type == "biography" else RESOURCE_FIELDS
    raw_content = draft.get("content")
    if not isinstance(raw_content, dict):
        # Multipart forms post content fields at the top level
        raw_content = draft
    content = {k: v for k, v in raw_content.items() if k in allowed}
    for key in ("achievements", "courses", "cgpa", "social_links"):
        if key in content:
            content[key] = dict_items(content[key], key)
    if sub_type == "resource" and not content.get("download_url"):
        raise ValidationFailed("Please upload a file")

    with UploadBatch() as batch:
        content = store_profile_files(content, batch)
        sub = Submission(
            type=sub_type,
            student_name=student_name,
            department=department,
            content=content,
            status="pending",
        )
        db.session.add(sub)
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
    current_app.logger.info("New %s submission %s from %s", sub_type, sub.id, student_name)
    return sub


def list_submissions(status=None):
    filters = [Submission.status == status] if status else None
    return list_records(Submission, filters, order_by=Submission.submitted_at.desc())


def review(submission_id, decision):
    """
    Apply a moderator decision to a pending submission.

    The status flip is a conditional UPDATE on ``status = 'pending'``, so a
    submission can be decided exactly once; approval materializes the
    submission into a directory record within the same transaction.
    Returns ``(submission, created_record_or_None)``.
    """
    if decision not in Submission.DECISIONS:
        raise ValidationFailed("Decision must be 'approved' or 'rejected'.")

    created = None
    try:
        result = db.session.execute(
            update(Submission)
            .where(Submission.id == submission_id, Submission.status == "pending")
            .values(status=decision)
        )
        if result.rowcount == 0:
            if db.session.get(Submission, submission_id) is None:
                raise RecordNotFound(f"Submission {submission_id} not found")
            raise SubmissionAlreadyReviewed()

        if decision == "approved":
            # Re-read the row rather than trusting what the moderator was shown
            sub = db.session.get(Submission, submission_id, populate_existing=True)
            if sub.type == "biography":
                created = create_student_from_submission(sub)
            elif sub.type == "resource":
                created = create_resource_from_submission(sub)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    record_action("Reviewed Submission", submission_id, decision)
    return get_record(Submission, submission_id), created


def create_student_from_submission(sub):
    content = sub.content or {}
    student = Student(
        full_name=sub.student_name,
        slug=generate_student_slug(sub.student_name),
        department=sub.department,
        intake=content.get("intake") or current_app.config.get("DEFAULT_INTAKE", "Fall 2024"),
        bio=content.get("bio") or "",
        avatar_url=content.get("avatar_url"),
        gallery_images=content.get("gallery_images") or [],
        achievements=content.get("achievements") or [],
        courses=content.get("courses") or [],
        cgpa=content.get("cgpa") or [],
        social_links=content.get("social_links") or [],
        contact_email=content.get("contact_email"),
        is_featured=False,
        # A freshly approved profile starts locked
        is_locked=True,
        status="active",
    )
    db.session.add(student)
    db.session.flush()
    return student


def create_resource_from_submission(sub):
    content = sub.content or {}
    res_type = content.get("resource_type") if content.get("resource_type") in Resource.TYPES else "note"
    resource = Resource(
        title=content.get("title") or f"Resource by {sub.student_name}",
        description=content.get("description"),
        type=res_type,
        department=sub.department,
        intake=content.get("intake"),
        subject=content.get("subject"),
        author_name=sub.student_name,
        download_url=content.get("download_url"),
    )
    db.session.add(resource)
    db.session.flush()
    return resource
