from datetime import datetime, date

from flask import current_app
from sqlalchemy import update, not_, func, select

from .. import db, cache
from ..api_utils import as_bool
from ..audit import record_action
from ..errors import RecordNotFound, SlideLimitReached, ValidationFailed
from ..models import Notice, Resource, CampusImage, CampusMemory, SiteConfig, Submission, Student
from ..records import (
    count_records, create_record, delete_record, get_record, list_records, update_record,
)
from ..storage import UploadBatch

SITE_CONFIG_CACHE_KEY = "public_site_config"
SLIDES_CACHE_KEY = "public_slides"


def _parse_datetime(value):
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        raise ValidationFailed(f"Invalid date/time: {value}")


def _parse_date(value):
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    parsed = _parse_datetime(value)
    return parsed.date() if parsed else None


def _commit_or_rollback():
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


# ==========================================
# NOTICES
# ==========================================

def list_notices(limit=None):
    """Pinned notices first, then newest first."""
    return list_records(Notice, order_by=[Notice.is_pinned.desc(), Notice.posted_at.desc()], limit=limit)


def _notice_fields(fields):
    data = {k: v for k, v in fields.items() if k in Notice.editable_fields}
    if "type" in data and data["type"] not in Notice.TYPES:
        raise ValidationFailed(f"Notice type must be one of: {', '.join(Notice.TYPES)}")
    for key in ("is_pinned", "is_archived"):
        if key in data:
            data[key] = as_bool(data[key])
    if "expires_at" in data:
        data["expires_at"] = _parse_datetime(data["expires_at"])
    return data


def create_notice(fields):
    data = _notice_fields(fields)
    if not (data.get("title") or "").strip():
        raise ValidationFailed("Notice title is required")
    data.setdefault("type", "campus")
    with UploadBatch() as batch:
        data["attachment_url"] = batch.upload(data.get("attachment_url"), "notices")
        notice = create_record(Notice, data)
    record_action("Posted Notice", notice.title)
    return notice


def update_notice(notice_id, fields):
    data = _notice_fields(fields)
    if "title" in data and not (data["title"] or "").strip():
        raise ValidationFailed("Notice title is required")
    with UploadBatch() as batch:
        if "attachment_url" in data:
            data["attachment_url"] = batch.upload(data["attachment_url"], "notices")
        notice = update_record(Notice, notice_id, data)
    record_action("Updated Notice", notice_id)
    return notice


def toggle_notice_pin(notice_id):
    result = db.session.execute(
        update(Notice).where(Notice.id == notice_id).values(is_pinned=not_(Notice.is_pinned))
    )
    if result.rowcount == 0:
        db.session.rollback()
        raise RecordNotFound(f"Notice {notice_id} not found")
    _commit_or_rollback()
    return get_record(Notice, notice_id).is_pinned


def delete_notice(notice_id):
    delete_record(Notice, notice_id)
    record_action("Deleted Notice", notice_id)


# ==========================================
# RESOURCES
# ==========================================

def list_resources(department=None, subject=None, resource_type=None):
    filters = []
    if department and department != "All":
        filters.append(Resource.department == department)
    if subject:
        filters.append(Resource.subject.ilike(f"%{subject}%"))
    if resource_type:
        filters.append(Resource.type == resource_type)
    return list_records(Resource, filters, order_by=Resource.upload_date.desc())


def create_resource(fields):
    title = (fields.get("title") or "").strip()
    if not title:
        raise ValidationFailed("Resource title is required")
    if not fields.get("download_url"):
        raise ValidationFailed("Please upload a file")
    data = {k: v for k, v in fields.items() if k in Resource.editable_fields}
    data["title"] = title
    if data.get("type") and data["type"] not in Resource.TYPES:
        raise ValidationFailed(f"Resource type must be one of: {', '.join(Resource.TYPES)}")
    with UploadBatch() as batch:
        data["download_url"] = batch.upload(fields.get("download_url"), "resources")
        resource = create_record(Resource, data)
    record_action("Uploaded Resource", resource.title)
    return resource


def update_resource(resource_id, fields):
    data = {k: v for k, v in fields.items() if k in Resource.editable_fields}
    if "title" in data:
        data["title"] = (data["title"] or "").strip()
        if not data["title"]:
            raise ValidationFailed("Resource title is required")
    if "type" in data and data["type"] not in Resource.TYPES:
        raise ValidationFailed(f"Resource type must be one of: {', '.join(Resource.TYPES)}")
    if "version" in data:
        try:
            data["version"] = int(data["version"])
        except (TypeError, ValueError):
            raise ValidationFailed("Version must be a whole number")
        if data["version"] < 1:
            raise ValidationFailed("Version must be at least 1")
    if "download_url" in data and not data["download_url"]:
        raise ValidationFailed("Please upload a file")
    with UploadBatch() as batch:
        if "download_url" in data:
            data["download_url"] = batch.upload(data["download_url"], "resources")
        resource = update_record(Resource, resource_id, data)
    record_action("Updated Resource", resource_id)
    return resource


def record_download(resource_id):
    """Count one download and return the file reference."""
    result = db.session.execute(
        update(Resource).where(Resource.id == resource_id).values(downloads=Resource.downloads + 1)
    )
    if result.rowcount == 0:
        db.session.rollback()
        raise RecordNotFound(f"Resource {resource_id} not found")
    _commit_or_rollback()
    return get_record(Resource, resource_id).download_url


def delete_resource(resource_id):
    delete_record(Resource, resource_id)
    record_action("Deleted Resource", resource_id)


# ==========================================
# CAMPUS IMAGES (homepage slideshow)
# ==========================================

def list_campus_images():
    return list_records(CampusImage, order_by=CampusImage.uploaded_at.desc())


def public_slides():
    slides = cache.get(SLIDES_CACHE_KEY)
    if slides is None:
        slides = [img.to_dict() for img in list_campus_images()]
        cache.set(SLIDES_CACHE_KEY, slides, timeout=300)
    return slides


def add_campus_image(payload):
    max_slides = current_app.config.get("MAX_CAMPUS_IMAGES", 5)
    if count_records(CampusImage) >= max_slides:
        raise SlideLimitReached(f"Maximum of {max_slides} slides allowed.")
    if not payload:
        raise ValidationFailed("Please upload an image")
    with UploadBatch() as batch:
        url = batch.upload(payload, "slideshow")
        image = CampusImage(url=url)
        db.session.add(image)
        try:
            db.session.flush()
            # Re-count once the new row is flushed
            if count_records(CampusImage) > max_slides:
                raise SlideLimitReached(f"Maximum of {max_slides} slides allowed.")
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
    cache.delete(SLIDES_CACHE_KEY)
    record_action("Uploaded Slide", "Homepage")
    return image


def delete_campus_image(image_id):
    delete_record(CampusImage, image_id)
    cache.delete(SLIDES_CACHE_KEY)
    record_action("Deleted Slide", image_id)


# ==========================================
# CAMPUS MEMORIES
# ==========================================

def list_memories():
    return list_records(CampusMemory, order_by=[CampusMemory.year.desc(), CampusMemory.date.desc()])


def memories_by_year():
    """Return ``[{"year": 2024, "memories": [...]}, ...]``, newest year first."""
    groups = {}
    for memory in list_memories():
        groups.setdefault(memory.year, []).append(memory)
    return [{"year": year, "memories": groups[year]} for year in sorted(groups, reverse=True)]


def _memory_fields(fields, batch):
    data = {k: v for k, v in fields.items() if k in CampusMemory.editable_fields}
    if "date" in data:
        data["date"] = _parse_date(data["date"])
        if data["date"] is None:
            raise ValidationFailed("Memory date is required")
        data["year"] = data["date"].year
    if "images" in data:
        images = data["images"] or []
        if not isinstance(images, list):
            images = [images]
        max_images = current_app.config.get("MAX_MEMORY_IMAGES", 15)
        if len(images) > max_images:
            raise ValidationFailed(f"A memory can hold at most {max_images} images.")
        data["images"] = [batch.upload(img, "memories") for img in images if img]
    return data


def create_memory(fields):
    if not (fields.get("title") or "").strip():
        raise ValidationFailed("Memory title is required")
    if not fields.get("date"):
        raise ValidationFailed("Memory date is required")
    with UploadBatch() as batch:
        data = _memory_fields(fields, batch)
        memory = create_record(CampusMemory, data)
    record_action("Added Memory", memory.title)
    return memory


def update_memory(memory_id, fields):
    memory = get_record(CampusMemory, memory_id)
    with UploadBatch() as batch:
        data = _memory_fields(fields, batch)
        for key, value in data.items():
            setattr(memory, key, value)
        _commit_or_rollback()
    record_action("Updated Memory", memory_id)
    return memory


def delete_memory(memory_id):
    delete_record(CampusMemory, memory_id)
    record_action("Deleted Memory", memory_id)


# ==========================================
# SITE CONFIG
# ==========================================

def get_site_config():
    config = db.session.get(SiteConfig, SiteConfig.SINGLETON_ID)
    if config is None:
        return {"logo_url": None, "contact": {"address": "", "email": "", "phone": ""}}
    return config.to_dict()


def public_site_config():
    config = cache.get(SITE_CONFIG_CACHE_KEY)
    if config is None:
        config = get_site_config()
        cache.set(SITE_CONFIG_CACHE_KEY, config, timeout=300)
    return config


def update_site_config(fields):
    with UploadBatch() as batch:
        config = db.session.get(SiteConfig, SiteConfig.SINGLETON_ID)
        if config is None:
            config = SiteConfig(id=SiteConfig.SINGLETON_ID)
            db.session.add(config)
        if "logo_url" in fields:
            config.logo_url = batch.upload(fields.get("logo_url"), "assets")
        contact = fields.get("contact") or {}
        if "address" in contact:
            config.contact_address = contact.get("address") or ""
        if "email" in contact:
            config.contact_email = contact.get("email") or ""
        if "phone" in contact:
            config.contact_phone = contact.get("phone") or ""
        _commit_or_rollback()
    cache.delete(SITE_CONFIG_CACHE_KEY)
    record_action("Updated Site Config", "site_config")
    return config.to_dict()


# ==========================================
# DASHBOARD
# ==========================================

def dashboard_stats():
    return {
        "pending_submissions": count_records(Submission, Submission.status == "pending"),
        "students": count_records(Student),
        "notices": count_records(Notice),
        "resources": count_records(Resource),
        "slides": count_records(CampusImage),
        "memories": count_records(CampusMemory),
        "total_views": db.session.execute(select(func.coalesce(func.sum(Student.views), 0))).scalar_one(),
    }
