"""Generic CRUD over the portal collections.

Every collection is a plain table with no cross-collection transactions;
services layer their own rules (uploads, audit, locks) on top of these.
"""
from sqlalchemy import select, func

from . import db
from .errors import RecordNotFound


def list_records(model, filters=None, order_by=None, limit=None):
    """Return rows of ``model`` matching all ``filters`` (AND semantics)."""
    stmt = select(model)
    for clause in (filters or []):
        stmt = stmt.where(clause)
    if order_by is not None:
        stmt = stmt.order_by(*order_by) if isinstance(order_by, (list, tuple)) else stmt.order_by(order_by)
    if limit:
        stmt = stmt.limit(limit)
    return db.session.execute(stmt).scalars().all()


def count_records(model, *filters):
    stmt = select(func.count()).select_from(model)
    for clause in filters:
        stmt = stmt.where(clause)
    return db.session.execute(stmt).scalar_one()


def get_record(model, record_id):
    row = db.session.get(model, record_id)
    if row is None:
        raise RecordNotFound(f"{model.__name__} {record_id} not found")
    return row


def get_record_by(model, **keys):
    """Return the first row matching ``keys`` or ``None``."""
    return db.session.execute(select(model).filter_by(**keys)).scalars().first()


def create_record(model, fields, commit=True):
    row = model(**fields)
    db.session.add(row)
    if commit:
        _commit()
    return row


def update_record(model, record_id, fields, commit=True):
    """Apply ``fields`` restricted to ``model.editable_fields``.

    Unknown keys are ignored so ids, slugs and counters can never be written
    through a generic update.
    """
    row = get_record(model, record_id)
    allowed = getattr(model, "editable_fields", ())
    for key, value in fields.items():
        if key in allowed:
            setattr(row, key, value)
    if commit:
        _commit()
    return row


def delete_record(model, record_id):
    row = get_record(model, record_id)
    db.session.delete(row)
    _commit()


def _commit():
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
