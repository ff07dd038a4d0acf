# Overview: Append-only activity trail for document actions.

from __future__ import annotations

import json

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import ActivityLog


def record(
    action: str,
    subject=None,
    *,
    subject_type: str | None = None,
    subject_id: int | None = None,
    store_id: int | None = None,
    actor_user_id: int | None = None,
    payload: dict | None = None,
    message: str | None = None,
) -> ActivityLog | None:
    """
    Append an activity entry for a subject (usually a Document).

    Pass the subject itself, or subject_type/subject_id/store_id when the
    row no longer exists (deletions).

    Called after the primary transaction commits and commits on its own.
    A failed write is rolled back and logged; it never raises, because the
    action it describes has already happened.
    """
    if subject is not None:
        subject_type = subject_type or getattr(subject, "document_type", None) or type(subject).__name__.lower()
        subject_id = subject.id
        store_id = store_id if store_id is not None else getattr(subject, "store_id", None)

    entry = ActivityLog(
        store_id=store_id,
        action=action,
        subject_type=subject_type,
        subject_id=subject_id,
        actor_user_id=actor_user_id,
        message=message,
        payload=json.dumps(payload, default=str, sort_keys=True) if payload else None,
    )
    try:
        db.session.add(entry)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning(
            "Failed to record activity %s for %s %s", action, subject_type, subject_id,
            exc_info=True,
        )
        return None
    return entry


def list_activity(store_id: int, *, subject_type: str | None = None, subject_id: int | None = None, limit: int = 100):
    query = db.session.query(ActivityLog).filter(ActivityLog.store_id == store_id)
    if subject_type:
        query = query.filter(ActivityLog.subject_type == subject_type)
    if subject_id is not None:
        query = query.filter(ActivityLog.subject_id == subject_id)
    return query.order_by(ActivityLog.id.desc()).limit(limit).all()
