from __future__ import annotations

from ..extensions import db
from doctrail.time_utils import to_utc_z


class ActivityLog(db.Model):
    """
    Append-only activity trail for documents.

    - No updates/deletes of existing entries.
    - Written after the domain change commits (activity_service.record).
    - payload is a small JSON object (old/new status, counts), never domain state.
    """
    __tablename__ = "activity_logs"
    __table_args__ = (
        db.Index("ix_activity_logs_subject", "subject_type", "subject_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)

    action = db.Column(db.String(64), nullable=False, index=True)  # e.g., memos.send, repairs.status_override
    subject_type = db.Column(db.String(32), nullable=False)
    subject_id = db.Column(db.Integer, nullable=False)
    actor_user_id = db.Column(db.Integer, nullable=True, index=True)

    message = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "action": self.action,
            "subject_type": self.subject_type,
            "subject_id": self.subject_id,
            "actor_user_id": self.actor_user_id,
            "message": self.message,
            "payload": self.payload,
            "created_at": to_utc_z(self.created_at),
        }
