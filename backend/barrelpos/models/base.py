from __future__ import annotations

from ..extensions import db
from barrelpos.time_utils import utcnow, to_utc_z


class AuditMixin:
    """
    Audit and soft-delete columns shared by every persisted entity.

    Stamped by persistence.audit_stamped before each save; rows are never
    physically removed, only marked is_deleted.
    """
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_by_user_id = db.Column(db.Integer, nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_by_user_id = db.Column(db.Integer, nullable=True)

    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deleted_by_user_id = db.Column(db.Integer, nullable=True)

    def audit_dict(self) -> dict:
        return {
            "created_at": to_utc_z(self.created_at),
            "created_by_user_id": self.created_by_user_id,
            "updated_at": to_utc_z(self.updated_at),
            "updated_by_user_id": self.updated_by_user_id,
            "is_deleted": self.is_deleted,
            "deleted_at": to_utc_z(self.deleted_at),
        }
