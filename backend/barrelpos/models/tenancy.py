from __future__ import annotations

from ..extensions import db
from .base import AuditMixin


class Store(AuditMixin, db.Model):
    """
    A physical store. Owns its catalog, orders, shifts and document sequences.

    gst_rate_bps is the GST rate applied to every order line priced at this
    store (basis points, 1000 = 10%).
    """
    __tablename__ = "stores"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)
    gst_rate_bps = db.Column(db.Integer, nullable=False, default=1000)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "gst_rate_bps": self.gst_rate_bps,
            "is_active": self.is_active,
            **self.audit_dict(),
        }


class DocumentSequence(db.Model):
    """Per-store counters for human-readable document numbers (orders, shifts)."""
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("store_id", "document_type", name="uq_document_sequences_store_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
