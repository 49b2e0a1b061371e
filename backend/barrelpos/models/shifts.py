from __future__ import annotations

from ..extensions import db
from barrelpos.time_utils import to_utc_z
from .base import AuditMixin


SHIFT_OPEN = "OPEN"
SHIFT_CLOSED = "CLOSED"
SHIFT_SUSPENDED = "SUSPENDED"
SHIFT_RECONCILED = "RECONCILED"

SHIFT_STATUSES = [SHIFT_OPEN, SHIFT_CLOSED, SHIFT_SUSPENDED, SHIFT_RECONCILED]


class Shift(AuditMixin, db.Model):
    """
    Cashier shift: a cash-drawer accounting period.

    LIFECYCLE:
    - OPEN -> CLOSED -> RECONCILED
    - OPEN <-> SUSPENDED
    - At most one OPEN shift per user at any time.

    CLOSE:
    - cash/card/other sales are summed from COMPLETED payments on the
      shift's orders (cash net of change given back)
    - expected_cash = starting_cash + cash_sales
    - cash_difference = ending_cash - expected_cash
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.UniqueConstraint("store_id", "shift_number", name="uq_shifts_store_number"),
        db.Index("ix_shifts_user_status", "user_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shift_number = db.Column(db.String(32), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=SHIFT_OPEN, index=True)

    start_time = db.Column(db.DateTime(timezone=True), nullable=False)
    end_time = db.Column(db.DateTime(timezone=True), nullable=True)

    starting_cash_cents = db.Column(db.Integer, nullable=False, default=0)
    ending_cash_cents = db.Column(db.Integer, nullable=True)
    expected_cash_cents = db.Column(db.Integer, nullable=True)
    cash_difference_cents = db.Column(db.Integer, nullable=True)

    cash_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    card_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    other_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    total_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    total_orders = db.Column(db.Integer, nullable=False, default=0)

    closed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("shifts", lazy=True))
    user = db.relationship("User", foreign_keys=[user_id])
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Shift {self.shift_number} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shift_number": self.shift_number,
            "store_id": self.store_id,
            "user_id": self.user_id,
            "status": self.status,
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time),
            "starting_cash_cents": self.starting_cash_cents,
            "ending_cash_cents": self.ending_cash_cents,
            "expected_cash_cents": self.expected_cash_cents,
            "cash_difference_cents": self.cash_difference_cents,
            "cash_sales_cents": self.cash_sales_cents,
            "card_sales_cents": self.card_sales_cents,
            "other_sales_cents": self.other_sales_cents,
            "total_sales_cents": self.total_sales_cents,
            "total_orders": self.total_orders,
            "closed_by_user_id": self.closed_by_user_id,
            "notes": self.notes,
            **self.audit_dict(),
        }
