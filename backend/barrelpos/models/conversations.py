from __future__ import annotations

from ..extensions import db
from barrelpos.time_utils import utcnow


class ConversationSessionRecord(db.Model):
    """
    Durable backing row for a WhatsApp conversation session.

    The whole CustomerSession is kept as a JSON payload; state and
    last_activity are duplicated as columns for expiry sweeps.
    """
    __tablename__ = "conversation_sessions"

    phone_number = db.Column(db.String(32), primary_key=True)
    state = db.Column(db.String(32), nullable=False)
    payload = db.Column(db.JSON(none_as_null=True), nullable=True)
    last_activity = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    # Cross-worker handling lease; payload stays NULL on a row created only to hold it
    lease_token = db.Column(db.String(32), nullable=True)
    lease_expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
