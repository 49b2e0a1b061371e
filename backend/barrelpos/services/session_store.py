# Overview: Keyed storage for WhatsApp conversation sessions, with expiry and a cross-worker lease.

from __future__ import annotations

import abc
import copy
import threading
import time
import uuid
from contextlib import contextmanager
from datetime import timedelta

from sqlalchemy import insert, or_
from sqlalchemy.exc import IntegrityError

from ..errors import InfrastructureError
from ..extensions import db
from ..models import ConversationSessionRecord
from barrelpos.time_utils import utcnow
from .conversation_state import INITIAL, CustomerSession


class SessionStore(abc.ABC):
    """
    Contract consumed by ConversationService.

    get() returns a copy: callers mutate freely and persist with save().
    """

    @abc.abstractmethod
    def get(self, phone_number: str) -> CustomerSession | None: ...

    @abc.abstractmethod
    def save(self, session: CustomerSession) -> None: ...

    @abc.abstractmethod
    def clear(self, phone_number: str) -> None: ...

    @abc.abstractmethod
    def list_active(self) -> list[CustomerSession]: ...

    @abc.abstractmethod
    def clear_expired(self, timeout_hours: float) -> int: ...

    @contextmanager
    def lease(self, phone_number: str):
        """Exclusive use of one conversation across workers. Process-local stores need none."""
        yield


class InMemorySessionStore(SessionStore):
    """Process-local store. Sessions are lost on restart."""

    def __init__(self):
        self._sessions: dict[str, CustomerSession] = {}
        self._lock = threading.Lock()

    def get(self, phone_number):
        with self._lock:
            session = self._sessions.get(phone_number)
            return copy.deepcopy(session) if session is not None else None

    def save(self, session):
        with self._lock:
            self._sessions[session.phone_number] = copy.deepcopy(session)

    def clear(self, phone_number):
        with self._lock:
            self._sessions.pop(phone_number, None)

    def list_active(self):
        with self._lock:
            return [copy.deepcopy(s) for s in self._sessions.values()]

    def clear_expired(self, timeout_hours):
        cutoff = utcnow() - timedelta(hours=timeout_hours)
        with self._lock:
            expired = [phone for phone, s in self._sessions.items() if s.last_activity < cutoff]
            for phone in expired:
                del self._sessions[phone]
        return len(expired)


class DatabaseSessionStore(SessionStore):
    """
    Sessions persisted in conversation_sessions as JSON payloads.

    Survives restarts and is shared by every worker process. Each call
    commits its own small transaction.

    lease() claims the row with a token and an expiry through a conditional
    UPDATE. The claim survives the commits made while the message is
    handled, so a second worker receiving the same phone waits until the
    first has saved the session (and its processed message ids). A lease
    left by a crashed worker lapses after lease_seconds.
    """

    def __init__(self, *, lease_seconds: float = 30, wait_seconds: float = 10, poll_seconds: float = 0.05):
        self.lease_seconds = lease_seconds
        self.wait_seconds = wait_seconds
        self.poll_seconds = poll_seconds

    def get(self, phone_number):
        record = db.session.get(ConversationSessionRecord, phone_number)
        if record is None or record.payload is None:
            return None
        return CustomerSession.from_dict(record.payload)

    def save(self, session):
        record = db.session.get(ConversationSessionRecord, session.phone_number)
        if record is None:
            record = ConversationSessionRecord(phone_number=session.phone_number)
            db.session.add(record)
        record.state = session.state
        record.payload = session.to_dict()
        record.last_activity = session.last_activity
        db.session.commit()

    def clear(self, phone_number):
        db.session.query(ConversationSessionRecord).filter_by(phone_number=phone_number).delete()
        db.session.commit()

    def list_active(self):
        records = (
            db.session.query(ConversationSessionRecord)
            .filter(ConversationSessionRecord.payload.isnot(None))
            .order_by(ConversationSessionRecord.last_activity)
            .all()
        )
        return [CustomerSession.from_dict(record.payload) for record in records if record.payload is not None]

    def clear_expired(self, timeout_hours):
        """Bulk delete of idle rows. Rows under a live lease are left alone."""
        now = utcnow()
        count = (
            db.session.query(ConversationSessionRecord)
            .filter(ConversationSessionRecord.last_activity < now - timedelta(hours=timeout_hours))
            .filter(or_(
                ConversationSessionRecord.lease_expires_at.is_(None),
                ConversationSessionRecord.lease_expires_at < now,
            ))
            .delete(synchronize_session=False)
        )
        db.session.commit()
        return count

    # -------------------------------------------------------------------------
    # Lease
    # -------------------------------------------------------------------------

    def _ensure_row(self, phone_number: str) -> None:
        exists = (
            db.session.query(ConversationSessionRecord.phone_number)
            .filter(ConversationSessionRecord.phone_number == phone_number)
            .first()
        )
        if exists is not None:
            return
        try:
            db.session.execute(
                insert(ConversationSessionRecord).values(
                    phone_number=phone_number, state=INITIAL, last_activity=utcnow(),
                )
            )
            db.session.commit()
        except IntegrityError:
            # Another worker inserted it first
            db.session.rollback()

    def _try_claim(self, phone_number: str, token: str) -> bool:
        now = utcnow()
        claimed = (
            db.session.query(ConversationSessionRecord)
            .filter(ConversationSessionRecord.phone_number == phone_number)
            .filter(or_(
                ConversationSessionRecord.lease_expires_at.is_(None),
                ConversationSessionRecord.lease_expires_at < now,
            ))
            .update(
                {
                    "lease_token": token,
                    "lease_expires_at": now + timedelta(seconds=self.lease_seconds),
                },
                synchronize_session=False,
            )
        )
        db.session.commit()
        return claimed == 1

    def _release(self, phone_number: str, token: str) -> None:
        db.session.rollback()
        query = db.session.query(ConversationSessionRecord).filter(
            ConversationSessionRecord.phone_number == phone_number,
            ConversationSessionRecord.lease_token == token,
        )
        # A row that only ever held the lease carries no session
        query.filter(ConversationSessionRecord.payload.is_(None)).delete(synchronize_session=False)
        query.update({"lease_token": None, "lease_expires_at": None}, synchronize_session=False)
        db.session.commit()
        db.session.expire_all()

    @contextmanager
    def lease(self, phone_number):
        token = uuid.uuid4().hex
        deadline = time.monotonic() + self.wait_seconds
        while True:
            self._ensure_row(phone_number)
            if self._try_claim(phone_number, token):
                break
            if time.monotonic() >= deadline:
                raise InfrastructureError(
                    f"Conversation for {phone_number} is busy",
                    details={"phone_number": phone_number},
                )
            time.sleep(self.poll_seconds)
        db.session.expire_all()
        try:
            yield
        finally:
            self._release(phone_number, token)


def build_session_store(backend: str) -> SessionStore:
    if backend == "database":
        return DatabaseSessionStore()
    if backend == "memory":
        return InMemorySessionStore()
    raise ValueError(f"Unknown WhatsApp session backend: {backend}")
