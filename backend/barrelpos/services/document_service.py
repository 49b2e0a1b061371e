# Overview: Human-readable document numbers (orders, shifts) from per-store sequences.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..extensions import db
from ..models import DocumentSequence


ORDER_DOCUMENT = "ORDER"
WHATSAPP_ORDER_DOCUMENT = "WHATSAPP_ORDER"
SHIFT_DOCUMENT = "SHIFT"

DEFAULT_PREFIXES = {
    ORDER_DOCUMENT: "ORD",
    WHATSAPP_ORDER_DOCUMENT: "WA",
    SHIFT_DOCUMENT: "SH",
}


def _current_number(store_id: int, document_type: str) -> int:
    return (
        db.session.query(DocumentSequence.next_number)
        .filter_by(store_id=store_id, document_type=document_type)
        .scalar()
    )


def next_document_number(
    *,
    store_id: int,
    document_type: str,
    prefix: str | None = None,
    pad: int = 6,
) -> str:
    """
    Allocate the next document number for a store/type, e.g. ORD-000001.

    The increment is a single UPDATE on the (store_id, document_type) row,
    so concurrent allocators serialize on that row. Runs inside the caller's
    transaction (flush only); the number is consumed when the caller commits.
    """
    if not store_id:
        raise ValidationError("store_id is required")
    if not document_type:
        raise ValidationError("document_type is required")
    prefix = prefix or DEFAULT_PREFIXES.get(document_type, document_type[:3])

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.store_id == store_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        db.session.flush()
        next_num = _current_number(store_id, document_type) - 1
    else:
        seq = DocumentSequence(store_id=store_id, document_type=document_type, next_number=2)
        try:
            with db.session.begin_nested():
                db.session.add(seq)
            next_num = 1
        except IntegrityError:
            # Another allocator created the row first.
            db.session.execute(stmt)
            db.session.flush()
            next_num = _current_number(store_id, document_type) - 1

    return f"{prefix}-{next_num:0{pad}d}"


def order_document_type(prefix: str | None) -> str:
    """Each order-number prefix runs its own sequence (ORD-000001, WA-000001)."""
    if not prefix or prefix == DEFAULT_PREFIXES[ORDER_DOCUMENT]:
        return ORDER_DOCUMENT
    if prefix == DEFAULT_PREFIXES[WHATSAPP_ORDER_DOCUMENT]:
        return WHATSAPP_ORDER_DOCUMENT
    return f"ORDER_{prefix.upper()}"
