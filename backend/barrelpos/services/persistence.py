# Overview: Persistence gateway; the single commit point for every service.

"""
Persistence gateway.

Services mutate ORM objects and hand every touched entity to save_all(),
which commits them as one unit of work. Audit stamping is not hidden in
ORM events: audit_stamped wraps save_all explicitly and receives the
changed entities plus an AuditContext built from the current-user and
clock providers.

FAILURE HANDLING:
- OperationalError / StaleDataError propagate untouched so run_with_retry
  can roll back and retry the whole unit of work.
- Any other SQLAlchemyError rolls back and surfaces as InfrastructureError.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from flask import g, has_app_context
from sqlalchemy import inspect
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import InfrastructureError
from ..extensions import db
from barrelpos.time_utils import utcnow


@dataclass(frozen=True)
class AuditContext:
    actor_id: int | None
    now: datetime


def current_actor_id() -> int | None:
    """The authenticated user for this request, if any."""
    if not has_app_context():
        return None
    user = g.get("current_user")
    return user.id if user is not None else None


def _is_new(entity) -> bool:
    state = inspect(entity)
    return state.transient or state.pending


def stamp(entity, ctx: AuditContext) -> None:
    if _is_new(entity):
        if hasattr(entity, "created_at") and getattr(entity, "created_at", None) is None:
            entity.created_at = ctx.now
        if hasattr(entity, "created_by_user_id") and entity.created_by_user_id is None:
            entity.created_by_user_id = ctx.actor_id
        return
    if hasattr(entity, "updated_at"):
        entity.updated_at = ctx.now
        entity.updated_by_user_id = ctx.actor_id


def mark_deleted(entity, ctx: AuditContext) -> None:
    entity.is_deleted = True
    entity.deleted_at = ctx.now
    entity.deleted_by_user_id = ctx.actor_id
    stamp(entity, ctx)


def audit_stamped(func):
    """Stamp audit columns on every entity passed to a save call."""

    @functools.wraps(func)
    def wrapper(entities: Iterable = (), *, deleted: Iterable = (), actor_id: int | None = None,
                commit: bool = True) -> int:
        entities = [e for e in entities if e is not None]
        deleted = [e for e in deleted if e is not None]
        ctx = AuditContext(
            actor_id=actor_id if actor_id is not None else current_actor_id(),
            now=utcnow(),
        )
        for entity in entities:
            stamp(entity, ctx)
        for entity in deleted:
            mark_deleted(entity, ctx)
        return func(entities, deleted=deleted, actor_id=ctx.actor_id, commit=commit)

    return wrapper


@audit_stamped
def save_all(entities, *, deleted=(), actor_id=None, commit=True) -> int:
    """
    Persist entities (and soft-delete `deleted`) atomically.

    commit=False only flushes, leaving the caller's transaction open.
    Returns the number of entities written.
    """
    try:
        for entity in list(entities) + list(deleted):
            db.session.add(entity)
        if commit:
            db.session.commit()
        else:
            db.session.flush()
    except (OperationalError, StaleDataError):
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise InfrastructureError("Failed to persist changes") from exc
    return len(entities) + len(deleted)


def live(query, model):
    """Restrict a query to rows that are not soft-deleted."""
    return query.filter(model.is_deleted.is_(False))
