# campushare_app/services/expiry_index.py
# -*- coding: utf-8 -*-
"""
Ordered view of content entries by expiry, backed by ``ix_content_entries_expires_at``.

There is no separate structure to keep in sync: the index is the
``expires_at`` column itself.
"""
from __future__ import annotations
from datetime import datetime, timedelta
from sqlalchemy import and_, or_, func, inspect, Index

from ..clock import utcnow
from ..extensions import db
from ..models import ContentEntry

INDEX_NAME = "ix_content_entries_expires_at"


def due_entries(as_of: datetime, batch_size: int = 500):
    """
    Yield ids with ``expires_at <= as_of`` ascending by (expires_at, id).
    Keyset pagination: rows deleted between batches are neither repeated nor
    cause others to be skipped. Consumers must re-check existence.
    """
    last = None
    while True:
        q = db.session.query(ContentEntry.expires_at, ContentEntry.id).filter(ContentEntry.expires_at <= as_of)
        if last is not None:
            last_exp, last_id = last
            q = q.filter(or_(
                ContentEntry.expires_at > last_exp,
                and_(ContentEntry.expires_at == last_exp, ContentEntry.id > last_id),
            ))
        rows = q.order_by(ContentEntry.expires_at.asc(), ContentEntry.id.asc()).limit(batch_size).all()
        if not rows:
            return
        for exp, content_id in rows:
            yield content_id
        last = (rows[-1][0], rows[-1][1])
        if len(rows) < batch_size:
            return


def count_due(as_of: datetime) -> int:
    return db.session.query(func.count(ContentEntry.id)).filter(ContentEntry.expires_at <= as_of).scalar() or 0


def expiring_within(delta: timedelta, now: datetime | None = None, kind: str | None = None) -> int:
    now = now or utcnow()
    q = db.session.query(func.count(ContentEntry.id)).filter(
        ContentEntry.expires_at > now, ContentEntry.expires_at <= now + delta
    )
    if kind:
        q = q.filter(ContentEntry.kind == kind)
    return q.scalar() or 0


def next_expiry() -> datetime | None:
    return db.session.query(func.min(ContentEntry.expires_at)).scalar()


def _index() -> Index:
    for ix in ContentEntry.__table__.indexes:
        if ix.name == INDEX_NAME:
            return ix
    raise LookupError(INDEX_NAME)


def verify(now: datetime | None = None) -> dict:
    """Report whether the index exists and entries that would never be found by the sweep."""
    names = {ix["name"] for ix in inspect(db.engine).get_indexes(ContentEntry.__tablename__)}
    missing_expiry = db.session.query(func.count(ContentEntry.id)).filter(ContentEntry.expires_at.is_(None)).scalar()
    return {
        "index_present": INDEX_NAME in names,
        "entries_without_expiry": int(missing_expiry or 0),
        "due": count_due(now or utcnow()),
    }


def rebuild() -> None:
    """Drop and re-create the expiry index."""
    ix = _index()
    ix.drop(bind=db.engine, checkfirst=True)
    ix.create(bind=db.engine, checkfirst=True)
