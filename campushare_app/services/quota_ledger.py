# campushare_app/services/quota_ledger.py
# -*- coding: utf-8 -*-
"""
Per-user storage ledger.

Every mutation is a single conditional UPDATE on the ``user_quotas`` row, so
concurrent requests never act on a stale read. ``reserve``, ``release`` and
``set_limit`` end the transaction themselves; ``commit``, ``reconcile`` and
``settle`` only stage their change so callers can make it atomic with a
metadata write.
"""
from __future__ import annotations
from datetime import datetime
from flask import current_app
from sqlalchemy import update, case, func, null

from ..clock import utcnow
from ..errors import OverQuota, InvalidRequest
from ..extensions import db
from ..models import UserQuota


def _run(stmt):
    return db.session.execute(stmt.execution_options(synchronize_session=False))


def _expire(user_id: int) -> None:
    # drop cached attributes of a loaded row after a bulk UPDATE
    for obj in db.session.identity_map.values():
        if isinstance(obj, UserQuota) and obj.user_id == user_id:
            db.session.expire(obj)


def get_quota(user_id: int, autocommit: bool = True) -> UserQuota:
    q = UserQuota.query.filter_by(user_id=user_id).first()
    if not q:
        q = UserQuota(user_id=user_id)
        db.session.add(q)
        if autocommit:
            db.session.commit()
        else:
            db.session.flush()
    return q


def reserve(user_id: int, nbytes: int, now: datetime | None = None) -> None:
    """Admit ``nbytes`` against the limit or raise ``OverQuota``. Nothing changes on failure."""
    nbytes = int(nbytes)
    if nbytes < 0:
        raise InvalidRequest("Size must not be negative")
    now = now or utcnow()
    get_quota(user_id)

    res = _run(
        update(UserQuota)
        .where(
            UserQuota.user_id == user_id,
            UserQuota.storage_bytes + UserQuota.reserved_bytes + nbytes <= UserQuota.limit_bytes,
        )
        .values(
            reserved_bytes=UserQuota.reserved_bytes + nbytes,
            reserved_at=now,
            updated_at=now,
        )
    )
    if res.rowcount != 1:
        db.session.rollback()
        q = get_quota(user_id)
        raise OverQuota(used=int(q.storage_bytes), limit=int(q.limit_bytes), required=nbytes)
    db.session.commit()


def release(user_id: int, nbytes: int) -> None:
    """Give back reserved bytes that were never used."""
    nbytes = int(nbytes)
    if nbytes <= 0:
        return
    remaining = UserQuota.reserved_bytes - nbytes
    _run(
        update(UserQuota)
        .where(UserQuota.user_id == user_id)
        .values(
            reserved_bytes=case((remaining < 0, 0), else_=remaining),
            reserved_at=case((remaining <= 0, null()), else_=UserQuota.reserved_at),
            updated_at=utcnow(),
        )
    )
    db.session.commit()


def commit(user_id: int, delta_bytes: int, files_delta: int = 0, reserved: int = 0,
           now: datetime | None = None) -> None:
    """
    Apply a signed usage delta, consuming ``reserved`` bytes of reservation.
    Never lets a counter go below zero; a clamp is logged as ledger drift.
    The caller commits.
    """
    delta_bytes, files_delta, reserved = int(delta_bytes), int(files_delta), int(reserved)
    now = now or utcnow()
    get_quota(user_id, autocommit=False)

    storage = UserQuota.storage_bytes + delta_bytes
    files = UserQuota.files_count + files_delta
    left = UserQuota.reserved_bytes - reserved

    res = _run(
        update(UserQuota)
        .where(
            UserQuota.user_id == user_id,
            storage >= 0,
            files >= 0,
            left >= 0,
        )
        .values(
            storage_bytes=storage,
            files_count=files,
            reserved_bytes=left,
            reserved_at=case((left == 0, null()), else_=UserQuota.reserved_at),
            updated_at=now,
        )
    )
    if res.rowcount == 1:
        _expire(user_id)
        return

    q = get_quota(user_id, autocommit=False)
    if delta_bytes > 0:
        # reservation gone (released as stale): admit against the limit again
        kept = case((left < 0, 0), else_=left)
        res = _run(
            update(UserQuota)
            .where(
                UserQuota.user_id == user_id,
                storage + kept <= UserQuota.limit_bytes,
            )
            .values(
                storage_bytes=storage,
                files_count=case((files < 0, 0), else_=files),
                reserved_bytes=kept,
                reserved_at=case((left <= 0, null()), else_=UserQuota.reserved_at),
                updated_at=now,
            )
        )
        used, limit = int(q.storage_bytes or 0), int(q.limit_bytes or 0)
        _expire(user_id)
        if res.rowcount != 1:
            current_app.logger.warning(
                "Commit of %s bytes for user %s refused: reservation was released and the limit is reached",
                delta_bytes, user_id,
            )
            raise OverQuota(used=used, limit=limit, required=delta_bytes)
        current_app.logger.warning(
            "Ledger drift for user %s: reservation of %s bytes was released before commit; re-admitted",
            user_id, reserved,
        )
        return

    current_app.logger.warning(
        "Ledger drift for user %s: used=%s files=%s reserved=%s, delta=%s files_delta=%s reserved=%s; clamping",
        user_id, q.storage_bytes, q.files_count, q.reserved_bytes, delta_bytes, files_delta, reserved,
    )
    _run(
        update(UserQuota)
        .where(UserQuota.user_id == user_id)
        .values(
            storage_bytes=case((storage < 0, 0), else_=storage),
            files_count=case((files < 0, 0), else_=files),
            reserved_bytes=case((left < 0, 0), else_=left),
            reserved_at=case((left <= 0, null()), else_=UserQuota.reserved_at),
            updated_at=now,
        )
    )
    _expire(user_id)


def snapshot(user_id: int) -> dict:
    q = get_quota(user_id)
    used, limit = int(q.storage_bytes or 0), int(q.limit_bytes or 0)
    return {
        "storage_used_bytes": used,
        "storage_limit_bytes": limit,
        "reserved_bytes": int(q.reserved_bytes or 0),
        "files_count": int(q.files_count or 0),
        "storage_percentage": round(used / limit * 100) if limit else 0,
        "storage_remaining": max(0, limit - used),
    }


def set_limit(user_id: int, limit_bytes: int) -> None:
    limit_bytes = int(limit_bytes)
    if limit_bytes < 0:
        raise InvalidRequest("Storage limit must not be negative")
    get_quota(user_id)
    res = _run(
        update(UserQuota)
        .where(
            UserQuota.user_id == user_id,
            UserQuota.storage_bytes + UserQuota.reserved_bytes <= limit_bytes,
        )
        .values(limit_bytes=limit_bytes, updated_at=utcnow())
    )
    if res.rowcount != 1:
        db.session.rollback()
        raise InvalidRequest("Storage limit cannot be lower than current usage")
    db.session.commit()


def settle(user_id: int) -> int:
    """Drop the ledger row of an account being deleted. Returns the bytes it still held."""
    q = UserQuota.query.filter_by(user_id=user_id).first()
    if not q:
        return 0
    held = int(q.storage_bytes or 0)
    if held or q.files_count:
        current_app.logger.warning("Settling ledger for user %s with %s bytes still accounted", user_id, held)
    db.session.delete(q)
    return held


def reconcile(user_id: int, actual_bytes: int, actual_files: int,
              observed_bytes: int, observed_files: int) -> bool:
    """Overwrite usage with measured totals if nothing moved since it was observed."""
    res = _run(
        update(UserQuota)
        .where(
            UserQuota.user_id == user_id,
            UserQuota.reserved_bytes == 0,
            UserQuota.storage_bytes == observed_bytes,
            UserQuota.files_count == observed_files,
        )
        .values(storage_bytes=int(actual_bytes), files_count=int(actual_files), updated_at=utcnow())
    )
    _expire(user_id)
    return res.rowcount == 1


def release_stale(cutoff: datetime) -> int:
    """Zero reservations whose last admission is older than ``cutoff``."""
    res = _run(
        update(UserQuota)
        .where(UserQuota.reserved_bytes > 0, UserQuota.reserved_at < cutoff)
        .values(reserved_bytes=0, reserved_at=None, updated_at=utcnow())
    )
    return res.rowcount


def totals() -> dict:
    used, files, limit = db.session.query(
        func.coalesce(func.sum(UserQuota.storage_bytes), 0),
        func.coalesce(func.sum(UserQuota.files_count), 0),
        func.coalesce(func.sum(UserQuota.limit_bytes), 0),
    ).one()
    return {"storage_used_bytes": int(used), "files_count": int(files), "storage_limit_bytes": int(limit)}
