# campushare_app/services/accounts.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import current_app

from ..errors import NotFound, Forbidden
from ..extensions import db
from ..models import User, ContentEntry, Folder, AuditLog, KIND_FILE
from . import content_store, quota_ledger


def get_user(user_id) -> User:
    user = db.session.get(User, int(user_id)) if str(user_id).isdigit() else None
    if not user:
        raise NotFound("User not found")
    return user


def account(user: User) -> dict:
    return dict(user.to_dict(), storage=quota_ledger.snapshot(user.id))


def set_ban(user_id, banned: bool, reason: str | None = None) -> User:
    user = get_user(user_id)
    if user.is_admin:
        raise Forbidden("Cannot ban an admin user")
    user.is_banned = bool(banned)
    user.ban_reason = (reason or "Violated terms of service")[:255] if banned else None
    db.session.commit()
    return user


def purge_user(user_id) -> dict:
    """
    Delete an account and everything it owns. Entries go through the content
    store one by one so payloads and the ledger stay consistent.
    """
    user = get_user(user_id)
    if user.is_admin:
        raise Forbidden("Cannot delete an admin user")
    uid = user.id

    files = clips = freed = 0
    failed = []
    ids = [cid for (cid,) in db.session.query(ContentEntry.id).filter_by(user_id=uid).all()]
    for content_id in ids:
        entry = db.session.get(ContentEntry, content_id)
        if entry is None:
            continue
        kind = entry.kind
        try:
            size, payload_error = content_store.discard(entry, action="purge")
        except NotFound:
            continue
        if payload_error is not None:
            failed.append(content_id)
        if kind == KIND_FILE:
            files += 1
            freed += size
        else:
            clips += 1

    Folder.query.filter_by(user_id=uid).update({Folder.parent_id: None}, synchronize_session=False)
    Folder.query.filter_by(user_id=uid).delete(synchronize_session=False)
    AuditLog.query.filter_by(user_id=uid).delete(synchronize_session=False)
    quota_ledger.settle(uid)
    db.session.delete(db.session.get(User, uid))
    db.session.commit()

    result = {"files_deleted": files, "clips_deleted": clips, "bytes_freed": freed}
    if failed:
        current_app.logger.warning("Purge of user %s left %s payloads for the orphan scan", uid, len(failed))
    current_app.logger.info("Purged user %s: %s", uid, result)
    return result
