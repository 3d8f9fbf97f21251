# tests/test_accounts_service.py
# -*- coding: utf-8 -*-
from pathlib import Path

import pytest
from sqlalchemy import delete

from campushare_app.errors import Forbidden, NotFound
from campushare_app.extensions import db
from campushare_app.models import User, ContentEntry, Folder, UserQuota, AuditLog
from campushare_app.services import accounts, content_store, folders

from conftest import put_file, put_clip


def test_account_includes_storage(db_session, user_normal):
    put_file(user_normal.id, b"x" * 12)
    data = accounts.account(user_normal)
    assert data["username"] == user_normal.username
    assert data["storage"]["storage_used_bytes"] == 12
    assert data["storage"]["files_count"] == 1


def test_get_user_unknown(db_session):
    with pytest.raises(NotFound):
        accounts.get_user(424242)
    with pytest.raises(NotFound):
        accounts.get_user("abc")


def test_ban_and_unban(db_session, user_normal):
    u = accounts.set_ban(user_normal.id, True, "spam")
    assert u.is_banned is True
    assert u.ban_reason == "spam"
    u = accounts.set_ban(user_normal.id, False)
    assert u.is_banned is False
    assert u.ban_reason is None


def test_admins_cannot_be_banned_or_purged(db_session, user_admin):
    with pytest.raises(Forbidden):
        accounts.set_ban(user_admin.id, True)
    with pytest.raises(Forbidden):
        accounts.purge_user(user_admin.id)


def test_purge_removes_everything_the_user_owns(db_session, user_normal, other_user):
    parent = folders.create_folder(user_normal.id, "Docs")
    folders.create_folder(user_normal.id, "Inner", parent_id=parent.id)
    f = put_file(user_normal.id, b"x" * 30, folder_id=parent.id)
    put_file(user_normal.id, b"y" * 5)
    put_clip(user_normal.id, "bye")
    theirs = put_file(other_user.id, b"keep")
    path = Path(f.storage_path)
    uid = user_normal.id

    result = accounts.purge_user(uid)

    assert result == {"files_deleted": 2, "clips_deleted": 1, "bytes_freed": 35}
    assert not path.exists()
    db.session.expire_all()
    assert db.session.get(User, uid) is None
    assert ContentEntry.query.filter_by(user_id=uid).count() == 0
    assert Folder.query.filter_by(user_id=uid).count() == 0
    assert UserQuota.query.filter_by(user_id=uid).count() == 0
    assert AuditLog.query.filter_by(user_id=uid).count() == 0
    assert db.session.get(ContentEntry, theirs.id) is not None


def test_purge_skips_entries_removed_concurrently(db_session, user_normal, monkeypatch):
    uid = user_normal.id
    put_file(uid, b"x" * 10)
    put_file(uid, b"y" * 10)
    put_clip(uid, "bye")
    real = content_store.discard
    calls = []

    def discard_then_lose_the_rest(entry, action="delete", **kw):
        calls.append(entry.id)
        out = real(entry, action=action, **kw)
        # the sweep removes every other entry meanwhile
        with db.engine.begin() as conn:
            conn.execute(delete(ContentEntry).where(ContentEntry.user_id == uid))
        return out

    monkeypatch.setattr(content_store, "discard", discard_then_lose_the_rest)
    result = accounts.purge_user(uid)

    assert len(calls) == 1
    assert result["files_deleted"] + result["clips_deleted"] == 1
    db.session.expire_all()
    assert db.session.get(User, uid) is None
    assert ContentEntry.query.filter_by(user_id=uid).count() == 0
