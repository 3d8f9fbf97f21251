# tests/test_expiry_index.py
# -*- coding: utf-8 -*-
from datetime import timedelta

from campushare_app.extensions import db
from campushare_app.models import ContentEntry
from campushare_app.services import content_store, expiry_index

from conftest import put_file, put_clip


def test_due_boundary_is_exact(db_session, user_normal, t0):
    entry = put_file(user_normal.id, now=t0)
    expiry = t0 + timedelta(days=7)
    assert list(expiry_index.due_entries(expiry - timedelta(seconds=1))) == []
    assert list(expiry_index.due_entries(expiry)) == [entry.id]
    assert list(expiry_index.due_entries(expiry + timedelta(seconds=1))) == [entry.id]


def test_due_entries_ordered_and_paged(db_session, user_normal, t0):
    ids = []
    for i in range(7):
        ids.append(put_clip(user_normal.id, f"clip {i}", now=t0 + timedelta(hours=i)).id)
    # two entries sharing one expiry, ordered by id
    twin_a = put_clip(user_normal.id, "twin a", now=t0 + timedelta(hours=3))
    twin_b = put_clip(user_normal.id, "twin b", now=t0 + timedelta(hours=3))

    as_of = t0 + timedelta(days=30)
    got = list(expiry_index.due_entries(as_of, batch_size=2))
    rows = (
        db.session.query(ContentEntry.id)
        .order_by(ContentEntry.expires_at.asc(), ContentEntry.id.asc())
        .all()
    )
    assert got == [r[0] for r in rows]
    assert len(got) == len(set(got)) == 9
    assert {twin_a.id, twin_b.id} <= set(got)


def test_due_entries_tolerates_deletes_between_batches(db_session, user_normal, t0):
    for i in range(6):
        put_clip(user_normal.id, f"clip {i}", now=t0 + timedelta(minutes=i))
    as_of = t0 + timedelta(days=30)
    seen = []
    for content_id in expiry_index.due_entries(as_of, batch_size=2):
        seen.append(content_id)
        content_store.remove(content_id)
    assert len(seen) == 6
    assert len(set(seen)) == 6


def test_due_entries_ignores_future_entries(db_session, user_normal, t0):
    put_file(user_normal.id, now=t0)
    future = put_file(user_normal.id, now=t0 + timedelta(days=10))
    due = list(expiry_index.due_entries(t0 + timedelta(days=8)))
    assert future.id not in due
    assert len(due) == 1


def test_counts_and_next_expiry(db_session, user_normal, t0):
    put_file(user_normal.id, now=t0)
    put_clip(user_normal.id, now=t0 + timedelta(days=1))
    assert expiry_index.next_expiry() == t0 + timedelta(days=7)
    assert expiry_index.count_due(t0 + timedelta(days=7)) == 1
    assert expiry_index.count_due(t0 + timedelta(days=8)) == 2
    assert expiry_index.expiring_within(timedelta(hours=24), now=t0 + timedelta(days=6, hours=12)) == 1
    assert expiry_index.expiring_within(timedelta(days=3), now=t0 + timedelta(days=6), kind="clip") == 1


def test_verify_and_rebuild(db_session, user_normal, t0):
    put_file(user_normal.id, now=t0)
    report = expiry_index.verify(now=t0 + timedelta(days=8))
    assert report["index_present"] is True
    assert report["entries_without_expiry"] == 0
    assert report["due"] == 1

    db.session.commit()
    expiry_index.rebuild()
    assert expiry_index.verify()["index_present"] is True
