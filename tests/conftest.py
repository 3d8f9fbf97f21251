# tests/conftest.py
# -*- coding: utf-8 -*-
import os
import uuid
import tempfile
from datetime import datetime

import pytest
from sqlalchemy import event


def _set_sqlite_pragmas(dbapi_conn, _conn_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.close()


# =====================================================================================
# Test environment (no scheduler, no external services)
# =====================================================================================
@pytest.fixture(autouse=True, scope="session")
def _testing_env():
    os.environ["APP_ENV"] = "testing"
    os.environ["FLASK_ENV"] = "testing"
    os.environ["DISABLE_SCHEDULER"] = "1"
    os.environ.setdefault("SECRET_KEY", "testing-secret")
    yield


# =====================================================================================
# Flask app on a temporary SQLite file, schema created once per session
# =====================================================================================
@pytest.fixture(scope="session")
def app(_testing_env, tmp_path_factory):
    fd, db_path = tempfile.mkstemp(prefix="campushare_test_", suffix=".sqlite")
    os.close(fd)

    from config import TestingConfig
    from campushare_app import create_app
    from campushare_app.extensions import db

    class _Config(TestingConfig):
        SECRET_KEY = "testing-secret"
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{db_path}"
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"check_same_thread": False, "timeout": 30}}
        UPLOAD_FOLDER = str(tmp_path_factory.mktemp("uploads"))

    app = create_app(_Config)

    with app.app_context():
        event.listen(db.engine, "connect", _set_sqlite_pragmas)
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.engine.dispose()
    try:
        os.remove(db_path)
    except OSError:
        pass


# =====================================================================================
# Every test starts from empty tables and its own upload folder
# =====================================================================================
@pytest.fixture(autouse=True)
def _clean_db(app):
    yield
    from campushare_app.extensions import db
    with app.app_context():
        db.session.rollback()
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()


@pytest.fixture(autouse=True)
def upload_folder(app, tmp_path):
    folder = tmp_path / "uploads"
    folder.mkdir()
    app.config["UPLOAD_FOLDER"] = str(folder)
    return folder


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db_session(app):
    from campushare_app.extensions import db
    with app.app_context():
        try:
            yield db.session
        finally:
            db.session.rollback()
            db.session.close()


# =====================================================================================
# Users and logged-in clients
# =====================================================================================
def make_user(db_session, is_admin=False, **kw):
    from campushare_app.models import User
    tag = uuid.uuid4().hex[:8]
    u = User(
        username=kw.pop("username", f"user_{tag}"),
        email=kw.pop("email", f"user+{tag}@test.com"),
        is_admin=is_admin,
        **kw,
    )
    u.set_password("secret123")
    db_session.add(u); db_session.commit()
    return u


@pytest.fixture
def user_admin(db_session):
    return make_user(db_session, is_admin=True)


@pytest.fixture
def user_normal(db_session):
    return make_user(db_session)


@pytest.fixture
def other_user(db_session):
    return make_user(db_session)


def login(client, user):
    with client.session_transaction() as sess:
        sess["user"] = {"id": user.id, "username": user.username, "is_admin": bool(user.is_admin)}
    return client


@pytest.fixture
def logged_client_admin(client, user_admin):
    return login(client, user_admin)


@pytest.fixture
def logged_client_user(client, user_normal):
    return login(client, user_normal)


# =====================================================================================
# Content helpers
# =====================================================================================
T0 = datetime(2025, 1, 1, 12, 0, 0)


@pytest.fixture
def t0():
    return T0


def limit_quota(user_id, limit_bytes, used=0, files=0):
    """Set a user's ledger row directly (test setup only)."""
    from campushare_app.extensions import db
    from campushare_app.services import quota_ledger
    q = quota_ledger.get_quota(user_id)
    q.limit_bytes = limit_bytes
    q.storage_bytes = used
    q.files_count = files
    db.session.commit()
    return q


def put_file(user_id, data=b"hello world", name="notes.txt", now=None, **kw):
    from campushare_app.models import KIND_FILE
    from campushare_app.services import content_store
    return content_store.create(user_id, KIND_FILE, data, original_name=name,
                                mime_type=kw.pop("mime_type", "text/plain"), now=now, **kw)


def put_clip(user_id, text="some text", now=None, **kw):
    from campushare_app.models import KIND_CLIP
    from campushare_app.services import content_store
    return content_store.create(user_id, KIND_CLIP, text, now=now, **kw)
