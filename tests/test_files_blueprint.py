# tests/test_files_blueprint.py
import io
from datetime import timedelta
from pathlib import Path

from campushare_app.clock import utcnow
from campushare_app.extensions import db
from campushare_app.models import ContentEntry, UserQuota

from conftest import limit_quota, put_file


def _upload(client, *files, **form):
    data = {"files": [(io.BytesIO(body), name, mime) for body, name, mime in files]}
    data.update(form)
    return client.post("/api/files/upload", data=data, content_type="multipart/form-data")


def _quota(user_id):
    db.session.expire_all()
    return UserQuota.query.filter_by(user_id=user_id).one()


# --------------------------------------------------------------------
# Upload
# --------------------------------------------------------------------
def test_upload_single_file(logged_client_user, user_normal):
    r = _upload(logged_client_user, (b"lecture notes", "Notes 1.txt", "text/plain"))
    assert r.status_code == 201
    body = r.get_json()
    f = body["data"]["files"][0]
    assert f["originalName"] == "Notes 1.txt"
    assert f["size"] == 13
    assert f["extension"] == ".txt"
    assert body["data"]["storage"]["storage_used_bytes"] == 13

    entry = db.session.get(ContentEntry, f["id"])
    assert Path(entry.storage_path).read_bytes() == b"lecture notes"
    assert _quota(user_normal.id).files_count == 1


def test_upload_without_files(logged_client_user):
    r = logged_client_user.post("/api/files/upload", data={}, content_type="multipart/form-data")
    assert r.status_code == 400
    assert r.get_json()["message"] == "No files uploaded"


def test_upload_disallowed_type(logged_client_user, user_normal):
    r = _upload(logged_client_user, (b"MZ...", "setup.exe", "application/x-msdownload"))
    assert r.status_code == 400
    assert "not allowed" in r.get_json()["message"]
    assert ContentEntry.query.count() == 0


def test_upload_too_many_files(app, logged_client_user, monkeypatch):
    monkeypatch.setitem(app.config, "MAX_FILES_PER_UPLOAD", 2)
    r = _upload(logged_client_user, *[(b"x", f"{i}.txt", "text/plain") for i in range(3)])
    assert r.status_code == 400


def test_upload_over_quota(logged_client_user, user_normal, upload_folder):
    limit_quota(user_normal.id, 10)
    r = _upload(logged_client_user, (b"y" * 20, "big.txt", "text/plain"))
    assert r.status_code == 400
    body = r.get_json()
    assert body["storageLimit"] == 10
    assert body["required"] == 20
    q = _quota(user_normal.id)
    assert (q.storage_bytes, q.reserved_bytes) == (0, 0)
    assert not any(p.is_file() for p in upload_folder.rglob("*"))


def test_upload_partial_success(logged_client_user, user_normal):
    limit_quota(user_normal.id, 15)
    r = _upload(
        logged_client_user,
        (b"a" * 10, "first.txt", "text/plain"),
        (b"b" * 10, "second.txt", "text/plain"),
    )
    assert r.status_code == 201
    data = r.get_json()["data"]
    assert [f["originalName"] for f in data["files"]] == ["first.txt"]
    assert data["failed"][0]["originalName"] == "second.txt"
    assert _quota(user_normal.id).storage_bytes == 10


def test_upload_into_foreign_folder_is_404(logged_client_user, other_user):
    from campushare_app.services import folders
    theirs = folders.create_folder(other_user.id, "Theirs")
    r = _upload(logged_client_user, (b"x", "a.txt", "text/plain"), folderId=str(theirs.id))
    assert r.status_code == 404


# --------------------------------------------------------------------
# Listing and reading
# --------------------------------------------------------------------
def test_list_pagination_and_filters(logged_client_user, user_normal, other_user):
    for i in range(5):
        put_file(user_normal.id, b"x" * (i + 1), name=f"doc{i}.txt")
    put_file(user_normal.id, b"img", name="photo.png", mime_type="image/png")
    put_file(other_user.id, b"not mine", name="doc-other.txt")

    r = logged_client_user.get("/api/files?limit=2&page=2&sort=size&order=asc")
    data = r.get_json()["data"]
    assert data["pagination"] == {"page": 2, "limit": 2, "total": 6, "pages": 3}
    assert [f["size"] for f in data["files"]] == [3, 3]

    r = logged_client_user.get("/api/files?type=image")
    assert [f["originalName"] for f in r.get_json()["data"]["files"]] == ["photo.png"]

    r = logged_client_user.get("/api/files?search=doc")
    assert r.get_json()["data"]["pagination"]["total"] == 5


def test_expired_files_are_hidden(logged_client_user, user_normal):
    old = put_file(user_normal.id, now=utcnow() - timedelta(days=8))
    r = logged_client_user.get("/api/files")
    assert r.get_json()["data"]["files"] == []
    assert logged_client_user.get(f"/api/files/{old.id}").status_code == 404


def test_other_users_file_is_404(logged_client_user, other_user):
    theirs = put_file(other_user.id)
    assert logged_client_user.get(f"/api/files/{theirs.id}").status_code == 404
    assert logged_client_user.delete(f"/api/files/{theirs.id}").status_code == 404


def test_download_counts(logged_client_user, user_normal):
    f = put_file(user_normal.id, b"payload bytes", name="report.txt")
    r = logged_client_user.get(f"/api/files/{f.id}/download")
    assert r.status_code == 200
    assert r.data == b"payload bytes"
    assert "report.txt" in r.headers["Content-Disposition"]
    r.close()
    db.session.expire_all()
    assert db.session.get(ContentEntry, f.id).downloads == 1


def test_stats(logged_client_user, user_normal):
    put_file(user_normal.id, b"x" * 4)
    r = logged_client_user.get("/api/files/stats")
    data = r.get_json()["data"]
    assert data["totalFiles"] == 1
    assert data["totalSize"] == 4


# --------------------------------------------------------------------
# Update, extend, delete
# --------------------------------------------------------------------
def test_update_star_and_extend(logged_client_user, user_normal):
    f = put_file(user_normal.id)
    r = logged_client_user.put(f"/api/files/{f.id}", json={"originalName": "renamed.txt", "description": "hw"})
    assert r.get_json()["data"]["file"]["originalName"] == "renamed.txt"

    r = logged_client_user.put(f"/api/files/{f.id}/star")
    assert r.get_json()["data"]["isStarred"] is True

    r = logged_client_user.post(f"/api/files/{f.id}/extend", json={"days": 30})
    assert r.status_code == 200
    r = logged_client_user.post(f"/api/files/{f.id}/extend", json={"days": 31})
    assert r.status_code == 400


def test_delete_frees_quota(logged_client_user, user_normal):
    f = put_file(user_normal.id, b"z" * 25)
    path = Path(f.storage_path)
    r = logged_client_user.delete(f"/api/files/{f.id}")
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["freedBytes"] == 25
    assert data["storage"]["storage_used_bytes"] == 0
    assert not path.exists()
    # second delete is a 404
    assert logged_client_user.delete(f"/api/files/{f.id}").status_code == 404


def test_bulk_delete(logged_client_user, user_normal, other_user):
    mine = [put_file(user_normal.id, b"m" * 3, name=f"{i}.txt") for i in range(3)]
    theirs = put_file(other_user.id)
    ids = [e.id for e in mine] + [theirs.id, "does-not-exist"]
    r = logged_client_user.delete("/api/files", json={"fileIds": ids})
    data = r.get_json()["data"]
    assert data["deleted"] == 3
    assert data["freedBytes"] == 9
    assert db.session.get(ContentEntry, theirs.id) is not None

    assert logged_client_user.delete("/api/files", json={"fileIds": []}).status_code == 400
