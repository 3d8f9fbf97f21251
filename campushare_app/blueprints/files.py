# campushare_app/blueprints/files.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import io

from flask import Blueprint, current_app, request, send_file, jsonify, g
from sqlalchemy import or_

from ..clock import utcnow
from ..decorators import login_required
from ..errors import CampusShareError, InvalidRequest
from ..models import ContentEntry, KIND_FILE
from ..pagination import paginate
from ..services import content_store, quota_ledger

bp = Blueprint("files", __name__, url_prefix="/api/files")

SORTS = {
    "createdAt": ContentEntry.created_at,
    "originalName": ContentEntry.original_name,
    "fileSize": ContentEntry.size_bytes,
    "size": ContentEntry.size_bytes,
    "expiresAt": ContentEntry.expires_at,
    "downloads": ContentEntry.downloads,
}


def _upload_size(fs) -> int:
    stream = fs.stream
    stream.seek(0, io.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    return size


def _validate_upload(fs) -> int:
    allowed = current_app.config.get("ALLOWED_FILE_TYPES") or []
    if fs.mimetype not in allowed:
        raise InvalidRequest(f"This file type is not allowed: {fs.filename}")
    size = _upload_size(fs)
    if size > int(current_app.config.get("MAX_FILE_SIZE", 50 * 1024 * 1024)):
        raise InvalidRequest(f"File size exceeds the maximum allowed limit: {fs.filename}")
    return size


@bp.route("", methods=["GET"])
@login_required
def list_files():
    q = content_store.live_query(g.user.id, KIND_FILE)

    folder_id = request.args.get("folderId")
    if folder_id in ("root", ""):
        q = q.filter(ContentEntry.folder_id.is_(None))
    elif folder_id:
        q = q.filter(ContentEntry.folder_id == (int(folder_id) if folder_id.isdigit() else -1))

    search = (request.args.get("search") or "").strip()
    if search:
        q = q.filter(ContentEntry.original_name.ilike(f"%{search}%"))

    prefixes = content_store.TYPE_FILTERS.get(request.args.get("type") or "")
    if prefixes:
        q = q.filter(or_(*[ContentEntry.mime_type.startswith(p) for p in prefixes]))

    if request.args.get("starred") == "true":
        q = q.filter(ContentEntry.is_starred.is_(True))

    col = SORTS.get(request.args.get("sort") or "createdAt", ContentEntry.created_at)
    q = q.order_by(col.asc() if request.args.get("order") == "asc" else col.desc(), ContentEntry.id.asc())

    items, meta = paginate(q)
    now = utcnow()
    return jsonify({"success": True, "data": {"files": [f.to_dict(now) for f in items], "pagination": meta}})


@bp.route("/stats", methods=["GET"])
@login_required
def stats():
    return jsonify({"success": True, "data": content_store.user_stats(g.user.id)})


@bp.route("/upload", methods=["POST"])
@login_required
def upload():
    files = [f for f in request.files.getlist("files") if f and f.filename]
    if not files:
        raise InvalidRequest("No files uploaded")
    max_files = int(current_app.config.get("MAX_FILES_PER_UPLOAD", 10))
    if len(files) > max_files:
        raise InvalidRequest(f"You can upload at most {max_files} files at once")

    sizes = [_validate_upload(f) for f in files]
    folder_id = request.form.get("folderId") or None

    uploaded, failed, first_error = [], [], None
    for fs, size in zip(files, sizes):
        try:
            entry = content_store.create(
                g.user.id, KIND_FILE, fs.stream, size_bytes=size,
                original_name=fs.filename, mime_type=fs.mimetype, folder_id=folder_id,
            )
        except CampusShareError as e:
            first_error = first_error or e
            failed.append({"originalName": fs.filename, "message": e.message})
            continue
        uploaded.append(entry.to_dict())

    if not uploaded:
        raise first_error
    data = {"files": uploaded, "storage": quota_ledger.snapshot(g.user.id)}
    if failed:
        data["failed"] = failed
    return jsonify({"success": True, "message": "File(s) uploaded successfully", "data": data}), 201


@bp.route("/<content_id>", methods=["GET"])
@login_required
def get_file(content_id):
    entry = content_store.get(content_id, g.user.id, kind=KIND_FILE)
    return jsonify({"success": True, "data": {"file": entry.to_dict()}})


@bp.route("/<content_id>/download", methods=["GET"])
@login_required
def download(content_id):
    entry = content_store.get(content_id, g.user.id, kind=KIND_FILE)
    path = content_store.open_payload(entry)
    content_store.record_download(entry)
    return send_file(str(path), as_attachment=True, download_name=entry.original_name, mimetype=entry.mime_type)


@bp.route("/<content_id>/preview", methods=["GET"])
@login_required
def preview(content_id):
    entry = content_store.get(content_id, g.user.id, kind=KIND_FILE)
    path = content_store.open_payload(entry)
    resp = send_file(str(path), as_attachment=False, download_name=entry.original_name, mimetype=entry.mime_type)
    resp.headers["Cache-Control"] = "private, max-age=3600"
    return resp


@bp.route("/<content_id>", methods=["PUT"])
@login_required
def update(content_id):
    data = request.get_json(silent=True) or {}
    kwargs = {
        "original_name": data.get("originalName"),
        "description": data.get("description"),
        "is_starred": data.get("isStarred"),
    }
    if "folderId" in data:
        kwargs["folder_id"] = data.get("folderId")
    entry = content_store.update_file(content_id, g.user.id, **kwargs)
    return jsonify({"success": True, "message": "File updated", "data": {"file": entry.to_dict()}})


@bp.route("/<content_id>/star", methods=["PUT"])
@login_required
def star(content_id):
    starred = content_store.toggle_star(content_id, g.user.id)
    return jsonify({"success": True, "data": {"isStarred": starred}})


@bp.route("/<content_id>/extend", methods=["POST"])
@login_required
def extend(content_id):
    data = request.get_json(silent=True) or {}
    days = data.get("days", current_app.config.get("RETENTION_DAYS", 7))
    entry = content_store.extend_expiry(content_id, g.user.id, days, kind=KIND_FILE)
    return jsonify({"success": True, "message": "Expiry extended", "data": {"file": entry.to_dict()}})


@bp.route("/<content_id>", methods=["DELETE"])
@login_required
def delete(content_id):
    freed = content_store.remove(content_id, user_id=g.user.id, kind=KIND_FILE)
    return jsonify({
        "success": True,
        "message": "File deleted successfully",
        "data": {"freedBytes": freed, "storage": quota_ledger.snapshot(g.user.id)},
    })


@bp.route("", methods=["DELETE"])
@login_required
def delete_many():
    ids = (request.get_json(silent=True) or {}).get("fileIds")
    if not isinstance(ids, list) or not ids:
        raise InvalidRequest("fileIds must be a non-empty list")
    removed, freed = content_store.remove_many(ids, g.user.id, KIND_FILE)
    return jsonify({
        "success": True,
        "message": f"{removed} file(s) deleted",
        "data": {"deleted": removed, "freedBytes": freed, "storage": quota_ledger.snapshot(g.user.id)},
    })
